"""Tests for the SQLite and local storage backends."""

import json
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from divyde.exceptions import NotFoundError, StorageError, ValidationError
from divyde.models import DebtDraft, DebtUpdate, Direction, Friend
from divyde.storage.local import LocalStore
from divyde.storage.sqlite import SqliteStore


def make_draft(
    friend_id: str,
    amount: str = "10.00",
    direction: Direction = Direction.THEY_OWE,
    on: date = date(2025, 3, 1),
    description: str | None = None,
) -> DebtDraft:
    """Create a DebtDraft for testing."""
    return DebtDraft(
        friend_id=friend_id,
        amount=Decimal(amount),
        direction=direction,
        description=description,
        date=on,
    )


@pytest.fixture(params=["sqlite", "local"])
def store(request, tmp_path):
    """Each backend, opened on a fresh file."""
    if request.param == "sqlite":
        backend = SqliteStore(tmp_path / "test.db")
    else:
        backend = LocalStore(tmp_path / "local.json")
    yield backend
    backend.close()


@pytest.fixture
def alex(store):
    """A friend called Alex."""
    return store.create_friend(Friend(name="Alex"))


@pytest.fixture
def sam(store):
    """A friend called Sam."""
    return store.create_friend(Friend(name="Sam", email="sam@example.com"))


class TestFriends:
    """Test friend persistence on every backend."""

    def test_create_and_get(self, store, alex):
        assert store.get_friend(alex.id).model_dump() == alex.model_dump()

    def test_get_missing_returns_none(self, store):
        assert store.get_friend("nope") is None

    def test_list_ordered_by_name(self, store):
        store.create_friend(Friend(name="Zoe"))
        store.create_friend(Friend(name="Alex"))
        store.create_friend(Friend(name="Mia"))

        assert [f.name for f in store.list_friends()] == ["Alex", "Mia", "Zoe"]

    def test_avatar_round_trips(self, store):
        friend = store.create_friend(
            Friend(name="Kim", avatar={"type": "emoji", "value": "🐱"})
        )
        assert store.get_friend(friend.id).avatar == {"type": "emoji", "value": "🐱"}

    def test_delete_cascades_debts(self, store, alex, sam):
        store.create_debts([make_draft(alex.id), make_draft(sam.id)])

        store.delete_friend(alex.id)

        assert store.get_friend(alex.id) is None
        assert store.list_debts(friend_id=alex.id) == []
        assert [d.friend_id for d in store.list_debts()] == [sam.id]

    def test_delete_missing_raises(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.delete_friend("nope")
        assert exc_info.value.entity == "friend"
        assert exc_info.value.ids == ["nope"]


class TestDebts:
    """Test debt persistence and state transitions on every backend."""

    def test_create_returns_unpaid_debts(self, store, alex, sam):
        debts = store.create_debts(
            [make_draft(alex.id, "3.33"), make_draft(sam.id, "3.33")]
        )

        assert len(debts) == 2
        assert all(not d.is_paid and d.paid_at is None for d in debts)
        assert {d.friend_id for d in debts} == {alex.id, sam.id}
        assert store.get_debt(debts[0].id).model_dump() == debts[0].model_dump()

    def test_create_empty_batch(self, store):
        assert store.create_debts([]) == []

    def test_create_with_unknown_friend_creates_nothing(self, store, alex):
        with pytest.raises(NotFoundError) as exc_info:
            store.create_debts([make_draft(alex.id), make_draft("ghost")])

        assert exc_info.value.ids == ["ghost"]
        assert store.list_debts() == []

    def test_amount_precision_preserved(self, store, alex):
        [debt] = store.create_debts([make_draft(alex.id, "0.10")])
        assert store.get_debt(debt.id).amount == Decimal("0.10")

    def test_list_newest_first(self, store, alex):
        store.create_debts([make_draft(alex.id, "1.00", on=date(2025, 1, 1))])
        store.create_debts([make_draft(alex.id, "2.00", on=date(2025, 3, 1))])
        store.create_debts([make_draft(alex.id, "3.00", on=date(2025, 2, 1))])

        amounts = [d.amount for d in store.list_debts()]
        assert amounts == [Decimal("2.00"), Decimal("3.00"), Decimal("1.00")]

    def test_same_date_ties_newest_created_first(self, store, alex):
        [first] = store.create_debts([make_draft(alex.id, "1.00")])
        [second] = store.create_debts([make_draft(alex.id, "2.00")])

        ids = [d.id for d in store.list_debts()]
        assert ids == [second.id, first.id]

    def test_list_filtered_by_friend(self, store, alex, sam):
        store.create_debts([make_draft(alex.id), make_draft(sam.id)])
        debts = store.list_debts(friend_id=sam.id)
        assert [d.friend_id for d in debts] == [sam.id]

    def test_mark_paid_and_unpaid(self, store, alex):
        [debt] = store.create_debts([make_draft(alex.id)])

        paid = store.update_debt(debt.id, DebtUpdate(is_paid=True))
        assert paid.is_paid is True
        assert paid.paid_at is not None
        assert store.get_debt(debt.id).paid_at == paid.paid_at

        unpaid = store.update_debt(debt.id, DebtUpdate(is_paid=False))
        assert unpaid.is_paid is False
        assert unpaid.paid_at is None
        assert store.get_debt(debt.id).is_paid is False

    def test_edit_amount_and_description(self, store, alex):
        [debt] = store.create_debts([make_draft(alex.id)])

        store.update_debt(
            debt.id, DebtUpdate(amount=Decimal("12.5"), description="Lunch")
        )

        stored = store.get_debt(debt.id)
        assert stored.amount == Decimal("12.50")
        assert stored.description == "Lunch"

    def test_edit_rejects_non_positive_amount(self, store, alex):
        [debt] = store.create_debts([make_draft(alex.id)])

        with pytest.raises(ValidationError):
            store.update_debt(debt.id, DebtUpdate(amount=Decimal("0")))

        assert store.get_debt(debt.id).amount == Decimal("10.00")

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update_debt("nope", DebtUpdate(is_paid=True))

    def test_delete(self, store, alex):
        [debt] = store.create_debts([make_draft(alex.id)])
        store.delete_debt(debt.id)
        assert store.get_debt(debt.id) is None

    def test_delete_missing_raises(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.delete_debt("nope")
        assert exc_info.value.entity == "debt"


class TestSqliteStore:
    """SQLite-specific behaviour."""

    def test_data_survives_reopen(self, tmp_path):
        db_path = tmp_path / "test.db"
        with SqliteStore(db_path) as store:
            friend = store.create_friend(Friend(name="Alex"))
            store.create_debts([make_draft(friend.id, "4.20")])

        with SqliteStore(db_path) as store:
            assert [f.name for f in store.list_friends()] == ["Alex"]
            assert store.list_debts()[0].amount == Decimal("4.20")

    def test_owners_are_isolated(self, tmp_path):
        db_path = tmp_path / "test.db"
        with SqliteStore(db_path, owner_id="ann") as ann:
            friend = ann.create_friend(Friend(name="Alex"))
            ann.create_debts([make_draft(friend.id)])

        with SqliteStore(db_path, owner_id="bob") as bob:
            assert bob.list_friends() == []
            assert bob.list_debts() == []
            assert bob.get_friend(friend.id) is None
            with pytest.raises(NotFoundError):
                bob.create_debts([make_draft(friend.id)])
            with pytest.raises(NotFoundError):
                bob.delete_friend(friend.id)


class TestLocalStore:
    """Local key-value store behaviour."""

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "local.json"
        store = LocalStore(path)
        friend = store.create_friend(Friend(name="Alex"))
        [debt] = store.create_debts([make_draft(friend.id, "4.20")])
        store.update_debt(debt.id, DebtUpdate(is_paid=True))

        reopened = LocalStore(path)
        [stored] = reopened.list_debts()
        assert stored.amount == Decimal("4.20")
        assert stored.is_paid is True
        assert stored.paid_at is not None

    def test_uses_owner_scoped_keys(self, tmp_path):
        path = tmp_path / "local.json"
        store = LocalStore(path, owner_id="ann")
        store.create_friend(Friend(name="Alex"))

        document = json.loads(path.read_text())
        assert set(document) == {"divyde:ann:friends", "divyde:ann:debts"}
        assert document["divyde:ann:friends"][0]["name"] == "Alex"

    def test_writes_camel_case_fields(self, tmp_path):
        path = tmp_path / "local.json"
        store = LocalStore(path)
        friend = store.create_friend(Friend(name="Alex"))
        store.create_debts([make_draft(friend.id)])

        [entry] = json.loads(path.read_text())["divyde:local:debts"]
        assert entry["friendId"] == friend.id
        assert entry["isPaid"] is False

    def test_keeps_other_keys(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text(json.dumps({"something:else": [1, 2]}))

        LocalStore(path).create_friend(Friend(name="Alex"))

        assert json.loads(path.read_text())["something:else"] == [1, 2]

    def test_drops_invalid_entries(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text(
            json.dumps(
                {
                    "divyde:local:friends": [
                        {"id": "f1", "name": "Alex"},
                        {"id": "broken"},
                    ],
                    "divyde:local:debts": [
                        {
                            "id": "good",
                            "friendId": "f1",
                            "amount": "5.00",
                            "direction": "they-owe",
                            "date": "2025-03-01",
                        },
                        {
                            "id": "negative",
                            "friendId": "f1",
                            "amount": "-5.00",
                            "direction": "they-owe",
                            "date": "2025-03-01",
                        },
                        {
                            "id": "orphan",
                            "friendId": "gone",
                            "amount": "5.00",
                            "direction": "they-owe",
                            "date": "2025-03-01",
                        },
                        {
                            "id": "paid-without-date",
                            "friendId": "f1",
                            "amount": "5.00",
                            "direction": "they-owe",
                            "date": "2025-03-01",
                            "isPaid": True,
                        },
                        {
                            "id": "bad-direction",
                            "friendId": "f1",
                            "amount": "5.00",
                            "direction": "sideways",
                            "date": "2025-03-01",
                        },
                        "not-a-debt",
                    ],
                }
            )
        )

        store = LocalStore(path)

        assert [f.id for f in store.list_friends()] == ["f1"]
        assert [d.id for d in store.list_debts()] == ["good"]

    def test_non_list_key_is_ignored(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text(json.dumps({"divyde:local:friends": {"oops": True}}))
        assert LocalStore(path).list_friends() == []

    def test_corrupt_document_raises(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text("{not json")
        with pytest.raises(StorageError):
            LocalStore(path)

    def test_non_object_document_raises(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text("[]")
        with pytest.raises(StorageError):
            LocalStore(path)

    def test_returned_debts_are_copies(self, tmp_path):
        store = LocalStore(tmp_path / "local.json")
        friend = store.create_friend(Friend(name="Alex"))
        [debt] = store.create_debts([make_draft(friend.id)])

        debt.description = "changed outside"

        assert store.get_debt(debt.id).description is None


class TestLocalStoreFailedWrites:
    """A failed disk write leaves memory matching the file."""

    @pytest.fixture
    def local(self, tmp_path):
        store = LocalStore(tmp_path / "local.json")
        friend = store.create_friend(Friend(name="Alex"))
        [debt] = store.create_debts([make_draft(friend.id)])
        return store, friend, debt

    @pytest.fixture
    def failing_replace(self):
        with patch(
            "divyde.storage.local.os.replace", side_effect=OSError("disk full")
        ) as mock_replace:
            yield mock_replace

    def test_create_friend(self, local, failing_replace):
        store, _friend, _debt = local

        with pytest.raises(StorageError):
            store.create_friend(Friend(name="Sam"))

        assert [f.name for f in store.list_friends()] == ["Alex"]

    def test_delete_friend(self, local, failing_replace):
        store, friend, debt = local

        with pytest.raises(StorageError):
            store.delete_friend(friend.id)

        assert store.get_friend(friend.id) is not None
        assert store.get_debt(debt.id) is not None

    def test_create_debts(self, local, failing_replace):
        store, friend, debt = local

        with pytest.raises(StorageError):
            store.create_debts([make_draft(friend.id, "7.00")])

        assert [d.id for d in store.list_debts()] == [debt.id]

    def test_update_debt(self, local, failing_replace):
        store, _friend, debt = local

        with pytest.raises(StorageError):
            store.update_debt(debt.id, DebtUpdate(is_paid=True))

        stored = store.get_debt(debt.id)
        assert stored.is_paid is False
        assert stored.paid_at is None

    def test_delete_debt(self, local, failing_replace):
        store, _friend, debt = local

        with pytest.raises(StorageError):
            store.delete_debt(debt.id)

        assert store.get_debt(debt.id) is not None

    def test_later_write_does_not_persist_failed_change(self, local, tmp_path):
        store, friend, debt = local
        with patch("divyde.storage.local.os.replace", side_effect=OSError("full")):
            with pytest.raises(StorageError):
                store.update_debt(debt.id, DebtUpdate(is_paid=True))

        store.create_friend(Friend(name="Sam"))

        [stored] = LocalStore(tmp_path / "local.json").list_debts()
        assert stored.is_paid is False
