"""Local key-value storage backend for Divyde.

Keeps friends and debts as JSON lists under local-storage style keys
(``divyde:<owner>:friends`` and ``divyde:<owner>:debts``) in a single JSON
document on disk, so data written by the offline variant has the same shape
as the relational store.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import NotFoundError, StorageError
from ..ledger import apply_update, to_amount
from ..models import Debt, DebtDraft, DebtUpdate, Friend
from .base import LedgerStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "divyde"


class LocalStore(LedgerStore):
    """Key-value store persisted as a JSON document."""

    def __init__(self, path: Path, owner_id: str = "local"):
        """Load the document, dropping malformed entries."""
        self.path = path
        self.owner_id = owner_id
        self.friends_key = f"{KEY_PREFIX}:{owner_id}:friends"
        self.debts_key = f"{KEY_PREFIX}:{owner_id}:debts"

        self._document = self._read_document()
        self._friends = _sanitize_friends(self._document.get(self.friends_key, []))
        friend_ids = {friend.id for friend in self._friends}
        self._debts = _sanitize_debts(
            self._document.get(self.debts_key, []), friend_ids
        )

    # ========================================================================
    # Document I/O
    # ========================================================================

    def _read_document(self) -> dict[str, Any]:
        """Read the whole key-value document (empty if the file does not exist)."""
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read local store {self.path}: {e}") from e
        if not isinstance(document, dict):
            raise StorageError(f"Local store {self.path} is not a key-value document")
        return document

    def _persist(self):
        """Write both keys back and atomically replace the file."""
        self._document[self.friends_key] = [
            friend.model_dump(mode="json", by_alias=True) for friend in self._friends
        ]
        self._document[self.debts_key] = [
            debt.model_dump(mode="json", by_alias=True) for debt in self._debts
        ]

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp_path.write_text(json.dumps(self._document, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write local store {self.path}: {e}") from e

    # ========================================================================
    # Friend operations
    # ========================================================================

    def list_friends(self) -> list[Friend]:
        """List all friends, ordered by name."""
        return sorted(
            (friend.model_copy() for friend in self._friends),
            key=lambda friend: friend.name,
        )

    def get_friend(self, friend_id: str) -> Friend | None:
        """Get a friend by ID."""
        for friend in self._friends:
            if friend.id == friend_id:
                return friend.model_copy()
        return None

    def create_friend(self, friend: Friend) -> Friend:
        """Save a new friend."""
        self._commit([*self._friends, friend.model_copy()], self._debts)
        return friend

    def delete_friend(self, friend_id: str) -> None:
        """Delete a friend and every debt that references it."""
        if self.get_friend(friend_id) is None:
            raise NotFoundError("friend", [friend_id])

        friends = [f for f in self._friends if f.id != friend_id]
        debts = [d for d in self._debts if d.friend_id != friend_id]
        removed = len(self._debts) - len(debts)
        self._commit(friends, debts)

        logger.debug(f"Cascaded {removed} debts for deleted friend {friend_id}")

    # ========================================================================
    # Debt operations
    # ========================================================================

    def list_debts(self, friend_id: str | None = None) -> list[Debt]:
        """List debts, newest first."""
        debts = [
            debt.model_copy()
            for debt in self._debts
            if friend_id is None or debt.friend_id == friend_id
        ]
        debts.sort(key=lambda debt: (debt.date, debt.created_at), reverse=True)
        return debts

    def get_debt(self, debt_id: str) -> Debt | None:
        """Get a debt by ID."""
        for debt in self._debts:
            if debt.id == debt_id:
                return debt.model_copy()
        return None

    def create_debts(self, drafts: list[DebtDraft]) -> list[Debt]:
        """Append a batch of debts, all or nothing."""
        known = {friend.id for friend in self._friends}
        missing = sorted({d.friend_id for d in drafts if d.friend_id not in known})
        if missing:
            raise NotFoundError("friend", missing)

        debts = [draft.to_debt() for draft in drafts]
        self._commit(self._friends, [*self._debts, *debts])
        return [debt.model_copy() for debt in debts]

    def update_debt(self, debt_id: str, patch: DebtUpdate) -> Debt:
        """Apply a patch through the ledger state machine and save the result."""
        for idx, debt in enumerate(self._debts):
            if debt.id == debt_id:
                updated = apply_update(debt, patch)
                debts = list(self._debts)
                debts[idx] = updated
                self._commit(self._friends, debts)
                return updated.model_copy()
        raise NotFoundError("debt", [debt_id])

    def delete_debt(self, debt_id: str) -> None:
        """Delete a debt."""
        remaining = [debt for debt in self._debts if debt.id != debt_id]
        if len(remaining) == len(self._debts):
            raise NotFoundError("debt", [debt_id])
        self._commit(self._friends, remaining)

    def _commit(self, friends: list[Friend], debts: list[Debt]):
        """Swap in new friend and debt lists and persist them.

        The previous lists are restored if the write fails, so memory never
        holds state that is not on disk.
        """
        previous = (self._friends, self._debts)
        self._friends, self._debts = friends, debts
        try:
            self._persist()
        except StorageError:
            self._friends, self._debts = previous
            raise


def _sanitize_friends(raw: Any) -> list[Friend]:
    """Parse stored friends, skipping entries that do not validate."""
    if not isinstance(raw, list):
        logger.warning("Stored friends are not a list; ignoring them")
        return []

    friends = []
    for entry in raw:
        try:
            friends.append(Friend.model_validate(entry))
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed friend entry {entry!r}: {e}")
    return friends


def _sanitize_debts(raw: Any, friend_ids: set[str]) -> list[Debt]:
    """Parse stored debts, skipping malformed, non-positive or orphaned entries."""
    if not isinstance(raw, list):
        logger.warning("Stored debts are not a list; ignoring them")
        return []

    debts = []
    for entry in raw:
        try:
            debt = Debt.model_validate(entry)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed debt entry {entry!r}: {e}")
            continue

        if not debt.amount.is_finite() or debt.amount <= 0:
            logger.warning(f"Dropping debt {debt.id} with invalid amount {debt.amount}")
            continue
        if debt.friend_id not in friend_ids:
            logger.warning(f"Dropping debt {debt.id} for unknown friend")
            continue
        if debt.is_paid != (debt.paid_at is not None):
            logger.warning(f"Dropping debt {debt.id} with inconsistent paid state")
            continue

        debts.append(debt.model_copy(update={"amount": to_amount(debt.amount)}))
    return debts
