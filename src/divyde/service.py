"""Service layer that composes a storage backend with the ledger engine.

Validation and ownership checks happen here; arithmetic is delegated to
``ledger`` and persistence to a ``LedgerStore``, so the same service runs
unchanged on top of the SQLite, local or HTTP API backends.
"""

import logging

from .config import Settings
from .exceptions import ConfigurationError, NotFoundError, ValidationError
from .ledger import (
    allocate_split,
    compute_balance,
    compute_totals,
    filter_debts,
    partition_debts,
)
from .models import (
    Debt,
    DebtCreateRequest,
    DebtFilter,
    DebtUpdate,
    Friend,
    FriendDetail,
    FriendSummary,
    History,
)
from .storage.api import ApiStore
from .storage.base import LedgerStore
from .storage.local import LocalStore
from .storage.sqlite import SqliteStore

logger = logging.getLogger(__name__)


def open_store(settings: Settings) -> LedgerStore:
    """
    Open the storage backend selected in settings.

    Raises:
        ConfigurationError: If the API backend is selected without a base URL
    """
    if settings.storage_backend == "local":
        return LocalStore(settings.local_store_path, owner_id=settings.owner_id)
    if settings.storage_backend == "api":
        if not settings.api_base_url:
            raise ConfigurationError(
                "API_BASE_URL must be set when STORAGE_BACKEND is 'api'"
            )
        return ApiStore(
            settings.api_base_url,
            session_token=settings.api_session_token,
            timeout=settings.api_timeout,
        )
    return SqliteStore(settings.database_path, owner_id=settings.owner_id)


class LedgerService:
    """Friends, debts and balances on top of a storage backend."""

    def __init__(self, store: LedgerStore):
        """Initialize the ledger service."""
        self.store = store

    # ========================================================================
    # Friends
    # ========================================================================

    def add_friend(
        self,
        name: str,
        email: str | None = None,
        avatar_color: str | None = None,
    ) -> Friend:
        """
        Add a friend.

        Args:
            name: Display name (surrounding whitespace is stripped)
            email: Optional email, stored lower-cased
            avatar_color: Optional initials-avatar colour

        Returns:
            The created friend

        Raises:
            ValidationError: If the name is blank
        """
        if not name or not name.strip():
            raise ValidationError("Name is required")

        friend = Friend(
            name=name.strip(),
            email=email.lower() if email else None,
            avatar_color=avatar_color,
        )
        created = self.store.create_friend(friend)
        logger.info(f"Added friend {created.name} ({created.id})")
        return created

    def remove_friend(self, friend_id: str) -> None:
        """Delete a friend and, by cascade, all of their debts."""
        self.store.delete_friend(friend_id)
        logger.info(f"Removed friend {friend_id} and their debts")

    def list_friends(self) -> list[FriendSummary]:
        """
        List friends with their balances.

        Balances are computed from one snapshot of the account's debts.
        debt_count counts unpaid debts only.
        """
        friends = self.store.list_friends()
        debts_by_friend: dict[str, list[Debt]] = {}
        for debt in self.store.list_debts():
            debts_by_friend.setdefault(debt.friend_id, []).append(debt)

        summaries = []
        for friend in friends:
            debts = debts_by_friend.get(friend.id, [])
            summaries.append(
                FriendSummary(
                    friend=friend,
                    balance=compute_balance(debts),
                    debt_count=sum(1 for debt in debts if not debt.is_paid),
                )
            )
        return summaries

    def get_friend_detail(self, friend_id: str) -> FriendDetail:
        """
        Get a friend with balance and unpaid/paid debt lists.

        Raises:
            NotFoundError: If the friend is not in scope
        """
        friend = self.store.get_friend(friend_id)
        if friend is None:
            raise NotFoundError("friend", [friend_id])

        debts = self.store.list_debts(friend_id=friend_id)
        partition = partition_debts(debts)
        return FriendDetail(
            friend=friend,
            balance=compute_balance(debts),
            unpaid=partition.unpaid,
            paid=partition.paid,
        )

    # ========================================================================
    # Debts
    # ========================================================================

    def create_debts(self, request: DebtCreateRequest) -> list[Debt]:
        """
        Record an amount against one or more friends, split equally.

        Every friend must resolve within the owner's scope; if any does not,
        nothing is created.

        Args:
            request: Amount, direction, selected friends and optional
                     description/date

        Returns:
            The created debts

        Raises:
            ValidationError: If amount, direction or selection is invalid
            NotFoundError: If any selected friend is unknown
        """
        drafts = allocate_split(
            amount=request.amount,
            direction=request.direction,
            friend_ids=request.friend_ids,
            description=request.description,
            on=request.date,
        )

        known = {friend.id for friend in self.store.list_friends()}
        missing = [fid for fid in request.friend_ids if fid not in known]
        if missing:
            logger.warning(f"Rejected split naming unknown friends: {missing}")
            raise NotFoundError("friend", missing, "One or more friends not found")

        debts = self.store.create_debts(drafts)
        logger.info(
            f"Created {len(debts)} debts of {drafts[0].amount} "
            f"({drafts[0].direction.value})"
        )
        return debts

    def update_debt(self, debt_id: str, patch: DebtUpdate) -> Debt:
        """Apply an update patch (paid flag, amount, description) to one debt."""
        debt = self.store.update_debt(debt_id, patch)
        if patch.is_paid is not None:
            state = "paid" if debt.is_paid else "unpaid"
            logger.info(f"Marked debt {debt_id} {state}")
        return debt

    def mark_paid(self, debt_id: str) -> Debt:
        """Move a debt to Paid, stamping paid_at."""
        return self.update_debt(debt_id, DebtUpdate(is_paid=True))

    def mark_unpaid(self, debt_id: str) -> Debt:
        """Move a debt back to Unpaid, clearing paid_at."""
        return self.update_debt(debt_id, DebtUpdate(is_paid=False))

    def delete_debt(self, debt_id: str) -> None:
        """Delete a debt."""
        self.store.delete_debt(debt_id)
        logger.info(f"Deleted debt {debt_id}")

    def get_history(self, debt_filter: DebtFilter = DebtFilter.ALL) -> History:
        """
        Get account-wide history for a filter.

        Totals always cover every unpaid debt in the account, whatever the
        filter, as the history header shows them.
        """
        debts = self.store.list_debts()
        return History(
            filter=debt_filter,
            debts=filter_debts(debts, debt_filter),
            totals=compute_totals(debts),
        )
