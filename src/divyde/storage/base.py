"""Storage contract shared by every Divyde persistence backend."""

from abc import ABC, abstractmethod

from ..models import Debt, DebtDraft, DebtUpdate, Friend


class LedgerStore(ABC):
    """
    Persistence backend for friends and debts, scoped to a single owner.

    Implementations return debts ordered by date descending (newest first,
    ties broken by creation time, newest first) and friends ordered by name.
    Paid-state transitions go through ``ledger.apply_update`` so every
    backend produces the same records.
    """

    # ------------------------------------------------------------------
    # Friends
    # ------------------------------------------------------------------

    @abstractmethod
    def list_friends(self) -> list[Friend]:
        """List all friends in scope, ordered by name."""

    @abstractmethod
    def get_friend(self, friend_id: str) -> Friend | None:
        """Get a friend by ID, or None if it is not in scope."""

    @abstractmethod
    def create_friend(self, friend: Friend) -> Friend:
        """Persist a new friend."""

    @abstractmethod
    def delete_friend(self, friend_id: str) -> None:
        """Delete a friend together with all of its debts.

        Raises:
            NotFoundError: If the friend is not in scope
        """

    # ------------------------------------------------------------------
    # Debts
    # ------------------------------------------------------------------

    @abstractmethod
    def list_debts(self, friend_id: str | None = None) -> list[Debt]:
        """List debts for one friend, or for the whole account if friend_id is None."""

    @abstractmethod
    def get_debt(self, debt_id: str) -> Debt | None:
        """Get a debt by ID, or None if it is not in scope."""

    @abstractmethod
    def create_debts(self, drafts: list[DebtDraft]) -> list[Debt]:
        """Persist a batch of drafts atomically.

        Raises:
            NotFoundError: If a draft references a friend that is not in scope
        """

    @abstractmethod
    def update_debt(self, debt_id: str, patch: DebtUpdate) -> Debt:
        """Apply an update patch to a debt and persist it.

        Raises:
            NotFoundError: If the debt is not in scope
            ValidationError: If the patch is invalid
        """

    @abstractmethod
    def delete_debt(self, debt_id: str) -> None:
        """Delete a debt.

        Raises:
            NotFoundError: If the debt is not in scope
        """

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self):
        """Release any resources held by the store."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
