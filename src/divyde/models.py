"""Pydantic domain models for Divyde."""

import datetime as dt
import uuid
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate an opaque record identifier."""
    return uuid.uuid4().hex


def utcnow() -> dt.datetime:
    """Current time as a timezone-aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


class WireModel(BaseModel):
    """Base model that also accepts the camelCase field names of the HTTP API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Enums
# ============================================================================


class Direction(StrEnum):
    """Which way the money flows between the owner and a friend."""

    THEY_OWE = "they-owe"  # friend owes the owner
    YOU_OWE = "you-owe"  # owner owes the friend


class DebtFilter(StrEnum):
    """History view filter."""

    ALL = "all"
    OUTSTANDING = "outstanding"
    PAID = "paid"


# ============================================================================
# Entities
# ============================================================================


class Friend(WireModel):
    """A counterparty the owner trades debts with."""

    id: str = Field(default_factory=new_id)
    name: str
    email: str | None = None
    avatar_color: str | None = None
    avatar: dict[str, str | None] | None = None  # cosmetic, passed through untouched


class Debt(WireModel):
    """A single directional obligation between the owner and one friend.

    Invariant: ``paid_at`` is set if and only if ``is_paid`` is true.
    """

    id: str = Field(default_factory=new_id)
    friend_id: str
    amount: Decimal
    direction: Direction
    description: str | None = None
    date: dt.date
    is_paid: bool = False
    paid_at: dt.datetime | None = None
    created_at: dt.datetime = Field(default_factory=utcnow)


class DebtDraft(BaseModel):
    """A per-friend creation record produced by split allocation, not yet persisted."""

    friend_id: str
    amount: Decimal
    direction: Direction
    description: str | None = None
    date: dt.date

    def to_debt(self) -> Debt:
        """Materialize the draft as a new unpaid debt."""
        return Debt(
            friend_id=self.friend_id,
            amount=self.amount,
            direction=self.direction,
            description=self.description,
            date=self.date,
        )


# ============================================================================
# Requests
# ============================================================================


class DebtCreateRequest(WireModel):
    """Request to record one amount against one or more friends.

    Amount and direction are kept loose here so that the ledger engine, not
    the model parser, decides what is valid.
    """

    amount: Decimal | None = None
    direction: str | None = None
    friend_ids: list[str] = Field(default_factory=list)
    description: str | None = None
    date: dt.date | None = None


class DebtUpdate(WireModel):
    """Patch applied to one existing debt. Unset fields are left untouched."""

    is_paid: bool | None = None
    amount: Decimal | None = None
    description: str | None = None


# ============================================================================
# Derived read models
# ============================================================================


class Totals(BaseModel):
    """Owed-to-you and you-owe magnitudes, accumulated separately."""

    total_owed: Decimal = Decimal("0.00")
    total_owing: Decimal = Decimal("0.00")


class DebtPartition(BaseModel):
    """Unpaid and paid debts, each in the order they were supplied."""

    unpaid: list[Debt] = Field(default_factory=list)
    paid: list[Debt] = Field(default_factory=list)


class FriendSummary(BaseModel):
    """A friend as shown in the friends list."""

    friend: Friend
    balance: Decimal
    debt_count: int  # unpaid debts only


class FriendDetail(BaseModel):
    """A friend with balance and partitioned debt history."""

    friend: Friend
    balance: Decimal
    unpaid: list[Debt]
    paid: list[Debt]


class History(BaseModel):
    """Account-wide debt history for a filter, with global totals."""

    filter: DebtFilter = DebtFilter.ALL
    debts: list[Debt]
    totals: Totals
