"""Ledger engine: balances, totals, equal splits and the paid state machine.

Every function here is pure. Stores and the service call into this module so
that the same arithmetic runs whichever backend supplied the debts.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import ValidationError
from .models import (
    Debt,
    DebtDraft,
    DebtFilter,
    DebtPartition,
    DebtUpdate,
    Direction,
    Totals,
    utcnow,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def parse_amount(value: Decimal | float | int | str) -> Decimal:
    """
    Convert a money value to an exact Decimal without rounding it.

    Floats go through ``str`` first so that 0.1 becomes Decimal("0.1"),
    not its binary expansion.

    Raises:
        ValidationError: If the value is not a finite number
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Amount is not a valid number: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Amount is not a valid number: {value!r}")
    return amount


def to_amount(value: Decimal | float | int | str) -> Decimal:
    """
    Convert a money value to a Decimal rounded to the cent.
    Uses ROUND_HALF_UP for consistency.

    Args:
        value: Amount as Decimal, number or numeric string

    Returns:
        Amount quantized to two decimal places

    Raises:
        ValidationError: If the value is not a finite number
    """
    return parse_amount(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_direction(value: str | Direction | None) -> Direction:
    """Parse a direction, raising ValidationError for anything unrecognised."""
    try:
        return Direction(value)
    except ValueError as e:
        raise ValidationError("Direction must be 'they-owe' or 'you-owe'") from e


# ============================================================================
# Balance computation
# ============================================================================


def signed_amount(debt: Debt) -> Decimal:
    """Amount signed by direction (positive when the friend owes the owner)."""
    if debt.direction == Direction.THEY_OWE:
        return debt.amount
    return -debt.amount


def contribution(debt: Debt) -> Decimal:
    """
    Signed contribution of one debt to its friend's balance.

    Paid debts contribute nothing; unpaid debts contribute signed_amount.
    """
    if debt.is_paid:
        return ZERO
    return signed_amount(debt)


def compute_balance(debts: Iterable[Debt]) -> Decimal:
    """
    Compute the net balance over a friend's debts.

    Args:
        debts: Debts for a single friend, in any order

    Returns:
        Positive if the friend owes the owner, negative if the owner owes
        the friend, zero when settled (or when there are no unpaid debts)
    """
    return sum((contribution(debt) for debt in debts), ZERO)


def compute_totals(debts: Iterable[Debt]) -> Totals:
    """
    Accumulate owed-to-you and you-owe magnitudes across all friends.

    The two totals are kept apart rather than netted: one they-owe debt of
    20 and one you-owe debt of 8 give total_owed=20, total_owing=8.
    """
    total_owed = ZERO
    total_owing = ZERO
    for debt in debts:
        if debt.is_paid:
            continue
        if debt.direction == Direction.THEY_OWE:
            total_owed += debt.amount
        else:
            total_owing += debt.amount
    return Totals(total_owed=total_owed, total_owing=total_owing)


# ============================================================================
# Partition and filtering
# ============================================================================


def partition_debts(debts: Iterable[Debt]) -> DebtPartition:
    """Split debts into unpaid and paid lists, preserving input order in each."""
    partition = DebtPartition()
    for debt in debts:
        if debt.is_paid:
            partition.paid.append(debt)
        else:
            partition.unpaid.append(debt)
    return partition


def filter_debts(debts: Iterable[Debt], debt_filter: DebtFilter) -> list[Debt]:
    """Apply a history filter (all, outstanding or paid)."""
    if debt_filter == DebtFilter.OUTSTANDING:
        return [debt for debt in debts if not debt.is_paid]
    if debt_filter == DebtFilter.PAID:
        return [debt for debt in debts if debt.is_paid]
    return list(debts)


def group_by_date(debts: Iterable[Debt]) -> dict[date, list[Debt]]:
    """Group debts by their date, keeping the order in which dates first appear."""
    groups: dict[date, list[Debt]] = {}
    for debt in debts:
        groups.setdefault(debt.date, []).append(debt)
    return groups


# ============================================================================
# Equal-split allocation
# ============================================================================


def split_amount(total: Decimal, count: int) -> Decimal:
    """
    Per-person share of an equal split, rounded half-up to the cent.

    Only the quotient is rounded: 20.005 split 2 ways gives 10.00 each.

    The remainder is not redistributed: 10.00 split 3 ways gives 3.33 each,
    so the created debts sum to 9.99. Existing ledgers depend on this
    rounding, so it is kept as-is.
    """
    per_person = (total / count).quantize(CENT, rounding=ROUND_HALF_UP)
    loss = total - per_person * count
    if loss:
        logger.debug(
            f"Split of {total} across {count} loses {loss} to rounding "
            f"({per_person} each)"
        )
    return per_person


def validate_split(
    amount: Decimal | float | int | str | None,
    direction: str | Direction | None,
    friend_ids: list[str] | None,
) -> tuple[Decimal, Direction, list[str]]:
    """
    Validate the inputs of a split request.

    Args:
        amount: Total amount requested
        direction: "they-owe" or "you-owe"
        friend_ids: Selected friends

    Returns:
        Tuple of (amount, direction, friend_ids); the amount is exact, not
        yet rounded to the cent

    Raises:
        ValidationError: If amount is missing or <= 0, direction is
                         unrecognised, or the friend selection is empty
                         or repeats a friend
    """
    if amount is None:
        raise ValidationError("Amount must be greater than 0")
    total = parse_amount(amount)
    if total <= 0:
        raise ValidationError("Amount must be greater than 0")

    parsed_direction = parse_direction(direction)

    if not friend_ids:
        raise ValidationError("At least one friend must be selected")
    if len(set(friend_ids)) != len(friend_ids):
        raise ValidationError("Each friend can only be selected once")

    return total, parsed_direction, list(friend_ids)


def allocate_split(
    amount: Decimal | float | int | str | None,
    direction: str | Direction | None,
    friend_ids: list[str] | None,
    description: str | None = None,
    on: date | None = None,
) -> list[DebtDraft]:
    """
    Allocate an amount equally across the selected friends.

    Args:
        amount: Total amount to split
        direction: Direction applied to every created debt
        friend_ids: Friends to create one debt each for
        description: Optional description copied to every debt
        on: Debt date (defaults to today)

    Returns:
        One unpaid draft per friend, in the order of friend_ids

    Raises:
        ValidationError: If the request is invalid
    """
    total, parsed_direction, ids = validate_split(amount, direction, friend_ids)
    per_person = split_amount(total, len(ids))
    if per_person <= 0:
        raise ValidationError(
            f"Amount {total} is too small to split across {len(ids)} friends"
        )
    debt_date = on or date.today()

    return [
        DebtDraft(
            friend_id=friend_id,
            amount=per_person,
            direction=parsed_direction,
            description=description or None,
            date=debt_date,
        )
        for friend_id in ids
    ]


# ============================================================================
# Paid state machine
# ============================================================================


def apply_update(
    debt: Debt, patch: DebtUpdate, now: datetime | None = None
) -> Debt:
    """
    Apply an update patch to a debt and return the new version.

    - is_paid=True moves the debt to Paid and stamps paid_at with now
      (supplying it again re-stamps paid_at)
    - is_paid=False moves it back to Unpaid and clears paid_at
    - amount replaces the stored amount and must be > 0
    - description replaces the stored description

    Args:
        debt: The current debt
        patch: Fields to change; None means "leave as is"
        now: Timestamp to use for paid_at (defaults to current UTC time)

    Returns:
        A new Debt; the input is not modified

    Raises:
        ValidationError: If the patch carries a non-positive amount
    """
    changes: dict = {}

    if patch.is_paid is not None:
        changes["is_paid"] = patch.is_paid
        changes["paid_at"] = (now or utcnow()) if patch.is_paid else None

    if patch.amount is not None:
        amount = to_amount(patch.amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than 0")
        changes["amount"] = amount

    if patch.description is not None:
        changes["description"] = patch.description

    return debt.model_copy(update=changes)
