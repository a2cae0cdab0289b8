"""
Value types shared by the payment engine.

Pure data, no I/O. Money is always Decimal quantized to cents.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from backend.app.models.enums import AdjustmentType, BalanceType, SourceType

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Quantize anything Decimal-compatible to two places."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TransactionRef:
    """
    Identity of an allocatable obligation.

    The current-balance item has no backing row and uses source_id=None,
    which no real row can have.
    """
    source_type: SourceType
    source_id: Optional[int] = None

    @property
    def is_current_balance(self) -> bool:
        return self.source_type == SourceType.CURRENT_BALANCE

    def as_dict(self) -> dict:
        return {"source_type": self.source_type.value, "source_id": self.source_id}


CURRENT_BALANCE_REF = TransactionRef(SourceType.CURRENT_BALANCE, None)


@dataclass(frozen=True)
class PendingTransaction:
    """Read model of one outstanding obligation."""
    ref: TransactionRef
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    balance_type: BalanceType
    reference: Optional[str] = None
    date: Optional[date] = None
    due_date: Optional[date] = None


@dataclass(frozen=True)
class AllocationRequest:
    """One requested allocation: how much of which obligation to settle."""
    ref: TransactionRef
    paid_amount: Decimal


@dataclass(frozen=True)
class Ceiling:
    """
    Authoritative limits for one allocation, read under lock.

    prior_paid_amount is set only when the payment being edited already
    allocated to this obligation.
    """
    pending_amount: Decimal
    prior_paid_amount: Optional[Decimal] = None

    @property
    def limit(self) -> Decimal:
        if self.prior_paid_amount is None:
            return self.pending_amount
        if self.pending_amount <= ZERO:
            # Fully paid since: only what this payment itself consumed is available
            return self.prior_paid_amount
        return self.prior_paid_amount + self.pending_amount


@dataclass(frozen=True)
class AppliedAllocation:
    """A validated allocation with its snapshot, as persisted and reversed."""
    ref: TransactionRef
    balance_type: BalanceType
    amount: Decimal
    paid_amount: Decimal


@dataclass(frozen=True)
class Adjustment:
    adjustment_type: AdjustmentType = AdjustmentType.NONE
    value: Decimal = ZERO

    @property
    def amount(self) -> Decimal:
        if self.adjustment_type == AdjustmentType.NONE:
            return ZERO
        return self.value


NO_ADJUSTMENT = Adjustment()
