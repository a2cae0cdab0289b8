"""
Allocation Validator.

Checks a proposed allocation set against the ceilings the orchestrator read
under lock. Rules run in order and the first failure wins:

1. at least one allocation               -> EmptyAllocation
2. every paid_amount > 0                 -> ZeroAllocation
3. total paid per obligation <= ceiling  -> OverAllocation
   (ceiling is the pending amount, or prior + pending for an obligation the
   edited payment already allocated to)
4. adjustment type set => value > 0      -> AdjustmentRequired

Over-allocation is rejected, never clamped.
"""

from decimal import Decimal
from typing import Dict, List, Mapping, Sequence

from backend.app.core.exceptions import PaymentValidationError
from backend.app.domain.payments.types import Adjustment, AllocationRequest, Ceiling, TransactionRef, ZERO
from backend.app.models.enums import AdjustmentType


def validate_allocations(
    requests: Sequence[AllocationRequest],
    ceilings: Mapping[TransactionRef, Ceiling],
    adjustment: Adjustment,
) -> List[AllocationRequest]:
    """
    Validate an allocation set.

    Args:
        requests: Proposed allocations
        ceilings: Authoritative ceiling for every requested obligation
        adjustment: Payment-level adjustment

    Returns:
        The validated allocations, in request order

    Raises:
        PaymentValidationError: On the first violated rule
    """
    if not requests:
        raise PaymentValidationError(
            "EmptyAllocation",
            "A payment needs at least one allocation"
        )

    for request in requests:
        if request.paid_amount <= ZERO:
            raise PaymentValidationError(
                "ZeroAllocation",
                f"Allocation to {_describe(request.ref)} must be greater than zero",
                details={**request.ref.as_dict(), "requested": str(request.paid_amount)}
            )

    # Repeated refs draw on one ceiling
    requested: Dict[TransactionRef, Decimal] = {}
    for request in requests:
        requested[request.ref] = requested.get(request.ref, ZERO) + request.paid_amount

    for ref, paid_amount in requested.items():
        limit = ceilings[ref].limit
        if paid_amount > limit:
            raise PaymentValidationError(
                "OverAllocation",
                f"Allocation of {paid_amount} to {_describe(ref)} exceeds the {limit} available",
                details={
                    **ref.as_dict(),
                    "requested": str(paid_amount),
                    "ceiling": str(limit),
                }
            )

    if adjustment.adjustment_type != AdjustmentType.NONE and adjustment.value <= ZERO:
        raise PaymentValidationError(
            "AdjustmentRequired",
            f"Adjustment '{adjustment.adjustment_type.value}' needs a value greater than zero",
            details={"adjustment_type": adjustment.adjustment_type.value}
        )

    return list(requests)


def _describe(ref: TransactionRef) -> str:
    if ref.is_current_balance:
        return "current balance"
    return f"{ref.source_type.value} {ref.source_id}"
