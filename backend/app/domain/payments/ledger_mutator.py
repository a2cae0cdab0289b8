"""
Ledger Mutator.

Pure arithmetic that turns a validated allocation set plus adjustment into
balance deltas, and the exact inverse of those deltas.

Sign convention: a contact balance is viewed as one signed number,
positive = receivable, negative = payable. A positive net means the
contact's receivable position shrinks (we collected), a negative net means
the payable position shrinks (we paid out).

    net = receivable - payable + discount - (surcharge | extra_receipt)
    contact_signed' = contact_signed - net
    bank_balance'   = bank_balance + (receivable - payable)

Adjustments never reach the bank leg.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from backend.app.domain.payments.types import (
    Adjustment, AppliedAllocation, TransactionRef, ZERO, to_money,
)
from backend.app.models.enums import AdjustmentType, BalanceType, PaymentType


@dataclass(frozen=True)
class LedgerEffect:
    """
    Signed deltas produced by one payment.

    contact_delta is applied to the signed contact balance, bank_delta to
    the bank account, and obligation_deltas to each real obligation's
    paid_amount.
    """
    net: Decimal
    contact_delta: Decimal
    bank_delta: Decimal
    obligation_deltas: Tuple[Tuple[TransactionRef, Decimal], ...] = ()

    def inverse(self) -> "LedgerEffect":
        return LedgerEffect(
            net=-self.net,
            contact_delta=-self.contact_delta,
            bank_delta=-self.bank_delta,
            obligation_deltas=tuple((ref, -delta) for ref, delta in self.obligation_deltas),
        )


def split_totals(allocations: Iterable[AppliedAllocation]) -> Tuple[Decimal, Decimal]:
    """Return (total_receivable, total_payable) of the allocated amounts."""
    receivable = ZERO
    payable = ZERO
    for allocation in allocations:
        if allocation.balance_type == BalanceType.RECEIVABLE:
            receivable += allocation.paid_amount
        elif allocation.balance_type == BalanceType.PAYABLE:
            payable += allocation.paid_amount
        else:
            raise ValueError(f"Allocation to {allocation.ref} has no balance direction")
    return receivable, payable


def compute_net(allocations: Iterable[AppliedAllocation], adjustment: Adjustment) -> Decimal:
    receivable, payable = split_totals(allocations)
    net = receivable - payable
    if adjustment.adjustment_type == AdjustmentType.DISCOUNT:
        net += adjustment.amount
    elif adjustment.adjustment_type in (AdjustmentType.SURCHARGE, AdjustmentType.EXTRA_RECEIPT):
        net -= adjustment.amount
    return to_money(net)


def compute_effect(allocations, adjustment: Adjustment) -> LedgerEffect:
    """Deltas of applying a payment."""
    allocations = list(allocations)
    receivable, payable = split_totals(allocations)
    net = compute_net(allocations, adjustment)

    obligation_deltas: Dict[TransactionRef, Decimal] = {}
    for allocation in allocations:
        if allocation.ref.is_current_balance:
            continue
        obligation_deltas[allocation.ref] = obligation_deltas.get(allocation.ref, ZERO) + allocation.paid_amount

    return LedgerEffect(
        net=net,
        contact_delta=-net,
        bank_delta=to_money(receivable - payable),
        obligation_deltas=tuple(obligation_deltas.items()),
    )


def compute_reversal(allocations, adjustment: Adjustment) -> LedgerEffect:
    """
    Deltas that undo a stored payment.

    Runs the same formulas over the stored allocations and adjustment with
    every amount negated; current obligation state is never consulted.
    """
    negated = [
        AppliedAllocation(
            ref=allocation.ref,
            balance_type=allocation.balance_type,
            amount=allocation.amount,
            paid_amount=-allocation.paid_amount,
        )
        for allocation in allocations
    ]
    return compute_effect(negated, Adjustment(adjustment.adjustment_type, -adjustment.value))


def to_signed(balance_amount: Decimal, balance_type: BalanceType) -> Decimal:
    if balance_type == BalanceType.PAYABLE:
        return -to_money(balance_amount)
    return to_money(balance_amount)


def from_signed(signed: Decimal) -> Tuple[Decimal, BalanceType]:
    signed = to_money(signed)
    if signed > ZERO:
        return signed, BalanceType.RECEIVABLE
    if signed < ZERO:
        return -signed, BalanceType.PAYABLE
    return ZERO, BalanceType.NONE


def apply_contact_delta(balance_amount: Decimal, balance_type: BalanceType, delta: Decimal) -> Tuple[Decimal, BalanceType]:
    """New (magnitude, direction) of a contact balance after a signed delta."""
    return from_signed(to_signed(balance_amount, balance_type) + delta)


def payment_type_for(effect: LedgerEffect) -> PaymentType:
    """A receipt when money came in, a payment otherwise."""
    return PaymentType.RECEIPT if effect.bank_delta > ZERO else PaymentType.PAYMENT
