"""
Reconciliation Service (Domain Logic).

Creates, edits and deletes payments. Each operation is exactly one database
transaction:

    Draft -> Validating -> Applying -> Committed | RolledBack

Flow for every operation:
1. Lock rows (payment -> contacts -> bank accounts -> obligations)
2. Read ceilings from the locked rows (on update, the contact balance is
   taken as it stands once the stored effect is reversed)
3. Validate the allocation set (create/update)
4. Reverse the stored effect (update/delete)
5. Apply the new effect (create/update)
6. Persist the payment record
7. Commit, or roll back on any error so no partial effect is visible

Nothing is retried here. A retry starts over with fresh locks and reads.
"""

import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    AppException, ConcurrencyError, ResourceNotFoundError, StorageError,
)
from backend.app.domain.payments.allocation_validator import validate_allocations
from backend.app.domain.payments.ledger_mutator import (
    LedgerEffect, apply_contact_delta, compute_effect, compute_reversal,
)
from backend.app.domain.payments.payment_store import (
    PaymentRecordStore, stored_adjustment, to_applied,
)
from backend.app.domain.payments.types import (
    Adjustment, AllocationRequest, AppliedAllocation, Ceiling, TransactionRef, ZERO, to_money,
)
from backend.app.models.bank_account import BankAccount
from backend.app.models.contact import Contact
from backend.app.models.enums import BalanceType
from backend.app.models.payment import Payment
from backend.app.models.payment_allocation import PaymentAllocation
from backend.app.services.ledger_locking import (
    lock_bank_accounts, lock_contacts, lock_obligations, lock_payment, set_lock_timeout,
)

logger = logging.getLogger("bookkeeping.payments")

# lock_not_available, deadlock_detected, serialization_failure
LOCK_FAILURE_SQLSTATES = {"55P03", "40P01", "40001"}


class ReconciliationState(str, enum.Enum):
    DRAFT = "DRAFT"
    VALIDATING = "VALIDATING"
    APPLYING = "APPLYING"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass(frozen=True)
class PaymentCommand:
    """Requested shape of a payment, for create and update alike."""
    contact_id: int
    date: date
    allocations: Sequence[AllocationRequest]
    bank_account_id: Optional[int] = None
    description: Optional[str] = None
    adjustment: Adjustment = field(default_factory=Adjustment)


@dataclass
class CommittedPayment:
    payment: Payment
    allocations: List[PaymentAllocation]
    effect: LedgerEffect


def is_lock_failure(exc: DBAPIError) -> bool:
    """True when the database gave up waiting for a lock."""
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code in LOCK_FAILURE_SQLSTATES:
            return True
    return "database is locked" in str(orig).lower()


class ReconciliationService:
    """
    Payment engine entry point.

    One instance per request/session. The only state kept between calls is
    the state of the last operation, for inspection.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = PaymentRecordStore(db)
        self.state = ReconciliationState.DRAFT

    async def create_payment(self, command: PaymentCommand) -> CommittedPayment:
        """
        Settle obligations of a contact with a new payment.

        Raises:
            ResourceNotFoundError: Unknown contact, bank account or obligation
            PaymentValidationError: Allocation set breaks a rule
            ConcurrencyError: Lock wait timed out (retryable)
            StorageError: The database rejected the write
        """
        async with self._operation("create", contact_id=command.contact_id):
            contact = self._require(
                await lock_contacts(self.db, [command.contact_id]), command.contact_id, "Contact"
            )
            bank = await self._lock_bank(command.bank_account_id)
            obligations = await lock_obligations(self.db, [r.ref for r in command.allocations])

            self._transition(ReconciliationState.VALIDATING)
            balance = self._balance_of(contact)
            ceilings = self._ceilings(command.allocations, contact, balance, obligations, prior_paid={})
            validated = validate_allocations(command.allocations, ceilings, command.adjustment)

            self._transition(ReconciliationState.APPLYING)
            applied = self._snapshot(validated, balance, obligations, ceilings)
            effect = compute_effect(applied, command.adjustment)
            self._apply(effect, contact, bank, obligations)

            payment, rows = await self.store.insert(
                contact_id=contact.id,
                bank_account_id=command.bank_account_id,
                payment_date=command.date,
                description=command.description,
                adjustment=command.adjustment,
                allocations=applied,
                effect=effect,
            )

        self._log_commit("create", payment, effect)
        return CommittedPayment(payment=payment, allocations=rows, effect=effect)

    async def update_payment(self, payment_id: int, command: PaymentCommand) -> CommittedPayment:
        """
        Edit a payment in place.

        The stored effect is reversed from the stored allocations and
        adjustment, and the new set is validated against the ledger as it
        stands after that reversal, then applied. The payment keeps its id
        and number.

        Raises:
            ResourceNotFoundError: Unknown/deleted payment, or unknown contact,
                bank account or obligation
            PaymentValidationError: New allocation set breaks a rule
            ConcurrencyError: Lock wait timed out (retryable)
            StorageError: The database rejected the write
        """
        async with self._operation("update", payment_id=payment_id, contact_id=command.contact_id):
            payment = await self._lock_live_payment(payment_id)
            old_allocations = to_applied(await self.store.active_allocations(payment.id))
            old_adjustment = stored_adjustment(payment)

            contacts = await lock_contacts(self.db, [payment.contact_id, command.contact_id])
            old_contact = self._require(contacts, payment.contact_id, "Contact")
            new_contact = self._require(contacts, command.contact_id, "Contact")

            banks = await lock_bank_accounts(self.db, [payment.bank_account_id, command.bank_account_id])
            old_bank = self._optional(banks, payment.bank_account_id, "Bank account")
            new_bank = self._optional(banks, command.bank_account_id, "Bank account")

            obligations = await lock_obligations(
                self.db,
                [a.ref for a in old_allocations] + [r.ref for r in command.allocations],
            )

            self._transition(ReconciliationState.VALIDATING)
            reversal = compute_reversal(old_allocations, old_adjustment)
            balance = self._balance_of(new_contact)
            if payment.contact_id == command.contact_id:
                prior_paid = self._prior_paid(old_allocations)
                # The current balance is judged as if the stored effect were already undone
                balance = apply_contact_delta(*balance, reversal.contact_delta)
            else:
                prior_paid = {}
            ceilings = self._ceilings(command.allocations, new_contact, balance, obligations, prior_paid)
            validated = validate_allocations(command.allocations, ceilings, command.adjustment)

            self._transition(ReconciliationState.APPLYING)
            applied = self._snapshot(validated, balance, obligations, ceilings)

            self._apply(reversal, old_contact, old_bank, obligations)

            effect = compute_effect(applied, command.adjustment)
            self._apply(effect, new_contact, new_bank, obligations)

            rows = await self.store.rewrite(
                payment,
                contact_id=new_contact.id,
                bank_account_id=command.bank_account_id,
                payment_date=command.date,
                description=command.description,
                adjustment=command.adjustment,
                allocations=applied,
                effect=effect,
            )

        self._log_commit("update", payment, effect, reversal=reversal)
        return CommittedPayment(payment=payment, allocations=rows, effect=effect)

    async def delete_payment(self, payment_id: int) -> Payment:
        """
        Reverse a payment's stored effect and soft-delete it.

        Raises:
            ResourceNotFoundError: Unknown or already deleted payment
            ConcurrencyError: Lock wait timed out (retryable)
            StorageError: The database rejected the write
        """
        async with self._operation("delete", payment_id=payment_id):
            payment = await self._lock_live_payment(payment_id)
            old_allocations = to_applied(await self.store.active_allocations(payment.id))

            contact = self._require(
                await lock_contacts(self.db, [payment.contact_id]), payment.contact_id, "Contact"
            )
            bank = await self._lock_bank(payment.bank_account_id)
            obligations = await lock_obligations(self.db, [a.ref for a in old_allocations])

            # Nothing to validate on delete
            self._transition(ReconciliationState.VALIDATING)
            self._transition(ReconciliationState.APPLYING)
            reversal = compute_reversal(old_allocations, stored_adjustment(payment))
            self._apply(reversal, contact, bank, obligations)

            await self.store.soft_delete(payment)

        self._log_commit("delete", payment, reversal)
        return payment

    # Transaction scope

    @asynccontextmanager
    async def _operation(self, kind: str, **context):
        self.state = ReconciliationState.DRAFT
        try:
            await set_lock_timeout(self.db)
            yield
            await self.db.commit()
        except AppException:
            await self._rollback(kind, context)
            raise
        except DBAPIError as exc:
            await self._rollback(kind, context, exc)
            if is_lock_failure(exc):
                raise ConcurrencyError() from exc
            raise StorageError() from exc
        except SQLAlchemyError as exc:
            await self._rollback(kind, context, exc)
            raise StorageError() from exc
        except Exception as exc:
            await self._rollback(kind, context, exc)
            raise
        self._transition(ReconciliationState.COMMITTED)

    async def _rollback(self, kind: str, context: dict, exc: Exception = None) -> None:
        failed_in = self.state
        await self.db.rollback()
        self._transition(ReconciliationState.ROLLED_BACK)
        logger.warning(
            "Payment operation rolled back",
            extra={
                "operation": kind,
                "failed_in": failed_in.value,
                "error": type(exc).__name__ if exc else None,
                **context,
            },
        )

    def _transition(self, state: ReconciliationState) -> None:
        logger.debug("Payment state %s -> %s", self.state.value, state.value)
        self.state = state

    def _log_commit(self, kind: str, payment: Payment, effect: LedgerEffect, reversal: LedgerEffect = None) -> None:
        extra = {
            "operation": kind,
            "payment_id": payment.id,
            "contact_id": payment.contact_id,
            "bank_account_id": payment.bank_account_id,
            "net": str(effect.net),
            "contact_delta": str(effect.contact_delta),
            "bank_delta": str(effect.bank_delta),
        }
        if reversal is not None:
            extra["reversed_contact_delta"] = str(reversal.contact_delta)
            extra["reversed_bank_delta"] = str(reversal.bank_delta)
        logger.info("Payment committed", extra=extra)

    # Locked reads

    async def _lock_live_payment(self, payment_id: int) -> Payment:
        payment = await lock_payment(self.db, payment_id)
        if payment is None or payment.deleted_at is not None:
            raise ResourceNotFoundError("Payment", payment_id)
        return payment

    async def _lock_bank(self, bank_account_id: Optional[int]) -> Optional[BankAccount]:
        if bank_account_id is None:
            return None
        return self._require(await lock_bank_accounts(self.db, [bank_account_id]), bank_account_id, "Bank account")

    @staticmethod
    def _require(rows: Dict, key, resource: str):
        row = rows.get(key)
        if row is None:
            raise ResourceNotFoundError(resource, key)
        return row

    @classmethod
    def _optional(cls, rows: Dict, key, resource: str):
        if key is None:
            return None
        return cls._require(rows, key, resource)

    # Ceilings and snapshots

    @staticmethod
    def _prior_paid(allocations: Sequence[AppliedAllocation]) -> Dict[TransactionRef, Decimal]:
        prior = {}
        for allocation in allocations:
            prior[allocation.ref] = prior.get(allocation.ref, ZERO) + allocation.paid_amount
        return {ref: to_money(amount) for ref, amount in prior.items()}

    @staticmethod
    def _balance_of(contact: Contact) -> Tuple[Decimal, BalanceType]:
        return to_money(contact.balance_amount), contact.balance_type

    @staticmethod
    def _ceilings(
        requests: Sequence[AllocationRequest],
        contact: Contact,
        balance: Tuple[Decimal, BalanceType],
        obligations: Dict[TransactionRef, object],
        prior_paid: Dict[TransactionRef, Decimal],
    ) -> Dict[TransactionRef, Ceiling]:
        """
        Ceiling per requested obligation, from rows read under lock.

        The current-balance ceiling is the given balance, which on edit
        already has the stored effect taken out, so it never adds prior.
        """
        ceilings = {}
        for request in requests:
            ref = request.ref
            if ref.is_current_balance:
                ceilings[ref] = Ceiling(pending_amount=balance[0])
                continue
            row = obligations.get(ref)
            if (
                row is None
                or row.contact_id != contact.id
                or (row.deleted_at is not None and ref not in prior_paid)
            ):
                raise ResourceNotFoundError(ref.source_type.value.capitalize(), ref.source_id)
            pending = to_money(row.pending_amount)
            ceilings[ref] = Ceiling(pending_amount=pending, prior_paid_amount=prior_paid.get(ref))
        return ceilings

    @staticmethod
    def _snapshot(
        requests: Sequence[AllocationRequest],
        balance: Tuple[Decimal, BalanceType],
        obligations: Dict[TransactionRef, object],
        ceilings: Dict[TransactionRef, Ceiling],
    ) -> List[AppliedAllocation]:
        """
        Freeze direction and available amount of each allocation.

        A validated current-balance allocation implies a non-zero balance,
        so its direction is never NONE.
        """
        applied = []
        for request in requests:
            ref = request.ref
            if ref.is_current_balance:
                balance_type = balance[1]
            else:
                balance_type = obligations[ref].balance_type
            applied.append(AppliedAllocation(
                ref=ref,
                balance_type=balance_type,
                amount=ceilings[ref].limit,
                paid_amount=to_money(request.paid_amount),
            ))
        return applied

    # Mutation

    @staticmethod
    def _apply(
        effect: LedgerEffect,
        contact: Contact,
        bank: Optional[BankAccount],
        obligations: Dict[TransactionRef, object],
    ) -> None:
        """Apply a computed effect to locked rows. Flushed with the payment record."""
        contact.balance_amount, contact.balance_type = apply_contact_delta(
            to_money(contact.balance_amount), contact.balance_type, effect.contact_delta
        )
        if bank is not None:
            bank.current_balance = to_money(bank.current_balance) + effect.bank_delta
        for ref, delta in effect.obligation_deltas:
            row = obligations.get(ref)
            if row is None:
                raise ResourceNotFoundError(ref.source_type.value.capitalize(), ref.source_id)
            row.paid_amount = to_money(row.paid_amount) + delta
