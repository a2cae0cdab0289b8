"""
Payment Record Store.

Persistence of payment headers and their allocation rows. Allocation rows
are append-only: an edit supersedes the old set and appends a new one, and a
delete only stamps the header. Nothing here touches balances.
"""

from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.domain.payments.ledger_mutator import LedgerEffect, payment_type_for
from backend.app.domain.payments.types import Adjustment, AppliedAllocation, TransactionRef, to_money
from backend.app.models.enums import PaymentType
from backend.app.models.payment import Payment
from backend.app.models.payment_allocation import PaymentAllocation


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_payment_number(payment_date: date, payment_id: int) -> str:
    return f"PY-{payment_date.year}-{payment_id:04d}"


def to_applied(rows: Sequence[PaymentAllocation]) -> List[AppliedAllocation]:
    """Stored allocation rows as the mutator's input."""
    return [
        AppliedAllocation(
            ref=TransactionRef(row.source_type, row.source_id),
            balance_type=row.balance_type,
            amount=to_money(row.amount),
            paid_amount=to_money(row.paid_amount),
        )
        for row in rows
    ]


def stored_adjustment(payment: Payment) -> Adjustment:
    return Adjustment(payment.adjustment_type, to_money(payment.adjustment_value))


class PaymentRecordStore:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def active_allocations(self, payment_id: int) -> List[PaymentAllocation]:
        result = await self.db.execute(
            select(PaymentAllocation)
            .where(
                PaymentAllocation.payment_id == payment_id,
                PaymentAllocation.superseded_at.is_(None),
            )
            .order_by(PaymentAllocation.id)
        )
        return list(result.scalars().all())

    async def insert(
        self,
        contact_id: int,
        bank_account_id: Optional[int],
        payment_date: date,
        description: Optional[str],
        adjustment: Adjustment,
        allocations: Sequence[AppliedAllocation],
        effect: LedgerEffect,
    ) -> Tuple[Payment, List[PaymentAllocation]]:
        """
        Insert a payment header and its allocations.

        The payment number is derived from the new id, so it is unique
        without a separate counter.
        """
        payment = Payment(
            contact_id=contact_id,
            bank_account_id=bank_account_id,
            date=payment_date,
            description=description,
            adjustment_type=adjustment.adjustment_type,
            adjustment_value=adjustment.value,
            payment_type=payment_type_for(effect),
            amount=abs(effect.bank_delta),
        )
        self.db.add(payment)
        await self.db.flush()  # To get payment.id

        payment.payment_number = format_payment_number(payment_date, payment.id)
        rows = self._append_allocations(payment.id, allocations)
        await self.db.flush()
        await self.db.refresh(payment)  # Server-side timestamps

        return payment, rows

    async def rewrite(
        self,
        payment: Payment,
        contact_id: int,
        bank_account_id: Optional[int],
        payment_date: date,
        description: Optional[str],
        adjustment: Adjustment,
        allocations: Sequence[AppliedAllocation],
        effect: LedgerEffect,
    ) -> List[PaymentAllocation]:
        """Update a payment in place: same id, superseded allocation set, new one appended."""
        await self.db.execute(
            update(PaymentAllocation)
            .where(
                PaymentAllocation.payment_id == payment.id,
                PaymentAllocation.superseded_at.is_(None),
            )
            .values(superseded_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        payment.contact_id = contact_id
        payment.bank_account_id = bank_account_id
        payment.date = payment_date
        payment.description = description
        payment.adjustment_type = adjustment.adjustment_type
        payment.adjustment_value = adjustment.value
        payment.payment_type = payment_type_for(effect)
        payment.amount = abs(effect.bank_delta)
        payment.updated_at = utcnow()

        rows = self._append_allocations(payment.id, allocations)
        await self.db.flush()
        return rows

    async def soft_delete(self, payment: Payment) -> Payment:
        payment.deleted_at = utcnow()
        await self.db.flush()
        return payment

    async def get(self, payment_id: int) -> Tuple[Payment, List[PaymentAllocation]]:
        """
        Fetch a live payment with its active allocations.

        Raises:
            ResourceNotFoundError: If the payment does not exist or was deleted
        """
        result = await self.db.execute(
            select(Payment).where(Payment.id == payment_id, Payment.deleted_at.is_(None))
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise ResourceNotFoundError("Payment", payment_id)
        return payment, await self.active_allocations(payment.id)

    async def list_payments(
        self,
        contact_id: Optional[int] = None,
        bank_account_id: Optional[int] = None,
        payment_type: Optional[PaymentType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Tuple[Payment, List[PaymentAllocation]]], int]:
        """
        List live payments, newest first, with their active allocations.

        Returns:
            (page of (payment, allocations), total matching count)
        """
        conditions = [Payment.deleted_at.is_(None)]
        if contact_id:
            conditions.append(Payment.contact_id == contact_id)
        if bank_account_id:
            conditions.append(Payment.bank_account_id == bank_account_id)
        if payment_type:
            conditions.append(Payment.payment_type == payment_type)
        if start_date:
            conditions.append(Payment.date >= start_date)
        if end_date:
            conditions.append(Payment.date <= end_date)
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                Payment.payment_number.ilike(pattern),
                Payment.description.ilike(pattern),
            ))

        total = (await self.db.execute(
            select(func.count(Payment.id)).where(*conditions)
        )).scalar()

        result = await self.db.execute(
            select(Payment)
            .where(*conditions)
            .order_by(Payment.date.desc(), Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        payments = list(result.scalars().all())

        by_payment: Dict[int, List[PaymentAllocation]] = {payment.id: [] for payment in payments}
        if payments:
            allocation_result = await self.db.execute(
                select(PaymentAllocation)
                .where(
                    PaymentAllocation.payment_id.in_(list(by_payment)),
                    PaymentAllocation.superseded_at.is_(None),
                )
                .order_by(PaymentAllocation.payment_id, PaymentAllocation.id)
            )
            for row in allocation_result.scalars():
                by_payment[row.payment_id].append(row)

        return [(payment, by_payment[payment.id]) for payment in payments], total

    def _append_allocations(self, payment_id: int, allocations: Sequence[AppliedAllocation]) -> List[PaymentAllocation]:
        rows = [
            PaymentAllocation(
                payment_id=payment_id,
                source_type=allocation.ref.source_type,
                source_id=allocation.ref.source_id,
                balance_type=allocation.balance_type,
                amount=allocation.amount,
                paid_amount=allocation.paid_amount,
            )
            for allocation in allocations
        ]
        self.db.add_all(rows)
        return rows
