"""
Pending Transaction Resolver.

Read-only listing of everything a contact still owes or is owed: every
obligation row with a pending amount, plus one current-balance item when the
contact's running balance is non-zero.

Never authoritative during mutation; the orchestrator re-reads under lock.
"""

from typing import AsyncIterator, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.domain.payments.sources import SOURCE_MODELS, SOURCE_ORDER
from backend.app.domain.payments.types import (
    CURRENT_BALANCE_REF, PendingTransaction, TransactionRef, ZERO, to_money,
)
from backend.app.models.contact import Contact
from backend.app.models.enums import SourceType


def current_balance_item(contact: Contact) -> PendingTransaction:
    """The synthetic obligation standing for the contact's running balance."""
    balance = to_money(contact.balance_amount)
    return PendingTransaction(
        ref=CURRENT_BALANCE_REF,
        total_amount=balance,
        paid_amount=ZERO,
        pending_amount=balance,
        balance_type=contact.balance_type,
        reference="Current Balance",
    )


def pending_from_row(source_type: SourceType, row) -> PendingTransaction:
    return PendingTransaction(
        ref=TransactionRef(source_type, row.id),
        total_amount=to_money(row.total_amount),
        paid_amount=to_money(row.paid_amount),
        pending_amount=to_money(row.pending_amount),
        balance_type=row.balance_type,
        reference=row.reference,
        date=row.date,
        due_date=row.due_date,
    )


class PendingTransactionResolver:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def iter_pending(self, contact_id: int) -> AsyncIterator[PendingTransaction]:
        """
        Lazily yield the contact's outstanding items.

        Each call starts a fresh pass; tables are queried one at a time as
        the caller advances. Order: current balance, then sales, purchases,
        expenses and incomes, each by date then id.

        Raises:
            ResourceNotFoundError: If the contact does not exist
        """
        contact = await self.get_contact(contact_id)

        if contact.balance_amount > ZERO:
            yield current_balance_item(contact)

        for source_type in SOURCE_ORDER:
            model = SOURCE_MODELS[source_type]
            result = await self.db.execute(
                select(model)
                .where(
                    model.contact_id == contact_id,
                    model.deleted_at.is_(None),
                    model.paid_amount < model.total_amount,
                )
                .order_by(model.date, model.id)
                .execution_options(populate_existing=True)
            )
            for row in result.scalars():
                yield pending_from_row(source_type, row)

    async def resolve(self, contact_id: int) -> List[PendingTransaction]:
        return [item async for item in self.iter_pending(contact_id)]

    async def get_contact(self, contact_id: int) -> Contact:
        result = await self.db.execute(
            select(Contact)
            .where(Contact.id == contact_id)
            .execution_options(populate_existing=True)
        )
        contact = result.scalar_one_or_none()
        if not contact:
            raise ResourceNotFoundError("Contact", contact_id)
        return contact
