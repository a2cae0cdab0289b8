"""
Contact ledger endpoints.

Read-only: what a contact still owes or is owed, and their running balance.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.payments.pending_resolver import PendingTransactionResolver
from backend.app.domain.payments.types import to_money
from backend.app.schemas.contact import (
    ContactBalanceResponse, PendingTransactionListResponse, PendingTransactionResponse,
)

router = APIRouter(prefix="/contacts", tags=["Contacts"])


@router.get("/{contact_id}/pending-transactions", response_model=PendingTransactionListResponse)
async def list_pending_transactions(
    contact_id: int,
    db: AsyncSession = Depends(get_db)
):
    """
    List a contact's outstanding items.

    The current balance comes first when non-zero, then sales, purchases,
    expenses and incomes with a pending amount. Informational only: amounts
    are re-checked under lock when a payment is recorded.
    """
    items = await PendingTransactionResolver(db).resolve(contact_id)

    return PendingTransactionListResponse(
        contact_id=contact_id,
        transactions=[
            PendingTransactionResponse(
                source_type=item.ref.source_type,
                source_id=item.ref.source_id,
                reference=item.reference,
                date=item.date,
                due_date=item.due_date,
                total_amount=item.total_amount,
                paid_amount=item.paid_amount,
                pending_amount=item.pending_amount,
                balance_type=item.balance_type,
            )
            for item in items
        ],
        total=len(items)
    )


@router.get("/{contact_id}/balance", response_model=ContactBalanceResponse)
async def get_contact_balance(
    contact_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get a contact's running balance (magnitude and direction)."""
    contact = await PendingTransactionResolver(db).get_contact(contact_id)

    return ContactBalanceResponse(
        contact_id=contact.id,
        name=contact.name,
        balance_amount=to_money(contact.balance_amount),
        balance_type=contact.balance_type
    )
