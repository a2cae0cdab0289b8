"""
Payment API Endpoints.

Create, edit, delete and read payments. Every write goes through the
reconciliation service in a single transaction; the audit entry is written
after it commits.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.db.session import get_db
from backend.app.domain.payments.payment_store import PaymentRecordStore
from backend.app.domain.payments.reconciliation import (
    CommittedPayment, PaymentCommand, ReconciliationService,
)
from backend.app.models.enums import PaymentType
from backend.app.models.payment import Payment
from backend.app.models.payment_allocation import PaymentAllocation
from backend.app.schemas.payment import (
    AllocationResponse, PaymentCreate, PaymentListResponse, PaymentResponse, PaymentUpdate,
)
from backend.app.services.audit import AuditAction, log_event

router = APIRouter(prefix="/payments", tags=["Payments"])


def to_payment_response(payment: Payment, allocations: List[PaymentAllocation]) -> PaymentResponse:
    response = PaymentResponse.model_validate(payment)
    response.allocations = [AllocationResponse.model_validate(row) for row in allocations]
    return response


def to_command(request: PaymentCreate) -> PaymentCommand:
    return PaymentCommand(
        contact_id=request.contact_id,
        bank_account_id=request.bank_account_id,
        date=request.date,
        description=request.description,
        adjustment=request.to_adjustment(),
        allocations=request.to_requests(),
    )


def audit_metadata(committed: CommittedPayment) -> dict:
    return {
        "payment_number": committed.payment.payment_number,
        "contact_id": committed.payment.contact_id,
        "bank_account_id": committed.payment.bank_account_id,
        "net": str(committed.effect.net),
        "bank_delta": str(committed.effect.bank_delta),
        "allocations": [
            {
                "source_type": row.source_type.value,
                "source_id": row.source_id,
                "paid_amount": str(row.paid_amount),
            }
            for row in committed.allocations
        ],
    }


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: PaymentCreate,
    x_actor: Optional[str] = Header(None, description="Who is recording the payment (audit only)"),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a payment against a contact's outstanding items.

    Over-allocation is rejected (400), never clamped.
    """
    committed = await ReconciliationService(db).create_payment(to_command(request))

    await log_event(
        db=db,
        action=AuditAction.PAYMENT_CREATED,
        entity_type="payment",
        entity_id=committed.payment.id,
        actor=x_actor,
        metadata=audit_metadata(committed)
    )

    return to_payment_response(committed.payment, committed.allocations)


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    contact_id: Optional[int] = Query(None, description="Filter by contact"),
    bank_account_id: Optional[int] = Query(None, description="Filter by bank account"),
    payment_type: Optional[PaymentType] = Query(None, description="receipt or payment"),
    start_date: Optional[date] = Query(None, description="Earliest payment date"),
    end_date: Optional[date] = Query(None, description="Latest payment date"),
    search: Optional[str] = Query(None, description="Matches payment number or description"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: Optional[int] = Query(None, ge=1, le=settings.max_page_size, description="Items per page"),
    db: AsyncSession = Depends(get_db)
):
    """List live payments, newest first."""
    page_size = page_size or settings.default_page_size
    rows, total = await PaymentRecordStore(db).list_payments(
        contact_id=contact_id,
        bank_account_id=bank_account_id,
        payment_type=payment_type,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=page_size,
    )

    return PaymentListResponse(
        payments=[to_payment_response(payment, allocations) for payment, allocations in rows],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get a payment with its current allocations. Deleted payments are not found."""
    payment, allocations = await PaymentRecordStore(db).get(payment_id)
    return to_payment_response(payment, allocations)


@router.put("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: int,
    request: PaymentUpdate,
    x_actor: Optional[str] = Header(None, description="Who is editing the payment (audit only)"),
    db: AsyncSession = Depends(get_db)
):
    """
    Replace a payment's allocations, adjustment and header fields.

    The previous effect is reversed exactly before the new one is applied.
    """
    committed = await ReconciliationService(db).update_payment(payment_id, to_command(request))

    await log_event(
        db=db,
        action=AuditAction.PAYMENT_UPDATED,
        entity_type="payment",
        entity_id=payment_id,
        actor=x_actor,
        metadata=audit_metadata(committed)
    )

    return to_payment_response(committed.payment, committed.allocations)


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: int,
    x_actor: Optional[str] = Header(None, description="Who is deleting the payment (audit only)"),
    db: AsyncSession = Depends(get_db)
):
    """Reverse a payment's effect and soft-delete it."""
    payment = await ReconciliationService(db).delete_payment(payment_id)

    await log_event(
        db=db,
        action=AuditAction.PAYMENT_DELETED,
        entity_type="payment",
        entity_id=payment.id,
        actor=x_actor,
        metadata={"payment_number": payment.payment_number, "contact_id": payment.contact_id}
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
