"""
Payment API Schema Definitions.

Pydantic schemas for payment create/update/read endpoints. Allocation rules
(empty set, zero amounts, ceilings) are business rules checked by the engine;
these schemas only check request shape.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date as Date, datetime
from decimal import Decimal
from typing import Optional, List

from backend.app.domain.payments.types import Adjustment, AllocationRequest, TransactionRef, to_money
from backend.app.models.enums import AdjustmentType, BalanceType, PaymentType, SourceType


class AllocationIn(BaseModel):
    """One requested allocation."""
    source_type: SourceType
    source_id: Optional[int] = Field(None, description="Row id; omitted for current-balance")
    paid_amount: Decimal = Field(..., decimal_places=2, description="Amount settled against this obligation")

    @model_validator(mode="after")
    def check_source_id(self):
        if self.source_type == SourceType.CURRENT_BALANCE:
            if self.source_id is not None:
                raise ValueError("source_id must be omitted for current-balance")
        elif self.source_id is None:
            raise ValueError(f"source_id is required for {self.source_type.value}")
        return self

    def to_request(self) -> AllocationRequest:
        return AllocationRequest(
            ref=TransactionRef(self.source_type, self.source_id),
            paid_amount=to_money(self.paid_amount),
        )


class PaymentCreate(BaseModel):
    """Schema for creating or replacing a payment."""
    contact_id: int
    bank_account_id: Optional[int] = None
    date: Date
    description: Optional[str] = Field(None, max_length=500)
    adjustment_type: AdjustmentType = AdjustmentType.NONE
    adjustment_value: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    allocations: List[AllocationIn] = []

    @model_validator(mode="after")
    def check_unique_allocations(self):
        seen = set()
        for allocation in self.allocations:
            key = (allocation.source_type, allocation.source_id)
            if key in seen:
                raise ValueError(
                    f"Duplicate allocation for {allocation.source_type.value} {allocation.source_id}"
                )
            seen.add(key)
        return self

    def to_adjustment(self) -> Adjustment:
        return Adjustment(self.adjustment_type, to_money(self.adjustment_value))

    def to_requests(self) -> List[AllocationRequest]:
        return [allocation.to_request() for allocation in self.allocations]


class PaymentUpdate(PaymentCreate):
    """Schema for editing a payment. The full allocation set is replaced."""


class AllocationResponse(BaseModel):
    """Schema for a stored allocation."""
    id: int
    source_type: SourceType
    source_id: Optional[int]
    balance_type: BalanceType
    amount: Decimal
    paid_amount: Decimal

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    """Schema for payment response."""
    id: int
    payment_number: str
    contact_id: int
    bank_account_id: Optional[int]
    date: Date
    description: Optional[str]
    payment_type: PaymentType
    amount: Decimal
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    created_at: datetime
    updated_at: Optional[datetime]
    allocations: List[AllocationResponse] = []

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    """Schema for paginated payment list."""
    payments: List[PaymentResponse]
    total: int
    page: int
    page_size: int
