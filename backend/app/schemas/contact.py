"""
Contact ledger schemas.

Read views of a contact's outstanding items and running balance.
"""

from pydantic import BaseModel
from datetime import date as Date
from decimal import Decimal
from typing import List, Optional

from backend.app.models.enums import BalanceType, SourceType


class PendingTransactionResponse(BaseModel):
    """One outstanding obligation, or the contact's current balance."""
    source_type: SourceType
    source_id: Optional[int]
    reference: Optional[str]
    date: Optional[Date]
    due_date: Optional[Date]
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    balance_type: BalanceType


class PendingTransactionListResponse(BaseModel):
    contact_id: int
    transactions: List[PendingTransactionResponse]
    total: int


class ContactBalanceResponse(BaseModel):
    """Schema for a contact's running balance."""
    contact_id: int
    name: str
    balance_amount: Decimal
    balance_type: BalanceType
