"""
Payment Allocation database model.

Append-only record of the part of a payment applied to one obligation.
"""

from sqlalchemy import Column, Integer, DateTime, Enum, Numeric, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import BalanceType, SourceType


class PaymentAllocation(Base):
    """
    Payment allocation model.

    balance_type and amount are snapshotted when the allocation is made and
    are never re-derived. source_id is NULL for the current-balance item.
    When a payment is edited the previous rows are stamped superseded_at and
    a fresh set is appended; rows are never updated otherwise or deleted.
    """
    __tablename__ = "payment_allocations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    payment_id = Column(Integer, ForeignKey('payments.id'), nullable=False, index=True)

    # Allocation target
    source_type = Column(Enum(SourceType), nullable=False)
    source_id = Column(Integer, nullable=True, index=True)

    # Snapshot at allocation time
    balance_type = Column(Enum(BalanceType), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)  # pending before this allocation
    paid_amount = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    superseded_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (
            f"<PaymentAllocation(id={self.id}, payment_id={self.payment_id}, "
            f"source='{self.source_type.value}:{self.source_id}', paid={self.paid_amount})>"
        )
