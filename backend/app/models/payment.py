"""
Payment database model.

Header row of a settlement of one or more obligations of a contact.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum, Numeric, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import AdjustmentType, PaymentType


class Payment(Base):
    """
    Payment model.

    The adjustment and the allocation rows are the history used to reverse
    the payment's effect on edit or delete. Deletion is a soft delete
    (deleted_at is stamped, the row is kept).
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    payment_number = Column(String(50), unique=True, nullable=True, index=True)

    # Parties
    contact_id = Column(Integer, ForeignKey('contacts.id'), nullable=False, index=True)
    bank_account_id = Column(Integer, ForeignKey('bank_accounts.id'), nullable=True, index=True)

    date = Column(Date, nullable=False)
    description = Column(String(500), nullable=True)

    # Adjustment
    adjustment_type = Column(Enum(AdjustmentType), nullable=False, default=AdjustmentType.NONE)
    adjustment_value = Column(Numeric(14, 2), nullable=False, default=0)

    # Derived on every apply
    payment_type = Column(Enum(PaymentType), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)  # |bank leg|

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self):
        return f"<Payment(id={self.id}, number='{self.payment_number}', type='{self.payment_type.value}', amount={self.amount})>"
