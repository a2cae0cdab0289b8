"""
Contact database model.

A customer or supplier with a running balance against the business.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, Numeric, CheckConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import BalanceType


class Contact(Base):
    """
    Contact model.

    The balance is stored as a non-negative magnitude plus a direction:
    RECEIVABLE (they owe us), PAYABLE (we owe them) or NONE when the
    magnitude is zero. Only the payment engine mutates it, under a row lock.
    """
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    # Running balance
    balance_amount = Column(Numeric(14, 2), nullable=False, default=0)
    balance_type = Column(Enum(BalanceType), nullable=False, default=BalanceType.NONE)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("balance_amount >= 0", name="ck_contacts_balance_non_negative"),
    )

    def __repr__(self):
        return f"<Contact(id={self.id}, name='{self.name}', balance={self.balance_amount} {self.balance_type.value})>"
