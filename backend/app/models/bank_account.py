"""
Bank Account database model.

Cash side of a payment. Overdraft is allowed, so the balance is signed.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.sql import func
from backend.app.db.session import Base


class BankAccount(Base):
    """
    Bank account model.

    current_balance moves by the raw allocated total of every payment routed
    through the account; adjustments never touch it.
    """
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_name = Column(String(255), nullable=False)
    account_type = Column(String(50), nullable=False, default="bank")

    current_balance = Column(Numeric(14, 2), nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<BankAccount(id={self.id}, name='{self.account_name}', balance={self.current_balance})>"
