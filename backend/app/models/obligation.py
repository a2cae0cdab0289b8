"""
Shared columns for the obligation tables (sales, purchases, expenses, incomes).

Each table is a separate model; the payment engine reads them through a
single polymorphic view keyed by SourceType.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func
from backend.app.models.enums import BalanceType


class ObligationMixin:
    """
    Columns common to every obligation.

    pending_amount is derived (total - paid) and never stored.
    """

    # Overridden by each concrete model
    balance_type = BalanceType.PAYABLE

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    @declared_attr
    def contact_id(cls):
        return Column(Integer, ForeignKey("contacts.id"), nullable=False, index=True)

    reference = Column(String(100), nullable=True)  # Invoice number or note
    date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)

    total_amount = Column(Numeric(14, 2), nullable=False)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=0)

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint("paid_amount >= 0", name=f"ck_{cls.__tablename__}_paid_non_negative"),
            CheckConstraint("paid_amount <= total_amount", name=f"ck_{cls.__tablename__}_paid_within_total"),
        )

    @property
    def pending_amount(self):
        return self.total_amount - self.paid_amount

    def __repr__(self):
        return (
            f"<{type(self).__name__}(id={self.id}, contact_id={self.contact_id}, "
            f"total={self.total_amount}, paid={self.paid_amount})>"
        )
