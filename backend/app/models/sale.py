"""
Sale database model.

Sales invoice issued to a customer.
"""

from backend.app.db.session import Base
from backend.app.models.enums import BalanceType
from backend.app.models.obligation import ObligationMixin


class Sale(ObligationMixin, Base):
    __tablename__ = "sales"

    balance_type = BalanceType.RECEIVABLE
