"""
Expense database model.

Expense owed to a contact.
"""

from backend.app.db.session import Base
from backend.app.models.enums import BalanceType
from backend.app.models.obligation import ObligationMixin


class Expense(ObligationMixin, Base):
    __tablename__ = "expenses"

    balance_type = BalanceType.PAYABLE
