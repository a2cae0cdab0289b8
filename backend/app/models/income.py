"""
Income database model.

Non-sales income owed by a contact.
"""

from backend.app.db.session import Base
from backend.app.models.enums import BalanceType
from backend.app.models.obligation import ObligationMixin


class Income(ObligationMixin, Base):
    __tablename__ = "incomes"

    balance_type = BalanceType.RECEIVABLE
