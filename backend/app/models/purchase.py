"""
Purchase database model.

Purchase bill received from a supplier.
"""

from backend.app.db.session import Base
from backend.app.models.enums import BalanceType
from backend.app.models.obligation import ObligationMixin


class Purchase(ObligationMixin, Base):
    __tablename__ = "purchases"

    balance_type = BalanceType.PAYABLE
