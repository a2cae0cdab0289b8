"""
Obligation source registry.

Maps each real SourceType to its table. The current-balance item is absent
on purpose: it has no backing row.
"""

from backend.app.models.enums import SourceType
from backend.app.models.sale import Sale
from backend.app.models.purchase import Purchase
from backend.app.models.expense import Expense
from backend.app.models.income import Income

SOURCE_MODELS = {
    SourceType.SALE: Sale,
    SourceType.PURCHASE: Purchase,
    SourceType.EXPENSE: Expense,
    SourceType.INCOME: Income,
}

# Listing and locking order
SOURCE_ORDER = (SourceType.SALE, SourceType.PURCHASE, SourceType.EXPENSE, SourceType.INCOME)
