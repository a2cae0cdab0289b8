"""
Ledger enumerations.

Shared by the models, the payment engine and the API schemas.
"""

import enum


class BalanceType(str, enum.Enum):
    """
    Direction of an outstanding amount.

    Values:
        RECEIVABLE: The contact owes the business
        PAYABLE: The business owes the contact
        NONE: Nothing outstanding (only valid for a zero contact balance)
    """
    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    NONE = "none"


class SourceType(str, enum.Enum):
    """Kinds of obligation a payment can be allocated against."""
    SALE = "sale"
    PURCHASE = "purchase"
    EXPENSE = "expense"
    INCOME = "income"
    CURRENT_BALANCE = "current-balance"  # Synthetic, no backing row


class AdjustmentType(str, enum.Enum):
    """Adjustment applied on top of the allocated total."""
    NONE = "none"
    DISCOUNT = "discount"
    SURCHARGE = "surcharge"
    EXTRA_RECEIPT = "extra_receipt"


class PaymentType(str, enum.Enum):
    """Derived from the sign of the allocated net."""
    RECEIPT = "receipt"  # Money came in
    PAYMENT = "payment"  # Money went out
