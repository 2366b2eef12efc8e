"""Enumerations shared across Shop Ledger modules.

Centralises domain constants so that the persistence layer, the migration
step, the ledger engine, and the presentation layers rely on a single source
of truth for stored identifiers.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Mapping, NamedTuple


# Version written into every data file and every serialized record.
EXPECTED_SCHEMA_VERSION = "2.0.0"
RECORD_SCHEMA_VERSION = 2

DEFAULT_LOAN_INTEREST_RATE = Decimal("0.20")
DEFAULT_LOW_STOCK_THRESHOLD = 3
INSTALLMENT_INTERVAL_DAYS = 30
UNKNOWN_PRODUCT_NAME = "unknown product"
PAID_AT_CREATION_NOTE = "paid at creation"


class ProductCategory(str, Enum):
    """Catalog categories a product can belong to."""

    CLOTHING = "clothing"
    ELECTRONICS = "electronics"
    MISC = "misc"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms for sales and purchases."""

    INSTANT_TRANSFER = "instant_transfer"
    CASH = "cash"
    CARD = "card"
    INSTALLMENT = "installment"


# Methods that settle a sale in full at the moment it is created.
IMMEDIATE_PAYMENT_METHODS = frozenset({PaymentMethod.INSTANT_TRANSFER, PaymentMethod.CASH})


class PaymentStatus(str, Enum):
    """Settlement state of an embedded payment."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class SaleStatus(str, Enum):
    """Lifecycle state of a sale."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LoanStatus(str, Enum):
    """Lifecycle state of a loan."""

    PENDING = "pending"
    PAID = "paid"


class CashChannel(str, Enum):
    """The two independent cash-holding buckets."""

    ELECTRONIC = "electronic"
    PHYSICAL_CASH = "physical_cash"


class CashDirection(str, Enum):
    """Whether a movement brings money in or takes it out."""

    INFLOW = "inflow"
    OUTFLOW = "outflow"


class MovementType(str, Enum):
    """Semantic cash movement subtypes; each one fixes channel and direction."""

    SALE_INSTANT = "sale_instant"
    SALE_CASH = "sale_cash"
    LOAN_REPAYMENT_INSTANT = "loan_repayment_instant"
    LOAN_REPAYMENT_CASH = "loan_repayment_cash"
    LOAN_DISBURSEMENT_INSTANT = "loan_disbursement_instant"
    LOAN_DISBURSEMENT_CASH = "loan_disbursement_cash"
    PURCHASE_INSTANT = "purchase_instant"
    PURCHASE_CASH = "purchase_cash"
    EXPENSE_INSTANT = "expense_instant"
    EXPENSE_CASH = "expense_cash"
    ADJUSTMENT_IN_INSTANT = "adjustment_in_instant"
    ADJUSTMENT_IN_CASH = "adjustment_in_cash"
    ADJUSTMENT_OUT_INSTANT = "adjustment_out_instant"
    ADJUSTMENT_OUT_CASH = "adjustment_out_cash"


class MovementRule(NamedTuple):
    """Channel, direction and default description attached to a movement type."""

    channel: CashChannel
    direction: CashDirection
    label: str


MOVEMENT_RULES: Mapping[MovementType, MovementRule] = {
    MovementType.SALE_INSTANT: MovementRule(CashChannel.ELECTRONIC, CashDirection.INFLOW, "Sale proceeds (transfer)"),
    MovementType.SALE_CASH: MovementRule(CashChannel.PHYSICAL_CASH, CashDirection.INFLOW, "Sale proceeds (cash)"),
    MovementType.LOAN_REPAYMENT_INSTANT: MovementRule(CashChannel.ELECTRONIC, CashDirection.INFLOW, "Loan repayment (transfer)"),
    MovementType.LOAN_REPAYMENT_CASH: MovementRule(CashChannel.PHYSICAL_CASH, CashDirection.INFLOW, "Loan repayment (cash)"),
    MovementType.LOAN_DISBURSEMENT_INSTANT: MovementRule(CashChannel.ELECTRONIC, CashDirection.OUTFLOW, "Loan disbursement (transfer)"),
    MovementType.LOAN_DISBURSEMENT_CASH: MovementRule(CashChannel.PHYSICAL_CASH, CashDirection.OUTFLOW, "Loan disbursement (cash)"),
    MovementType.PURCHASE_INSTANT: MovementRule(CashChannel.ELECTRONIC, CashDirection.OUTFLOW, "Stock purchase (transfer)"),
    MovementType.PURCHASE_CASH: MovementRule(CashChannel.PHYSICAL_CASH, CashDirection.OUTFLOW, "Stock purchase (cash)"),
    MovementType.EXPENSE_INSTANT: MovementRule(CashChannel.ELECTRONIC, CashDirection.OUTFLOW, "Expense (transfer)"),
    MovementType.EXPENSE_CASH: MovementRule(CashChannel.PHYSICAL_CASH, CashDirection.OUTFLOW, "Expense (cash)"),
    MovementType.ADJUSTMENT_IN_INSTANT: MovementRule(CashChannel.ELECTRONIC, CashDirection.INFLOW, "Manual adjustment in (transfer)"),
    MovementType.ADJUSTMENT_IN_CASH: MovementRule(CashChannel.PHYSICAL_CASH, CashDirection.INFLOW, "Manual adjustment in (cash)"),
    MovementType.ADJUSTMENT_OUT_INSTANT: MovementRule(CashChannel.ELECTRONIC, CashDirection.OUTFLOW, "Manual adjustment out (transfer)"),
    MovementType.ADJUSTMENT_OUT_CASH: MovementRule(CashChannel.PHYSICAL_CASH, CashDirection.OUTFLOW, "Manual adjustment out (cash)"),
}


class CollectionName(str, Enum):
    """Enumerate the keys under which collections live in the data file."""

    PRODUCTS = "products"
    SALES = "sales"
    LOANS = "loans"
    CASH_MOVEMENTS = "cash_movements"
    PURCHASES = "purchases"
    REINVESTMENT_GOALS = "reinvestment_goals"
    CUSTOMERS = "customers"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "RECORD_SCHEMA_VERSION",
    "DEFAULT_LOAN_INTEREST_RATE",
    "DEFAULT_LOW_STOCK_THRESHOLD",
    "INSTALLMENT_INTERVAL_DAYS",
    "UNKNOWN_PRODUCT_NAME",
    "PAID_AT_CREATION_NOTE",
    "ProductCategory",
    "PaymentMethod",
    "IMMEDIATE_PAYMENT_METHODS",
    "PaymentStatus",
    "SaleStatus",
    "LoanStatus",
    "CashChannel",
    "CashDirection",
    "MovementType",
    "MovementRule",
    "MOVEMENT_RULES",
    "CollectionName",
]
