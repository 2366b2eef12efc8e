"""Business logic layer for Shop Ledger.

This module is the ledger engine. Every operation is a pure transition that
receives the current :class:`~shop_ledger.data_manager.LedgerState` and a
command object and returns a new state together with the record it created
or changed. The ``record_*`` helpers at the bottom wrap those transitions for
callers holding a :class:`RuntimeContext`: they swap the new state in and
write the touched collections back to the in-memory store.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import data_manager, log
from .constants import (
    DEFAULT_LOAN_INTEREST_RATE,
    EXPECTED_SCHEMA_VERSION,
    IMMEDIATE_PAYMENT_METHODS,
    MOVEMENT_RULES,
    CashChannel,
    CashDirection,
    CollectionName,
    LoanStatus,
    MovementType,
    PaymentMethod,
    PaymentStatus,
    ProductCategory,
    SaleStatus,
)
from .data_manager import (
    CashMovement,
    Customer,
    LedgerState,
    Loan,
    PaymentEntry,
    Product,
    Purchase,
    PurchaseItem,
    ReinvestmentGoal,
    Sale,
    SaleItem,
)
from .migrations import RecordValidationError, migrate_store
from .money import ZERO, apply_rate, money_sum, to_money
from .payments import apply_payment, build_installments, open_payment, settled_payment


DEFAULT_LOAN_TERM_DAYS = 30


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, sale, loan, or other record is unknown."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised by the stock pre-check when requested quantities exceed what is on hand."""

    def __init__(self, shortages: Sequence[Tuple[str, int, int]]):
        self.shortages = tuple(shortages)
        details = ", ".join(
            f"{product_id} (requested {requested}, available {available})"
            for product_id, requested, available in self.shortages
        )
        super().__init__(f"Insufficient stock: {details}")


@dataclass
class RuntimeContext:
    """Container for the settings, the raw store, and the current ledger state."""

    settings: data_manager.ConfigSettings
    store: data_manager.Store
    state: LedgerState
    rejected: Tuple[RecordValidationError, ...] = field(default=(), repr=False)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductCommand:
    """User intent for adding a product to the catalog."""

    name: str
    category: ProductCategory
    cost_price: Decimal
    sale_price: Decimal
    quantity: int = 0
    acquired_on: Optional[date] = None
    description: str = ""
    supplier: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SaleLine:
    """One requested sale line; ``unit_price`` defaults to the catalog price."""

    product_id: str
    quantity: int
    unit_price: Optional[Decimal] = None


@dataclass(frozen=True)
class SaleCommand:
    """User intent for creating a sale."""

    items: Tuple[SaleLine, ...]
    customer_name: str
    payment_method: PaymentMethod
    installment_count: int = 1
    sale_date: Optional[date] = None
    customer_contact: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for recording money received against a sale or a loan."""

    amount: Decimal
    paid_on: Optional[date] = None
    note: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class LoanCommand:
    """User intent for lending money; interest comes from the configured rate."""

    customer_name: str
    requested_amount: Decimal
    loan_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class MovementCommand:
    """User intent for a manual cash movement.

    Channel and direction are not part of the command: both follow from
    ``movement_type``.
    """

    movement_type: MovementType
    amount: Decimal
    description: Optional[str] = None
    movement_date: Optional[date] = None
    sale_id: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseLine:
    """Purchase line; leave ``product_id`` empty for goods outside the catalog."""

    quantity: int
    unit_cost: Decimal
    product_id: Optional[str] = None
    product_name: Optional[str] = None


@dataclass(frozen=True)
class PurchaseCommand:
    """User intent for restocking from a supplier."""

    supplier: str
    items: Tuple[PurchaseLine, ...]
    payment_method: PaymentMethod
    purchase_date: Optional[date] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class GoalCommand:
    """User intent for creating a reinvestment goal."""

    target_percentage: Decimal
    period_start: date
    period_end: date
    active: bool = True
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class CashBalances:
    """Running balance per cash channel plus gross inflow and outflow."""

    electronic: Decimal
    physical_cash: Decimal
    total: Decimal
    total_inflow: Decimal
    total_outflow: Decimal


# ---------------------------------------------------------------------------
# Identifiers and validation
# ---------------------------------------------------------------------------


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` unchanged or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def generate_record_id(*, prefix: str, when: Optional[datetime] = None) -> str:
    """Generate a sortable, collision-free record identifier.

    Args:
        prefix (str): Short designator for the record kind (``"SAL"``,
            ``"LOA"`` and so on).
        when (datetime | None): Timestamp encoded in the identifier. When
            ``None`` the current UTC time is used.

    Returns:
        str: Identifier formed as ``{prefix}-{YYYYMMDDHHMMSSffffff}-{hex8}``.

    The timestamp keeps identifiers ordered by creation time; the random
    suffix keeps two records created within the same microsecond apart.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}-{when.strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:8]}"


def require_positive_quantity(quantity: int) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """
    if quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is zero or positive.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def require_positive_money(amount: Decimal) -> None:
    """Validate that a monetary value is strictly positive.

    Raises:
        ValueError: If ``amount`` is zero or negative.
    """
    if amount <= Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be greater than zero")


def _require_text(value: str, label: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError(f"{label} must not be empty")
    return text


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def find_product(state: LedgerState, product_id: str) -> Optional[Product]:
    return next((product for product in state.products if product.product_id == product_id), None)


def get_product(state: LedgerState, product_id: str) -> Product:
    """Resolve a product by identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is not in the catalog.
    """
    product = find_product(state, product_id)
    if product is None:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Product '{product_id}' not found")
    return product


def get_sale(state: LedgerState, sale_id: str) -> Sale:
    """Resolve a sale by identifier.

    Raises:
        MissingReferenceError: If no sale carries ``sale_id``.
    """
    for sale in state.sales:
        if sale.sale_id == sale_id:
            return sale
    log.warning("Sale lookup failed for id '%s'", sale_id)
    raise MissingReferenceError(f"Sale '{sale_id}' not found")


def get_loan(state: LedgerState, loan_id: str) -> Loan:
    """Resolve a loan by identifier.

    Raises:
        MissingReferenceError: If no loan carries ``loan_id``.
    """
    for loan in state.loans:
        if loan.loan_id == loan_id:
            return loan
    log.warning("Loan lookup failed for id '%s'", loan_id)
    raise MissingReferenceError(f"Loan '{loan_id}' not found")


def find_customer(state: LedgerState, name: str) -> Optional[Customer]:
    """Return the customer whose name matches ``name`` ignoring case and surrounding whitespace."""

    key = name.strip().casefold()
    return next((customer for customer in state.customers if customer.name.strip().casefold() == key), None)


def _replace_by_id(records: Tuple, id_attr: str, updated) -> Tuple:
    target = getattr(updated, id_attr)
    return tuple(updated if getattr(record, id_attr) == target else record for record in records)


def _without_id(records: Tuple, id_attr: str, record_id: str, kind: str) -> Tuple:
    remaining = tuple(record for record in records if getattr(record, id_attr) != record_id)
    if len(remaining) == len(records):
        log.warning("%s lookup failed for id '%s'", kind, record_id)
        raise MissingReferenceError(f"{kind} '{record_id}' not found")
    return remaining


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


_PRODUCT_EDITABLE_FIELDS = frozenset(
    {"name", "description", "category", "cost_price", "sale_price", "quantity", "supplier", "acquired_on", "notes"}
)


def add_product(state: LedgerState, command: ProductCommand) -> Tuple[LedgerState, Product]:
    """Append a new product to the catalog.

    Raises:
        ValueError: When the name is blank, a price is negative, or the
            initial quantity is negative.
    """
    require_nonnegative_money(command.cost_price)
    require_nonnegative_money(command.sale_price)
    if command.quantity < 0:
        raise ValueError("Quantity must be zero or positive")

    timestamp = _resolve_timestamp(command.timestamp)
    product = Product(
        product_id=generate_record_id(prefix="PRD", when=timestamp),
        name=_require_text(command.name, "Product name"),
        description=command.description or "",
        category=ProductCategory(command.category),
        cost_price=to_money(command.cost_price),
        sale_price=to_money(command.sale_price),
        quantity=command.quantity,
        acquired_on=command.acquired_on or timestamp.date(),
        created_at=timestamp,
        supplier=command.supplier,
        notes=command.notes,
    )
    log.info("Added product '%s' (%s, quantity=%s)", product.product_id, product.name, product.quantity)
    return replace(state, products=state.products + (product,)), product


def update_product(state: LedgerState, product_id: str, **changes) -> Tuple[LedgerState, Product]:
    """Apply direct edits to a product.

    Any catalog field may be changed. Quantities are floored at zero and
    monetary fields are quantised to cents.

    Raises:
        MissingReferenceError: If ``product_id`` is unknown.
        ValueError: If an unknown field is supplied or a price is negative.
    """
    unknown = set(changes) - _PRODUCT_EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update product fields: {', '.join(sorted(unknown))}")

    product = get_product(state, product_id)
    for key in ("cost_price", "sale_price"):
        if key in changes:
            require_nonnegative_money(changes[key])
            changes[key] = to_money(changes[key])
    if "quantity" in changes:
        changes["quantity"] = max(0, int(changes["quantity"]))
    if "category" in changes:
        changes["category"] = ProductCategory(changes["category"])
    if "name" in changes:
        changes["name"] = _require_text(changes["name"], "Product name")

    updated = replace(product, **changes)
    log.info("Updated product '%s': %s", product_id, ", ".join(sorted(changes)))
    return replace(state, products=_replace_by_id(state.products, "product_id", updated)), updated


def remove_product(state: LedgerState, product_id: str) -> LedgerState:
    """Delete a product; sales that reference it keep their snapshots."""

    products = _without_id(state.products, "product_id", product_id, "Product")
    log.info("Removed product '%s'", product_id)
    return replace(state, products=products)


def ensure_stock_available(state: LedgerState, lines: Iterable[SaleLine]) -> None:
    """Check that every requested line can be served from current stock.

    Quantities for the same product are added up before comparing. This is
    the caller-side guard used before :func:`create_sale`; the transition
    itself never blocks on stock.

    Raises:
        MissingReferenceError: If a line references an unknown product.
        InsufficientStockError: Listing every product that falls short.
    """
    requested: Dict[str, int] = {}
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    shortages: List[Tuple[str, int, int]] = []
    for product_id, quantity in requested.items():
        product = get_product(state, product_id)
        if quantity > product.quantity:
            shortages.append((product_id, quantity, product.quantity))
    if shortages:
        log.warning("Stock check failed for %d product(s)", len(shortages))
        raise InsufficientStockError(shortages)


def _decrement_stock(products: Tuple[Product, ...], items: Sequence[SaleItem]) -> Tuple[Product, ...]:
    sold: Dict[str, int] = {}
    for item in items:
        sold[item.product_id] = sold.get(item.product_id, 0) + item.quantity
    return tuple(
        replace(product, quantity=max(0, product.quantity - sold[product.product_id]))
        if product.product_id in sold
        else product
        for product in products
    )


def _increment_stock(products: Tuple[Product, ...], items: Sequence[PurchaseItem]) -> Tuple[Product, ...]:
    bought: Dict[str, int] = {}
    for item in items:
        if item.product_id:
            bought[item.product_id] = bought.get(item.product_id, 0) + item.quantity
    known = {product.product_id for product in products}
    for product_id in bought:
        if product_id not in known:
            log.warning("Purchase references unknown product '%s'; stock not updated", product_id)
    return tuple(
        replace(product, quantity=product.quantity + bought[product.product_id])
        if product.product_id in bought
        else product
        for product in products
    )


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


def _upsert_customer(state: LedgerState, sale: Sale, timestamp: datetime) -> Tuple[Customer, ...]:
    customers = state.customers
    existing = find_customer(state, sale.customer_name)
    if existing is None:
        created = Customer(
            customer_id=generate_record_id(prefix="CUS", when=timestamp),
            name=sale.customer_name,
            contact=sale.customer_contact or "",
            purchase_count=1,
            total_spent=sale.total_value,
            last_purchase_at=timestamp,
        )
        log.debug("Created customer '%s' for sale '%s'", created.name, sale.sale_id)
        return customers + (created,)

    updated = replace(
        existing,
        purchase_count=existing.purchase_count + 1,
        total_spent=to_money(existing.total_spent + sale.total_value),
        last_purchase_at=timestamp,
    )
    return _replace_by_id(customers, "customer_id", updated)


def update_customer(state: LedgerState, customer_id: str, **changes) -> Tuple[LedgerState, Customer]:
    """Edit a customer's contact details.

    Raises:
        MissingReferenceError: If ``customer_id`` is unknown.
        ValueError: If a field other than name, contact or email is supplied.
    """
    unknown = set(changes) - {"name", "contact", "email"}
    if unknown:
        raise ValueError(f"Cannot update customer fields: {', '.join(sorted(unknown))}")
    customer = next((c for c in state.customers if c.customer_id == customer_id), None)
    if customer is None:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise MissingReferenceError(f"Customer '{customer_id}' not found")
    updated = replace(customer, **changes)
    return replace(state, customers=_replace_by_id(state.customers, "customer_id", updated)), updated


def remove_customer(state: LedgerState, customer_id: str) -> LedgerState:
    customers = _without_id(state.customers, "customer_id", customer_id, "Customer")
    log.info("Removed customer '%s'", customer_id)
    return replace(state, customers=customers)


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


def _build_sale_items(state: LedgerState, lines: Sequence[SaleLine]) -> Tuple[SaleItem, ...]:
    items = []
    for line in lines:
        require_positive_quantity(line.quantity)
        product = get_product(state, line.product_id)
        unit_price = product.sale_price if line.unit_price is None else line.unit_price
        require_nonnegative_money(unit_price)
        items.append(
            SaleItem(
                product_id=product.product_id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=to_money(unit_price),
            )
        )
    return tuple(items)


def create_sale(state: LedgerState, command: SaleCommand) -> Tuple[LedgerState, Sale]:
    """Create a sale, decrement stock, and upsert the customer.

    The transition trusts the caller's stock check (see
    :func:`ensure_stock_available`): quantities that would go negative are
    floored at zero instead of failing. Cash and instant-transfer sales are
    settled in full immediately; every other method starts with nothing
    received. An installment count above one splits the total into that many
    installments due every 30 days from the creation date.

    Args:
        state (LedgerState): Current ledger snapshot.
        command (SaleCommand): Structured intent describing the sale.

    Returns:
        tuple[LedgerState, Sale]: The new state (sales, products and customers
            changed together) and the created sale.

    Raises:
        MissingReferenceError: If a line references an unknown product.
        ValueError: When the sale has no lines, a quantity is not positive,
            or the customer name is blank.
    """
    if not command.items:
        raise ValueError("A sale must contain at least one item")
    customer_name = _require_text(command.customer_name, "Customer name")
    installment_count = max(1, int(command.installment_count))
    method = PaymentMethod(command.payment_method)

    items = _build_sale_items(state, command.items)
    total = money_sum(item.subtotal for item in items)
    timestamp = _resolve_timestamp(command.timestamp)
    sale_id = generate_record_id(prefix="SAL", when=timestamp)
    payment_id = generate_record_id(prefix="PAY", when=timestamp)
    installments = build_installments(total, installment_count, timestamp.date())

    if method in IMMEDIATE_PAYMENT_METHODS:
        payment = settled_payment(
            payment_id=payment_id,
            owner_id=sale_id,
            method=method,
            total=total,
            entry_id=generate_record_id(prefix="ENT", when=timestamp),
            paid_on=timestamp.date(),
            installments=installments,
        )
    else:
        payment = open_payment(
            payment_id=payment_id,
            owner_id=sale_id,
            method=method,
            total=total,
            installments=installments,
        )

    sale = Sale(
        sale_id=sale_id,
        items=items,
        total_value=total,
        customer_name=customer_name,
        customer_contact=command.customer_contact,
        sale_date=command.sale_date or timestamp.date(),
        payment_method=method,
        installment_count=installment_count,
        status=SaleStatus.COMPLETED if payment.status is PaymentStatus.PAID else SaleStatus.PENDING,
        payment=payment,
        notes=command.notes,
        created_at=timestamp,
    )
    new_state = replace(
        state,
        sales=state.sales + (sale,),
        products=_decrement_stock(state.products, items),
        customers=_upsert_customer(state, sale, timestamp),
    )
    log.info(
        "Created sale '%s' for '%s' (items=%d, total=%s, method=%s, status=%s)",
        sale.sale_id,
        sale.customer_name,
        len(items),
        total,
        method.value,
        sale.status.value,
    )
    return new_state, sale


def _build_entry(command: PaymentCommand) -> PaymentEntry:
    require_positive_money(command.amount)
    timestamp = _resolve_timestamp(command.timestamp)
    return PaymentEntry(
        entry_id=generate_record_id(prefix="ENT", when=timestamp),
        amount=to_money(command.amount),
        paid_on=command.paid_on or timestamp.date(),
        note=command.note,
    )


def register_sale_payment(
    state: LedgerState, sale_id: str, command: PaymentCommand
) -> Tuple[LedgerState, Sale]:
    """Record money received against a sale.

    The received amount grows by the payment but never beyond the total; the
    installment schedule is re-allocated greedily. A sale becomes
    ``completed`` once its payment is settled. Cancelled sales accept
    payments but stay cancelled.

    Raises:
        MissingReferenceError: If ``sale_id`` is unknown.
        ValueError: If the amount is not positive.
    """
    sale = get_sale(state, sale_id)
    entry = _build_entry(command)
    payment = apply_payment(sale.payment, entry)

    status = sale.status
    if status is not SaleStatus.CANCELLED:
        status = SaleStatus.COMPLETED if payment.status is PaymentStatus.PAID else SaleStatus.PENDING

    updated = replace(sale, payment=payment, status=status)
    log.info(
        "Registered payment of %s on sale '%s' (received=%s/%s, status=%s)",
        entry.amount,
        sale_id,
        payment.amount_received,
        payment.total_owed,
        payment.status.value,
    )
    return replace(state, sales=_replace_by_id(state.sales, "sale_id", updated)), updated


def cancel_sale(state: LedgerState, sale_id: str) -> Tuple[LedgerState, Sale]:
    """Mark a sale cancelled; stock and the payment record are left alone."""

    sale = get_sale(state, sale_id)
    if sale.status is SaleStatus.CANCELLED:
        raise BusinessRuleViolation(f"Sale '{sale_id}' is already cancelled")
    updated = replace(sale, status=SaleStatus.CANCELLED)
    log.info("Cancelled sale '%s'", sale_id)
    return replace(state, sales=_replace_by_id(state.sales, "sale_id", updated)), updated


def update_sale(state: LedgerState, sale_id: str, **changes) -> Tuple[LedgerState, Sale]:
    """Edit descriptive fields of a sale.

    Only the customer details, the sale date and the notes can change; the
    total and the payment stay as recorded.
    """
    allowed = {"customer_name", "customer_contact", "sale_date", "notes"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update sale fields: {', '.join(sorted(unknown))}")
    sale = get_sale(state, sale_id)
    if "customer_name" in changes:
        changes["customer_name"] = _require_text(changes["customer_name"], "Customer name")
    updated = replace(sale, **changes)
    log.info("Updated sale '%s': %s", sale_id, ", ".join(sorted(changes)))
    return replace(state, sales=_replace_by_id(state.sales, "sale_id", updated)), updated


def remove_sale(state: LedgerState, sale_id: str) -> LedgerState:
    """Delete a sale record; stock, movements and customers are untouched."""

    sales = _without_id(state.sales, "sale_id", sale_id, "Sale")
    log.info("Removed sale '%s'", sale_id)
    return replace(state, sales=sales)


# ---------------------------------------------------------------------------
# Loans
# ---------------------------------------------------------------------------


def create_loan(
    state: LedgerState,
    command: LoanCommand,
    *,
    interest_rate: Decimal = DEFAULT_LOAN_INTEREST_RATE,
) -> Tuple[LedgerState, Loan]:
    """Create a loan whose total owed includes the fixed interest.

    ``total_owed`` is ``requested_amount * (1 + interest_rate)`` rounded to
    cents. The due date defaults to 30 days after the loan date.

    Raises:
        ValueError: If the requested amount is not positive or the customer
            name is blank.
    """
    require_positive_money(command.requested_amount)
    customer_name = _require_text(command.customer_name, "Customer name")
    timestamp = _resolve_timestamp(command.timestamp)
    loan_id = generate_record_id(prefix="LOA", when=timestamp)
    requested = to_money(command.requested_amount)
    total = apply_rate(requested, interest_rate)
    loan_date = command.loan_date or timestamp.date()

    loan = Loan(
        loan_id=loan_id,
        customer_name=customer_name,
        requested_amount=requested,
        interest_rate=interest_rate,
        total_owed=total,
        loan_date=loan_date,
        due_date=command.due_date or loan_date + timedelta(days=DEFAULT_LOAN_TERM_DAYS),
        status=LoanStatus.PENDING,
        payment=open_payment(
            payment_id=generate_record_id(prefix="PAY", when=timestamp),
            owner_id=loan_id,
            method=None,
            total=total,
        ),
        notes=command.notes,
        created_at=timestamp,
    )
    log.info("Created loan '%s' for '%s' (requested=%s, owed=%s)", loan_id, customer_name, requested, total)
    return replace(state, loans=state.loans + (loan,)), loan


def register_loan_payment(
    state: LedgerState, loan_id: str, command: PaymentCommand
) -> Tuple[LedgerState, Loan]:
    """Record a repayment against a loan.

    Raises:
        MissingReferenceError: If ``loan_id`` is unknown.
        ValueError: If the amount is not positive.
    """
    loan = get_loan(state, loan_id)
    entry = _build_entry(command)
    payment = apply_payment(loan.payment, entry)
    updated = replace(
        loan,
        payment=payment,
        status=LoanStatus.PAID if payment.status is PaymentStatus.PAID else LoanStatus.PENDING,
    )
    log.info(
        "Registered repayment of %s on loan '%s' (received=%s/%s)",
        entry.amount,
        loan_id,
        payment.amount_received,
        payment.total_owed,
    )
    return replace(state, loans=_replace_by_id(state.loans, "loan_id", updated)), updated


def remove_loan(state: LedgerState, loan_id: str) -> LedgerState:
    loans = _without_id(state.loans, "loan_id", loan_id, "Loan")
    log.info("Removed loan '%s'", loan_id)
    return replace(state, loans=loans)


# ---------------------------------------------------------------------------
# Cash movements
# ---------------------------------------------------------------------------


def _build_movement(
    movement_type: MovementType,
    amount: Decimal,
    *,
    timestamp: datetime,
    movement_date: Optional[date],
    description: Optional[str] = None,
    sale_id: Optional[str] = None,
    purchase_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> CashMovement:
    rule = MOVEMENT_RULES[MovementType(movement_type)]
    return CashMovement(
        movement_id=generate_record_id(prefix="MOV", when=timestamp),
        movement_type=MovementType(movement_type),
        channel=rule.channel,
        direction=rule.direction,
        description=description or rule.label,
        amount=to_money(amount),
        movement_date=movement_date or timestamp.date(),
        created_at=timestamp,
        sale_id=sale_id,
        purchase_id=purchase_id,
        notes=notes,
    )


def record_movement(state: LedgerState, command: MovementCommand) -> Tuple[LedgerState, CashMovement]:
    """Append a cash movement with channel and direction taken from its type.

    Raises:
        ValueError: If the amount is not positive or the type is unknown.
    """
    require_positive_money(command.amount)
    timestamp = _resolve_timestamp(command.timestamp)
    movement = _build_movement(
        command.movement_type,
        command.amount,
        timestamp=timestamp,
        movement_date=command.movement_date,
        description=command.description,
        sale_id=command.sale_id,
        notes=command.notes,
    )
    log.info(
        "Recorded %s movement '%s' of %s on %s",
        movement.direction.value,
        movement.movement_id,
        movement.amount,
        movement.channel.value,
    )
    return replace(state, cash_movements=state.cash_movements + (movement,)), movement


def calculate_cash_balances(state: LedgerState) -> CashBalances:
    """Recompute both channel balances from the full movement list."""

    balances = {CashChannel.ELECTRONIC: ZERO, CashChannel.PHYSICAL_CASH: ZERO}
    inflow = ZERO
    outflow = ZERO
    for movement in state.cash_movements:
        if movement.direction is CashDirection.INFLOW:
            balances[movement.channel] += movement.amount
            inflow += movement.amount
        else:
            balances[movement.channel] -= movement.amount
            outflow += movement.amount

    electronic = to_money(balances[CashChannel.ELECTRONIC])
    physical = to_money(balances[CashChannel.PHYSICAL_CASH])
    log.debug("Cash balances: electronic=%s, physical_cash=%s", electronic, physical)
    return CashBalances(
        electronic=electronic,
        physical_cash=physical,
        total=to_money(electronic + physical),
        total_inflow=to_money(inflow),
        total_outflow=to_money(outflow),
    )


def filter_movements(
    state: LedgerState,
    *,
    channel: Optional[CashChannel] = None,
    direction: Optional[CashDirection] = None,
) -> List[CashMovement]:
    """Return movements matching the optional channel and direction filters."""

    return [
        movement
        for movement in state.cash_movements
        if (channel is None or movement.channel is CashChannel(channel))
        and (direction is None or movement.direction is CashDirection(direction))
    ]


def remove_movement(state: LedgerState, movement_id: str) -> LedgerState:
    """Delete one movement; a linked sale or purchase is left as it is."""

    movements = _without_id(state.cash_movements, "movement_id", movement_id, "Movement")
    log.info("Removed movement '%s'", movement_id)
    return replace(state, cash_movements=movements)


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------


def _build_purchase_items(state: LedgerState, lines: Sequence[PurchaseLine]) -> Tuple[PurchaseItem, ...]:
    items = []
    for line in lines:
        require_positive_quantity(line.quantity)
        require_nonnegative_money(line.unit_cost)
        name = line.product_name
        if not name and line.product_id:
            product = find_product(state, line.product_id)
            name = product.name if product is not None else None
        items.append(
            PurchaseItem(
                product_id=line.product_id or None,
                product_name=_require_text(name or "", "Purchase item name"),
                quantity=line.quantity,
                unit_cost=to_money(line.unit_cost),
            )
        )
    return tuple(items)


def create_purchase(state: LedgerState, command: PurchaseCommand) -> Tuple[LedgerState, Purchase]:
    """Record a stock purchase and propagate it to inventory and cash.

    Every line carrying a product id increases that product's quantity. One
    outflow movement for the purchase total is added, on the electronic
    channel for instant transfers and on physical cash otherwise, linked
    back through ``purchase_id``.

    Raises:
        ValueError: When the purchase has no lines, a quantity is not
            positive, a cost is negative, or a line has no name.
    """
    if not command.items:
        raise ValueError("A purchase must contain at least one item")
    supplier = _require_text(command.supplier, "Supplier")
    method = PaymentMethod(command.payment_method)
    items = _build_purchase_items(state, command.items)
    total = money_sum(item.subtotal for item in items)
    timestamp = _resolve_timestamp(command.timestamp)
    purchase_date = command.purchase_date or timestamp.date()

    purchase = Purchase(
        purchase_id=generate_record_id(prefix="PUR", when=timestamp),
        supplier=supplier,
        items=items,
        total_value=total,
        purchase_date=purchase_date,
        payment_method=method,
        notes=command.notes,
        created_at=timestamp,
    )
    movement_type = (
        MovementType.PURCHASE_INSTANT if method is PaymentMethod.INSTANT_TRANSFER else MovementType.PURCHASE_CASH
    )
    movement = _build_movement(
        movement_type,
        total,
        timestamp=timestamp,
        movement_date=purchase_date,
        description=f"Purchase from {supplier}",
        purchase_id=purchase.purchase_id,
    )
    new_state = replace(
        state,
        purchases=state.purchases + (purchase,),
        products=_increment_stock(state.products, items),
        cash_movements=state.cash_movements + (movement,),
    )
    log.info(
        "Recorded purchase '%s' from '%s' (total=%s, movement=%s)",
        purchase.purchase_id,
        supplier,
        total,
        movement_type.value,
    )
    return new_state, purchase


def remove_purchase(state: LedgerState, purchase_id: str) -> LedgerState:
    """Delete a purchase and every movement linked to it.

    Stock added by the purchase is not reversed.
    """
    purchases = _without_id(state.purchases, "purchase_id", purchase_id, "Purchase")
    movements = tuple(movement for movement in state.cash_movements if movement.purchase_id != purchase_id)
    log.info(
        "Removed purchase '%s' and %d linked movement(s)",
        purchase_id,
        len(state.cash_movements) - len(movements),
    )
    return replace(state, purchases=purchases, cash_movements=movements)


# ---------------------------------------------------------------------------
# Reinvestment goals
# ---------------------------------------------------------------------------


def _deactivate_all(goals: Tuple[ReinvestmentGoal, ...]) -> Tuple[ReinvestmentGoal, ...]:
    return tuple(replace(goal, active=False) if goal.active else goal for goal in goals)


def add_goal(state: LedgerState, command: GoalCommand) -> Tuple[LedgerState, ReinvestmentGoal]:
    """Create a reinvestment goal; an active goal deactivates the others.

    Raises:
        ValueError: If the target is negative or the period is inverted.
    """
    target = Decimal(str(command.target_percentage))
    if target < 0:
        raise ValueError("Target percentage must be zero or positive")
    if command.period_end < command.period_start:
        raise ValueError("Goal period ends before it starts")

    timestamp = _resolve_timestamp(command.timestamp)
    goal = ReinvestmentGoal(
        goal_id=generate_record_id(prefix="GOL", when=timestamp),
        target_percentage=target,
        period_start=command.period_start,
        period_end=command.period_end,
        active=command.active,
        notes=command.notes,
        created_at=timestamp,
    )
    goals = _deactivate_all(state.goals) if goal.active else state.goals
    log.info("Added goal '%s' (%s%%, active=%s)", goal.goal_id, target, goal.active)
    return replace(state, goals=goals + (goal,)), goal


def activate_goal(state: LedgerState, goal_id: str) -> Tuple[LedgerState, ReinvestmentGoal]:
    """Make ``goal_id`` the single active goal.

    Raises:
        MissingReferenceError: If ``goal_id`` is unknown.
    """
    target = next((goal for goal in state.goals if goal.goal_id == goal_id), None)
    if target is None:
        log.warning("Goal lookup failed for id '%s'", goal_id)
        raise MissingReferenceError(f"Goal '{goal_id}' not found")
    activated = replace(target, active=True)
    goals = _replace_by_id(_deactivate_all(state.goals), "goal_id", activated)
    log.info("Activated goal '%s'", goal_id)
    return replace(state, goals=goals), activated


def remove_goal(state: LedgerState, goal_id: str) -> LedgerState:
    goals = _without_id(state.goals, "goal_id", goal_id, "Goal")
    log.info("Removed goal '%s'", goal_id)
    return replace(state, goals=goals)


# ---------------------------------------------------------------------------
# Runtime context
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings, the data file, and the migrated state.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Context holding the settings, the raw store, and the
            validated ledger state. Records rejected by the migration step are
            kept in ``rejected`` for reporting.

    Raises:
        FileNotFoundError: If the configuration or data file cannot be found.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = data_manager.open_store(settings.data_file)
    result = migrate_store(store)
    log.info(
        "Loaded runtime context for data file '%s' (%d record(s) rejected)",
        settings.data_file,
        len(result.errors),
    )
    return RuntimeContext(settings=settings, store=store, state=result.state, rejected=result.errors)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate that ``config.ini`` declares the schema this package writes.

    Raises:
        RuntimeError: If the configured schema version does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Data file schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Data file schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def commit(context: RuntimeContext, state: LedgerState, *names: CollectionName) -> None:
    """Swap ``state`` into ``context`` and write the named collections to the store."""

    context.state = state
    data_manager.write_state(context.store, state, names)
    log.debug("Committed collections: %s", ", ".join(name.value for name in names))


def persist_context(context: RuntimeContext) -> None:
    """Write every collection of the current state to the configured data file.

    Records rejected while loading are not written back, so a save drops
    them from the file.
    """
    data_manager.write_state(context.store, context.state)
    data_manager.save_store(context.store, destination=context.settings.data_file)
    log.info("Persisted data file '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the data file to discard unsaved modifications.

    Raises:
        FileNotFoundError: If the data file cannot be reloaded.
    """
    store = data_manager.refresh_store(context.settings.data_file)
    result = migrate_store(store)
    log.info("Reloaded data file '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, store=store, state=result.state, rejected=result.errors)


# Context-level intents. Each one runs a transition against the current state
# and commits the collections the transition touched.


def record_product(context: RuntimeContext, command: ProductCommand) -> Product:
    state, product = add_product(context.state, command)
    commit(context, state, CollectionName.PRODUCTS)
    return product


def record_product_update(context: RuntimeContext, product_id: str, **changes) -> Product:
    state, product = update_product(context.state, product_id, **changes)
    commit(context, state, CollectionName.PRODUCTS)
    return product


def record_product_removal(context: RuntimeContext, product_id: str) -> None:
    commit(context, remove_product(context.state, product_id), CollectionName.PRODUCTS)


def record_sale(context: RuntimeContext, command: SaleCommand) -> Sale:
    state, sale = create_sale(context.state, command)
    commit(context, state, CollectionName.SALES, CollectionName.PRODUCTS, CollectionName.CUSTOMERS)
    return sale


def record_sale_payment(context: RuntimeContext, sale_id: str, command: PaymentCommand) -> Sale:
    state, sale = register_sale_payment(context.state, sale_id, command)
    commit(context, state, CollectionName.SALES)
    return sale


def record_sale_cancellation(context: RuntimeContext, sale_id: str) -> Sale:
    state, sale = cancel_sale(context.state, sale_id)
    commit(context, state, CollectionName.SALES)
    return sale


def record_loan(context: RuntimeContext, command: LoanCommand) -> Loan:
    state, loan = create_loan(context.state, command, interest_rate=context.settings.loan_interest_rate)
    commit(context, state, CollectionName.LOANS)
    return loan


def record_loan_payment(context: RuntimeContext, loan_id: str, command: PaymentCommand) -> Loan:
    state, loan = register_loan_payment(context.state, loan_id, command)
    commit(context, state, CollectionName.LOANS)
    return loan


def record_cash_movement(context: RuntimeContext, command: MovementCommand) -> CashMovement:
    state, movement = record_movement(context.state, command)
    commit(context, state, CollectionName.CASH_MOVEMENTS)
    return movement


def record_movement_removal(context: RuntimeContext, movement_id: str) -> None:
    commit(context, remove_movement(context.state, movement_id), CollectionName.CASH_MOVEMENTS)


def record_purchase(context: RuntimeContext, command: PurchaseCommand) -> Purchase:
    state, purchase = create_purchase(context.state, command)
    commit(context, state, CollectionName.PURCHASES, CollectionName.PRODUCTS, CollectionName.CASH_MOVEMENTS)
    return purchase


def record_purchase_removal(context: RuntimeContext, purchase_id: str) -> None:
    state = remove_purchase(context.state, purchase_id)
    commit(context, state, CollectionName.PURCHASES, CollectionName.CASH_MOVEMENTS)


def record_goal(context: RuntimeContext, command: GoalCommand) -> ReinvestmentGoal:
    state, goal = add_goal(context.state, command)
    commit(context, state, CollectionName.REINVESTMENT_GOALS)
    return goal


def record_goal_activation(context: RuntimeContext, goal_id: str) -> ReinvestmentGoal:
    state, goal = activate_goal(context.state, goal_id)
    commit(context, state, CollectionName.REINVESTMENT_GOALS)
    return goal
