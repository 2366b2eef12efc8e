"""Data access layer for Shop Ledger.

This module provides low-level helpers that read from and write to the JSON
data file holding every ledger collection. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Store lifecycle: opening, validating, and persisting the JSON document.
3. Record shapes: the frozen dataclasses the engine works with and their
   conversion to and from plain JSON-compatible dictionaries.
"""


from __future__ import annotations

import configparser
import json
import os
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import (
    DEFAULT_LOAN_INTEREST_RATE,
    DEFAULT_LOW_STOCK_THRESHOLD,
    EXPECTED_SCHEMA_VERSION,
    RECORD_SCHEMA_VERSION,
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
from .money import to_money


CONFIG_FILE_NAME = "config.ini"
SCHEMA_KEY = "schema_version"
RECORD_VERSION_KEY = "schema"

Store = Dict[str, Any]


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    shop_name: str
    schema_version: str
    loan_interest_rate: Decimal = DEFAULT_LOAN_INTEREST_RATE
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD


# ---------------------------------------------------------------------------
# Record shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Product:
    """Catalog entry with its current on-hand quantity."""

    product_id: str
    name: str
    category: ProductCategory
    cost_price: Decimal
    sale_price: Decimal
    quantity: int
    acquired_on: date
    created_at: datetime
    description: str = ""
    supplier: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class SaleItem:
    """Sale line; name and price are snapshots taken when the sale was made."""

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class Installment:
    number: int
    amount: Decimal
    due_date: date
    paid: bool = False
    paid_on: Optional[date] = None


@dataclass(frozen=True)
class PaymentEntry:
    """One receipt of money recorded against a sale or a loan."""

    entry_id: str
    amount: Decimal
    paid_on: date
    note: Optional[str] = None


@dataclass(frozen=True)
class Payment:
    """Settlement state embedded in every sale and loan."""

    payment_id: str
    owner_id: str
    method: Optional[PaymentMethod]
    total_owed: Decimal
    amount_received: Decimal
    status: PaymentStatus
    installments: Tuple[Installment, ...] = ()
    entries: Tuple[PaymentEntry, ...] = ()


@dataclass(frozen=True)
class Sale:
    sale_id: str
    items: Tuple[SaleItem, ...]
    total_value: Decimal
    customer_name: str
    sale_date: date
    payment_method: PaymentMethod
    installment_count: int
    status: SaleStatus
    payment: Payment
    created_at: datetime
    customer_contact: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Loan:
    """Short-term loan whose ``total_owed`` already includes interest."""

    loan_id: str
    customer_name: str
    requested_amount: Decimal
    interest_rate: Decimal
    total_owed: Decimal
    loan_date: date
    due_date: date
    status: LoanStatus
    payment: Payment
    created_at: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class CashMovement:
    """Money entering or leaving one cash channel.

    ``sale_id`` and ``purchase_id`` link movements to the record that caused
    them; removing a purchase drops the movements carrying its id.
    """

    movement_id: str
    movement_type: MovementType
    channel: CashChannel
    direction: CashDirection
    description: str
    amount: Decimal
    movement_date: date
    created_at: datetime
    sale_id: Optional[str] = None
    purchase_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class PurchaseItem:
    """Purchase line; ``product_id`` is ``None`` for uncatalogued goods."""

    product_id: Optional[str]
    product_name: str
    quantity: int
    unit_cost: Decimal

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_cost * self.quantity)


@dataclass(frozen=True)
class Purchase:
    """Stock bought from a supplier; catalog lines add to product quantities."""

    purchase_id: str
    supplier: str
    items: Tuple[PurchaseItem, ...]
    total_value: Decimal
    purchase_date: date
    payment_method: PaymentMethod
    created_at: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReinvestmentGoal:
    """Share of period revenue that should flow back into stock purchases."""

    goal_id: str
    target_percentage: Decimal
    period_start: date
    period_end: date
    active: bool
    created_at: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class Customer:
    """Buyer profile kept up to date by every sale made under the same name."""

    customer_id: str
    name: str
    contact: str
    purchase_count: int
    total_spent: Decimal
    last_purchase_at: Optional[datetime] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class LedgerState:
    """Immutable snapshot of every collection the engine operates on."""

    products: Tuple[Product, ...] = ()
    sales: Tuple[Sale, ...] = ()
    loans: Tuple[Loan, ...] = ()
    cash_movements: Tuple[CashMovement, ...] = ()
    purchases: Tuple[Purchase, ...] = ()
    goals: Tuple[ReinvestmentGoal, ...] = ()
    customers: Tuple[Customer, ...] = ()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. The ``[Ledger]`` section is optional
    and falls back to the package defaults for the loan interest rate and the
    low-stock threshold. Relative ``DataFile`` paths are anchored to
    ``base_path`` (or the working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative ``DataFile``
            entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If a ``[Ledger]`` value cannot be parsed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        shop_name = parser.get("System", "ShopName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    rate_raw = parser.get("Ledger", "LoanInterestRate", fallback=str(DEFAULT_LOAN_INTEREST_RATE))
    threshold = parser.getint("Ledger", "LowStockThreshold", fallback=DEFAULT_LOW_STOCK_THRESHOLD)
    try:
        loan_interest_rate = Decimal(rate_raw.strip())
    except ArithmeticError as exc:
        raise ValueError(f"Invalid LoanInterestRate: {rate_raw!r}") from exc
    if loan_interest_rate < 0:
        raise ValueError("LoanInterestRate must be zero or positive")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        shop_name=shop_name,
        schema_version=schema_version,
        loan_interest_rate=loan_interest_rate,
        low_stock_threshold=threshold,
    )


# ---------------------------------------------------------------------------
# Store lifecycle
# ---------------------------------------------------------------------------


def create_empty_store() -> Store:
    """Return a fresh document with every collection present and empty."""

    store: Store = {SCHEMA_KEY: EXPECTED_SCHEMA_VERSION}
    for name in CollectionName:
        store[name.value] = []
    return store


def open_store(data_file: Path) -> Store:
    """Open the JSON data file and return its top-level document.

    A file that exists but cannot be decoded, or whose top level is not an
    object, is treated as corrupt: the problem is logged and an empty store is
    returned so a damaged file never takes the whole ledger down.

    Args:
        data_file (Path): Filesystem path to the data file.

    Returns:
        Store: Mutable mapping of collection keys to raw record lists.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Data file not found: {data_file}")

    try:
        document = json.loads(data_file.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        log.error("Data file '%s' is corrupt, starting from an empty store: %s", data_file, exc)
        return create_empty_store()

    if not isinstance(document, dict):
        log.error("Data file '%s' does not hold a JSON object, starting from an empty store", data_file)
        return create_empty_store()
    return document


def save_store(store: Store, destination: Path) -> None:
    """Persist the store to ``destination``.

    The document is written to a sibling temporary file first and then moved
    into place so an interrupted write leaves the previous file intact. Parent
    directories are created on demand.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest.with_name(dest.name + ".tmp")
    tmp_path.write_text(json.dumps(store, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp_path, dest)


def refresh_store(data_file: Path) -> Store:
    """Reload the store from disk, discarding any unsaved in-memory changes."""

    return open_store(data_file)


def load_collection(store: Store, name: CollectionName) -> List[Any]:
    """Return the raw records stored under ``name``.

    Missing collections yield an empty list. A value that is not a JSON array
    is discarded with a warning and replaced by an empty list.
    """

    raw = store.get(name.value)
    if raw is None:
        return []
    if not isinstance(raw, list):
        log.warning("Discarding non-list value stored under '%s'", name.value)
        return []
    return list(raw)


def save_collection(store: Store, name: CollectionName, records: Sequence[Mapping[str, Any]]) -> None:
    """Replace the collection stored under ``name`` with ``records``."""

    store[name.value] = [dict(record) for record in records]
    store[SCHEMA_KEY] = EXPECTED_SCHEMA_VERSION


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _money_text(value: Decimal) -> str:
    return str(to_money(value))


def _date_text(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_product(record: Product) -> Dict[str, Any]:
    """Convert a product dataclass into a JSON-compatible dictionary."""

    return {
        RECORD_VERSION_KEY: RECORD_SCHEMA_VERSION,
        "product_id": record.product_id,
        "name": record.name,
        "description": record.description,
        "category": record.category.value,
        "cost_price": _money_text(record.cost_price),
        "sale_price": _money_text(record.sale_price),
        "quantity": record.quantity,
        "supplier": record.supplier,
        "acquired_on": record.acquired_on.isoformat(),
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
    }


def serialize_payment(record: Payment) -> Dict[str, Any]:
    """Convert an embedded payment, including installments and entries."""

    return {
        "payment_id": record.payment_id,
        "owner_id": record.owner_id,
        "method": record.method.value if record.method is not None else None,
        "total_owed": _money_text(record.total_owed),
        "amount_received": _money_text(record.amount_received),
        "status": record.status.value,
        "installments": [
            {
                "number": installment.number,
                "amount": _money_text(installment.amount),
                "due_date": installment.due_date.isoformat(),
                "paid": installment.paid,
                "paid_on": _date_text(installment.paid_on),
            }
            for installment in record.installments
        ],
        "entries": [
            {
                "entry_id": entry.entry_id,
                "amount": _money_text(entry.amount),
                "paid_on": entry.paid_on.isoformat(),
                "note": entry.note,
            }
            for entry in record.entries
        ],
    }


def serialize_sale(record: Sale) -> Dict[str, Any]:
    return {
        RECORD_VERSION_KEY: RECORD_SCHEMA_VERSION,
        "sale_id": record.sale_id,
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": _money_text(item.unit_price),
            }
            for item in record.items
        ],
        "total_value": _money_text(record.total_value),
        "customer_name": record.customer_name,
        "customer_contact": record.customer_contact,
        "sale_date": record.sale_date.isoformat(),
        "payment_method": record.payment_method.value,
        "installment_count": record.installment_count,
        "status": record.status.value,
        "payment": serialize_payment(record.payment),
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
    }


def serialize_loan(record: Loan) -> Dict[str, Any]:
    return {
        RECORD_VERSION_KEY: RECORD_SCHEMA_VERSION,
        "loan_id": record.loan_id,
        "customer_name": record.customer_name,
        "requested_amount": _money_text(record.requested_amount),
        "interest_rate": str(record.interest_rate),
        "total_owed": _money_text(record.total_owed),
        "loan_date": record.loan_date.isoformat(),
        "due_date": record.due_date.isoformat(),
        "status": record.status.value,
        "payment": serialize_payment(record.payment),
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
    }


def serialize_cash_movement(record: CashMovement) -> Dict[str, Any]:
    return {
        RECORD_VERSION_KEY: RECORD_SCHEMA_VERSION,
        "movement_id": record.movement_id,
        "movement_type": record.movement_type.value,
        "channel": record.channel.value,
        "direction": record.direction.value,
        "description": record.description,
        "amount": _money_text(record.amount),
        "movement_date": record.movement_date.isoformat(),
        "sale_id": record.sale_id,
        "purchase_id": record.purchase_id,
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
    }


def serialize_purchase(record: Purchase) -> Dict[str, Any]:
    return {
        RECORD_VERSION_KEY: RECORD_SCHEMA_VERSION,
        "purchase_id": record.purchase_id,
        "supplier": record.supplier,
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_cost": _money_text(item.unit_cost),
            }
            for item in record.items
        ],
        "total_value": _money_text(record.total_value),
        "purchase_date": record.purchase_date.isoformat(),
        "payment_method": record.payment_method.value,
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
    }


def serialize_goal(record: ReinvestmentGoal) -> Dict[str, Any]:
    return {
        RECORD_VERSION_KEY: RECORD_SCHEMA_VERSION,
        "goal_id": record.goal_id,
        "target_percentage": str(record.target_percentage),
        "period_start": record.period_start.isoformat(),
        "period_end": record.period_end.isoformat(),
        "active": record.active,
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
    }


def serialize_customer(record: Customer) -> Dict[str, Any]:
    return {
        RECORD_VERSION_KEY: RECORD_SCHEMA_VERSION,
        "customer_id": record.customer_id,
        "name": record.name,
        "contact": record.contact,
        "email": record.email,
        "purchase_count": record.purchase_count,
        "total_spent": _money_text(record.total_spent),
        "last_purchase_at": record.last_purchase_at.isoformat() if record.last_purchase_at else None,
    }


# ---------------------------------------------------------------------------
# Deserialization
#
# These converters are strict: a missing key raises ``KeyError`` and a bad
# value raises ``ValueError``/``TypeError``. The migration step decides what
# to do with records that fail.
# ---------------------------------------------------------------------------


def _require_text(raw: Mapping[str, Any], key: str) -> str:
    value = raw[key]
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Field '{key}' must be a non-empty string")
    return value


def _optional_text(raw: Mapping[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _parse_int(raw: Mapping[str, Any], key: str) -> int:
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError(f"Field '{key}' must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"Field '{key}' must be a whole number")
    return int(value)


def _parse_money(raw: Mapping[str, Any], key: str) -> Decimal:
    value = raw[key]
    if value is None:
        raise ValueError(f"Field '{key}' must be a monetary amount")
    return to_money(value)


def _parse_decimal(raw: Mapping[str, Any], key: str) -> Decimal:
    value = raw[key]
    if value is None or isinstance(value, bool):
        raise ValueError(f"Field '{key}' must be numeric")
    try:
        number = Decimal(str(value))
    except ArithmeticError as exc:
        raise ValueError(f"Field '{key}' must be numeric") from exc
    if not number.is_finite():
        raise ValueError(f"Field '{key}' must be a finite number")
    return number


def _parse_date(raw: Mapping[str, Any], key: str) -> date:
    value = raw[key]
    if not isinstance(value, str):
        raise TypeError(f"Field '{key}' must be an ISO date string")
    # Accept full timestamps as well; only the calendar date matters.
    return date.fromisoformat(value[:10])


def _parse_optional_date(raw: Mapping[str, Any], key: str) -> Optional[date]:
    if raw.get(key) in (None, ""):
        return None
    return _parse_date(raw, key)


def _parse_datetime(raw: Mapping[str, Any], key: str) -> datetime:
    value = raw[key]
    if not isinstance(value, str):
        raise TypeError(f"Field '{key}' must be an ISO timestamp string")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _parse_list(raw: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    value = raw.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise TypeError(f"Field '{key}' must be a list of objects")
    return value


def deserialize_product(raw: Mapping[str, Any]) -> Product:
    """Convert a raw dictionary into a :class:`Product`."""

    quantity = _parse_int(raw, "quantity")
    return Product(
        product_id=_require_text(raw, "product_id"),
        name=_require_text(raw, "name"),
        description=str(raw.get("description") or ""),
        category=ProductCategory(raw["category"]),
        cost_price=_parse_money(raw, "cost_price"),
        sale_price=_parse_money(raw, "sale_price"),
        quantity=max(0, quantity),
        supplier=_optional_text(raw, "supplier"),
        acquired_on=_parse_date(raw, "acquired_on"),
        notes=_optional_text(raw, "notes"),
        created_at=_parse_datetime(raw, "created_at"),
    )


def deserialize_payment(raw: Mapping[str, Any]) -> Payment:
    """Convert a raw embedded payment into a :class:`Payment`."""

    installments = tuple(
        Installment(
            number=_parse_int(item, "number"),
            amount=_parse_money(item, "amount"),
            due_date=_parse_date(item, "due_date"),
            paid=bool(item.get("paid", False)),
            paid_on=_parse_optional_date(item, "paid_on"),
        )
        for item in _parse_list(raw, "installments")
    )
    entries = tuple(
        PaymentEntry(
            entry_id=_require_text(item, "entry_id"),
            amount=_parse_money(item, "amount"),
            paid_on=_parse_date(item, "paid_on"),
            note=_optional_text(item, "note"),
        )
        for item in _parse_list(raw, "entries")
    )
    method_raw = raw.get("method")
    return Payment(
        payment_id=_require_text(raw, "payment_id"),
        owner_id=_require_text(raw, "owner_id"),
        method=PaymentMethod(method_raw) if method_raw is not None else None,
        total_owed=_parse_money(raw, "total_owed"),
        amount_received=_parse_money(raw, "amount_received"),
        status=PaymentStatus(raw["status"]),
        installments=installments,
        entries=entries,
    )


def deserialize_sale(raw: Mapping[str, Any]) -> Sale:
    items = tuple(
        SaleItem(
            product_id=_require_text(item, "product_id"),
            product_name=str(item.get("product_name") or ""),
            quantity=_parse_int(item, "quantity"),
            unit_price=_parse_money(item, "unit_price"),
        )
        for item in _parse_list(raw, "items")
    )
    if not items:
        raise ValueError("A sale must contain at least one item")
    payment_raw = raw["payment"]
    if not isinstance(payment_raw, dict):
        raise TypeError("Field 'payment' must be an object")
    return Sale(
        sale_id=_require_text(raw, "sale_id"),
        items=items,
        total_value=_parse_money(raw, "total_value"),
        customer_name=_require_text(raw, "customer_name"),
        customer_contact=_optional_text(raw, "customer_contact"),
        sale_date=_parse_date(raw, "sale_date"),
        payment_method=PaymentMethod(raw["payment_method"]),
        installment_count=max(1, _parse_int(raw, "installment_count")),
        status=SaleStatus(raw["status"]),
        payment=deserialize_payment(payment_raw),
        notes=_optional_text(raw, "notes"),
        created_at=_parse_datetime(raw, "created_at"),
    )


def deserialize_loan(raw: Mapping[str, Any]) -> Loan:
    payment_raw = raw["payment"]
    if not isinstance(payment_raw, dict):
        raise TypeError("Field 'payment' must be an object")
    return Loan(
        loan_id=_require_text(raw, "loan_id"),
        customer_name=_require_text(raw, "customer_name"),
        requested_amount=_parse_money(raw, "requested_amount"),
        interest_rate=_parse_decimal(raw, "interest_rate"),
        total_owed=_parse_money(raw, "total_owed"),
        loan_date=_parse_date(raw, "loan_date"),
        due_date=_parse_date(raw, "due_date"),
        status=LoanStatus(raw["status"]),
        payment=deserialize_payment(payment_raw),
        notes=_optional_text(raw, "notes"),
        created_at=_parse_datetime(raw, "created_at"),
    )


def deserialize_cash_movement(raw: Mapping[str, Any]) -> CashMovement:
    return CashMovement(
        movement_id=_require_text(raw, "movement_id"),
        movement_type=MovementType(raw["movement_type"]),
        channel=CashChannel(raw["channel"]),
        direction=CashDirection(raw["direction"]),
        description=str(raw.get("description") or ""),
        amount=_parse_money(raw, "amount"),
        movement_date=_parse_date(raw, "movement_date"),
        sale_id=_optional_text(raw, "sale_id"),
        purchase_id=_optional_text(raw, "purchase_id"),
        notes=_optional_text(raw, "notes"),
        created_at=_parse_datetime(raw, "created_at"),
    )


def deserialize_purchase(raw: Mapping[str, Any]) -> Purchase:
    items = tuple(
        PurchaseItem(
            product_id=_optional_text(item, "product_id"),
            product_name=_require_text(item, "product_name"),
            quantity=_parse_int(item, "quantity"),
            unit_cost=_parse_money(item, "unit_cost"),
        )
        for item in _parse_list(raw, "items")
    )
    return Purchase(
        purchase_id=_require_text(raw, "purchase_id"),
        supplier=_require_text(raw, "supplier"),
        items=items,
        total_value=_parse_money(raw, "total_value"),
        purchase_date=_parse_date(raw, "purchase_date"),
        payment_method=PaymentMethod(raw["payment_method"]),
        notes=_optional_text(raw, "notes"),
        created_at=_parse_datetime(raw, "created_at"),
    )


def deserialize_goal(raw: Mapping[str, Any]) -> ReinvestmentGoal:
    return ReinvestmentGoal(
        goal_id=_require_text(raw, "goal_id"),
        target_percentage=_parse_decimal(raw, "target_percentage"),
        period_start=_parse_date(raw, "period_start"),
        period_end=_parse_date(raw, "period_end"),
        active=bool(raw.get("active", False)),
        notes=_optional_text(raw, "notes"),
        created_at=_parse_datetime(raw, "created_at"),
    )


def deserialize_customer(raw: Mapping[str, Any]) -> Customer:
    last_purchase_raw = raw.get("last_purchase_at")
    return Customer(
        customer_id=_require_text(raw, "customer_id"),
        name=_require_text(raw, "name"),
        contact=str(raw.get("contact") or ""),
        email=_optional_text(raw, "email"),
        purchase_count=_parse_int(raw, "purchase_count"),
        total_spent=_parse_money(raw, "total_spent"),
        last_purchase_at=_parse_datetime(raw, "last_purchase_at") if last_purchase_raw else None,
    )


STATE_FIELDS: Mapping[CollectionName, str] = {
    CollectionName.PRODUCTS: "products",
    CollectionName.SALES: "sales",
    CollectionName.LOANS: "loans",
    CollectionName.CASH_MOVEMENTS: "cash_movements",
    CollectionName.PURCHASES: "purchases",
    CollectionName.REINVESTMENT_GOALS: "goals",
    CollectionName.CUSTOMERS: "customers",
}

SERIALIZERS: Mapping[CollectionName, Any] = {
    CollectionName.PRODUCTS: serialize_product,
    CollectionName.SALES: serialize_sale,
    CollectionName.LOANS: serialize_loan,
    CollectionName.CASH_MOVEMENTS: serialize_cash_movement,
    CollectionName.PURCHASES: serialize_purchase,
    CollectionName.REINVESTMENT_GOALS: serialize_goal,
    CollectionName.CUSTOMERS: serialize_customer,
}


def write_state(store: Store, state: LedgerState, names: Optional[Sequence[CollectionName]] = None) -> None:
    """Serialize collections of ``state`` into ``store``.

    Args:
        store (Store): Document receiving the serialized collections.
        state (LedgerState): Snapshot to serialize.
        names (Sequence[CollectionName] | None): Collections to write. Every
            collection is written when omitted.
    """

    for name in names if names is not None else tuple(CollectionName):
        serializer = SERIALIZERS[name]
        records = getattr(state, STATE_FIELDS[name])
        save_collection(store, name, [serializer(record) for record in records])
