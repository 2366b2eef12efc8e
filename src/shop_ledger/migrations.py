"""Validation and migration of persisted records.

Every collection read from the data file passes through :func:`migrate_store`
exactly once per load. Each raw record is upgraded to the current record
schema (records written before schema tags existed count as version 1) and
then converted into its dataclass. A record that cannot be upgraded or
converted is reported as a :class:`RecordValidationError` and left out of the
resulting state; it never aborts the load.

Version 1 records may lack the embedded payment, carry a single sale line at
the top level instead of an ``items`` list, or have receipts without a
matching entry ledger. The upgrade back-fills those pieces.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import (
    DEFAULT_LOAN_INTEREST_RATE,
    IMMEDIATE_PAYMENT_METHODS,
    MOVEMENT_RULES,
    RECORD_SCHEMA_VERSION,
    CollectionName,
    LoanStatus,
    MovementType,
    PaymentMethod,
    PaymentStatus,
    SaleStatus,
)
from . import data_manager
from .data_manager import LedgerState, Store
from .money import ZERO, to_money
from .payments import normalize_payment


class RecordValidationError(Exception):
    """Raised when a persisted record cannot be turned into a valid record."""

    def __init__(self, collection: CollectionName, index: int, reason: str, record_id: Optional[str] = None):
        self.collection = collection
        self.index = index
        self.reason = reason
        self.record_id = record_id
        label = record_id if record_id else f"#{index}"
        super().__init__(f"{collection.value} record {label} rejected: {reason}")


@dataclass(frozen=True)
class MigrationReport:
    """Outcome of migrating one collection: accepted records and rejections."""

    collection: CollectionName
    records: Tuple[Any, ...]
    errors: Tuple[RecordValidationError, ...]

    @property
    def rejected_count(self) -> int:
        return len(self.errors)


@dataclass(frozen=True)
class MigrationResult:
    state: LedgerState
    reports: Mapping[CollectionName, MigrationReport]

    @property
    def errors(self) -> Tuple[RecordValidationError, ...]:
        return tuple(error for report in self.reports.values() for error in report.errors)


_ID_KEYS: Mapping[CollectionName, str] = {
    CollectionName.PRODUCTS: "product_id",
    CollectionName.SALES: "sale_id",
    CollectionName.LOANS: "loan_id",
    CollectionName.CASH_MOVEMENTS: "movement_id",
    CollectionName.PURCHASES: "purchase_id",
    CollectionName.REINVESTMENT_GOALS: "goal_id",
    CollectionName.CUSTOMERS: "customer_id",
}


def _record_version(raw: Mapping[str, Any]) -> int:
    version = raw.get(data_manager.RECORD_VERSION_KEY, 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValueError(f"Unrecognised record schema tag: {version!r}")
    if version > RECORD_SCHEMA_VERSION:
        raise ValueError(f"Record schema {version} is newer than supported {RECORD_SCHEMA_VERSION}")
    return version


def _fallback_timestamp(raw: Mapping[str, Any], date_key: str) -> str:
    """Midnight UTC of the record's business date, for records without ``created_at``."""

    business_date = date.fromisoformat(str(raw[date_key])[:10])
    return datetime.combine(business_date, time.min, tzinfo=timezone.utc).isoformat()


def _backfill_entries(payment: Dict[str, Any], paid_on: str) -> None:
    """Give a version 1 payment an entry ledger matching what it already received."""

    if payment.get("entries"):
        return
    received = to_money(payment.get("amount_received") or ZERO)
    payment["entries"] = []
    if received > ZERO:
        payment["entries"].append(
            {
                "entry_id": f"{payment['payment_id']}-migrated",
                "amount": str(received),
                "paid_on": paid_on,
                "note": "balance carried over by migration",
            }
        )


def _upgrade_sale(raw: Dict[str, Any]) -> Dict[str, Any]:
    upgraded = dict(raw)
    if "items" not in upgraded and "product_id" in upgraded:
        upgraded["items"] = [
            {
                "product_id": upgraded.pop("product_id"),
                "product_name": upgraded.pop("product_name", ""),
                "quantity": upgraded.pop("quantity"),
                "unit_price": upgraded.pop("unit_price"),
            }
        ]
    upgraded.setdefault("created_at", _fallback_timestamp(upgraded, "sale_date"))
    method = PaymentMethod(upgraded["payment_method"])

    payment = upgraded.get("payment")
    if not isinstance(payment, dict):
        total = str(to_money(upgraded["total_value"]))
        paid_now = method in IMMEDIATE_PAYMENT_METHODS
        payment = {
            "payment_id": f"{upgraded['sale_id']}-payment",
            "owner_id": upgraded["sale_id"],
            "method": method.value,
            "total_owed": total,
            "amount_received": total if paid_now else "0.00",
            "status": PaymentStatus.PAID.value if paid_now else PaymentStatus.PENDING.value,
            "installments": [],
        }
        log.debug("Synthesized payment for legacy sale '%s'", upgraded["sale_id"])
    else:
        payment = dict(payment)
    _backfill_entries(payment, upgraded["sale_date"])
    upgraded["payment"] = payment
    upgraded.setdefault("installment_count", max(1, len(payment.get("installments") or [])))
    return upgraded


def _upgrade_loan(raw: Dict[str, Any]) -> Dict[str, Any]:
    upgraded = dict(raw)
    upgraded.setdefault("created_at", _fallback_timestamp(upgraded, "loan_date"))
    upgraded.setdefault("interest_rate", str(DEFAULT_LOAN_INTEREST_RATE))
    payment = upgraded.get("payment")
    if not isinstance(payment, dict):
        payment = {
            "payment_id": f"{upgraded['loan_id']}-payment",
            "owner_id": upgraded["loan_id"],
            "method": None,
            "total_owed": str(to_money(upgraded["total_owed"])),
            "amount_received": "0.00",
            "status": PaymentStatus.PENDING.value,
            "installments": [],
        }
    else:
        payment = dict(payment)
    _backfill_entries(payment, upgraded["loan_date"])
    upgraded["payment"] = payment
    return upgraded


def _upgrade_dated(date_key: str) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    def _upgrade(raw: Dict[str, Any]) -> Dict[str, Any]:
        upgraded = dict(raw)
        upgraded.setdefault("created_at", _fallback_timestamp(upgraded, date_key))
        return upgraded

    return _upgrade


def _upgrade_customer(raw: Dict[str, Any]) -> Dict[str, Any]:
    upgraded = dict(raw)
    upgraded.setdefault("purchase_count", 0)
    upgraded.setdefault("total_spent", "0.00")
    return upgraded


_UPGRADERS: Mapping[CollectionName, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    CollectionName.PRODUCTS: _upgrade_dated("acquired_on"),
    CollectionName.SALES: _upgrade_sale,
    CollectionName.LOANS: _upgrade_loan,
    CollectionName.CASH_MOVEMENTS: _upgrade_dated("movement_date"),
    CollectionName.PURCHASES: _upgrade_dated("purchase_date"),
    CollectionName.REINVESTMENT_GOALS: _upgrade_dated("period_start"),
    CollectionName.CUSTOMERS: _upgrade_customer,
}


def _finalize_sale(sale: data_manager.Sale) -> data_manager.Sale:
    payment = normalize_payment(sale.payment)
    status = sale.status
    if status is not SaleStatus.CANCELLED:
        status = SaleStatus.COMPLETED if payment.status is PaymentStatus.PAID else SaleStatus.PENDING
    return replace(sale, payment=payment, status=status)


def _finalize_loan(loan: data_manager.Loan) -> data_manager.Loan:
    payment = normalize_payment(loan.payment)
    status = LoanStatus.PAID if payment.status is PaymentStatus.PAID else LoanStatus.PENDING
    return replace(loan, payment=payment, status=status)


def _finalize_movement(movement: data_manager.CashMovement) -> data_manager.CashMovement:
    rule = MOVEMENT_RULES[movement.movement_type]
    if movement.channel is not rule.channel or movement.direction is not rule.direction:
        log.warning(
            "Cash movement '%s' stored channel/direction inconsistent with type '%s'; re-deriving",
            movement.movement_id,
            movement.movement_type.value,
        )
    return replace(movement, channel=rule.channel, direction=rule.direction)


def _prepare_movement(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in channel/direction from the type before strict conversion."""

    rule = MOVEMENT_RULES[MovementType(raw["movement_type"])]
    prepared = dict(raw)
    prepared.setdefault("channel", rule.channel.value)
    prepared.setdefault("direction", rule.direction.value)
    return prepared


_CONVERTERS: Mapping[CollectionName, Callable[[Dict[str, Any]], Any]] = {
    CollectionName.PRODUCTS: data_manager.deserialize_product,
    CollectionName.SALES: lambda raw: _finalize_sale(data_manager.deserialize_sale(raw)),
    CollectionName.LOANS: lambda raw: _finalize_loan(data_manager.deserialize_loan(raw)),
    CollectionName.CASH_MOVEMENTS: lambda raw: _finalize_movement(
        data_manager.deserialize_cash_movement(_prepare_movement(raw))
    ),
    CollectionName.PURCHASES: data_manager.deserialize_purchase,
    CollectionName.REINVESTMENT_GOALS: data_manager.deserialize_goal,
    CollectionName.CUSTOMERS: data_manager.deserialize_customer,
}


def migrate_record(collection: CollectionName, raw: Any, *, index: int = 0) -> Any:
    """Upgrade and convert a single raw record.

    Args:
        collection (CollectionName): Collection the record was stored under.
        raw (Any): Value read from the data file.
        index (int): Position of the record, used in error messages.

    Returns:
        Any: The dataclass instance for ``collection``.

    Raises:
        RecordValidationError: If the record is malformed beyond repair.
    """

    if not isinstance(raw, dict):
        raise RecordValidationError(collection, index, f"expected an object, got {type(raw).__name__}")
    record_id = raw.get(_ID_KEYS[collection])
    record_id = record_id if isinstance(record_id, str) else None
    try:
        upgraded = raw
        if _record_version(raw) < RECORD_SCHEMA_VERSION:
            upgraded = _UPGRADERS[collection](dict(raw))
        return _CONVERTERS[collection](upgraded)
    except (KeyError, ValueError, TypeError, ArithmeticError) as exc:
        reason = f"missing field {exc}" if isinstance(exc, KeyError) else str(exc)
        raise RecordValidationError(collection, index, reason, record_id) from exc


def migrate_collection(collection: CollectionName, raw_records: Sequence[Any]) -> MigrationReport:
    """Migrate every raw record of ``collection``, collecting rejections."""

    accepted = []
    errors = []
    seen_ids = set()
    for index, raw in enumerate(raw_records):
        try:
            record = migrate_record(collection, raw, index=index)
        except RecordValidationError as error:
            log.warning("%s", error)
            errors.append(error)
            continue
        record_id = getattr(record, _ID_KEYS[collection])
        if record_id in seen_ids:
            error = RecordValidationError(collection, index, "duplicate identifier", record_id)
            log.warning("%s", error)
            errors.append(error)
            continue
        seen_ids.add(record_id)
        accepted.append(record)

    if errors:
        log.warning(
            "Loaded %d %s records, rejected %d",
            len(accepted),
            collection.value,
            len(errors),
        )
    else:
        log.debug("Loaded %d %s records", len(accepted), collection.value)
    return MigrationReport(collection=collection, records=tuple(accepted), errors=tuple(errors))


def migrate_store(store: Store) -> MigrationResult:
    """Validate every collection in ``store`` and assemble a :class:`LedgerState`."""

    reports: Dict[CollectionName, MigrationReport] = {}
    for collection in CollectionName:
        reports[collection] = migrate_collection(collection, data_manager.load_collection(store, collection))

    state = LedgerState(
        products=reports[CollectionName.PRODUCTS].records,
        sales=reports[CollectionName.SALES].records,
        loans=reports[CollectionName.LOANS].records,
        cash_movements=reports[CollectionName.CASH_MOVEMENTS].records,
        purchases=reports[CollectionName.PURCHASES].records,
        goals=reports[CollectionName.REINVESTMENT_GOALS].records,
        customers=reports[CollectionName.CUSTOMERS].records,
    )
    return MigrationResult(state=state, reports=reports)


__all__ = [
    "RecordValidationError",
    "MigrationReport",
    "MigrationResult",
    "migrate_record",
    "migrate_collection",
    "migrate_store",
]
