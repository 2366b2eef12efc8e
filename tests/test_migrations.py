"""Tests for record validation and the version 1 to version 2 upgrade."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from shop_ledger import constants, data_manager, migrations
from shop_ledger.constants import CollectionName


def _legacy_sale(**overrides):
    raw = {
        "sale_id": "SAL-legacy",
        "product_id": "PRD-1",
        "product_name": "Scarf",
        "quantity": 2,
        "unit_price": "25.00",
        "total_value": "50.00",
        "customer_name": "Ana",
        "sale_date": "2023-11-02",
        "payment_method": "cash",
        "status": "completed",
    }
    raw.update(overrides)
    return raw


def _movement(**overrides):
    raw = {
        "schema": 2,
        "movement_id": "MOV-1",
        "movement_type": "expense_cash",
        "channel": "physical_cash",
        "direction": "outflow",
        "description": "Rent",
        "amount": "80.00",
        "movement_date": "2024-01-05",
        "created_at": "2024-01-05T10:00:00+00:00",
    }
    raw.update(overrides)
    return raw


def test_legacy_single_line_sale_is_upgraded_with_payment():
    sale = migrations.migrate_record(CollectionName.SALES, _legacy_sale())

    assert isinstance(sale, data_manager.Sale)
    assert len(sale.items) == 1
    assert sale.items[0].product_name == "Scarf"
    assert sale.payment.status is constants.PaymentStatus.PAID
    assert sale.payment.amount_received == Decimal("50.00")
    assert len(sale.payment.entries) == 1
    assert sale.installment_count == 1
    assert sale.created_at.date() == date(2023, 11, 2)


def test_legacy_card_sale_starts_pending():
    sale = migrations.migrate_record(CollectionName.SALES, _legacy_sale(payment_method="card", status="pending"))

    assert sale.payment.status is constants.PaymentStatus.PENDING
    assert sale.payment.entries == ()
    assert sale.status is constants.SaleStatus.PENDING


def test_legacy_payment_receipts_are_backfilled_as_entry():
    raw = _legacy_sale(
        payment_method="card",
        payment={
            "payment_id": "PAY-1",
            "owner_id": "SAL-legacy",
            "method": "card",
            "total_owed": "50.00",
            "amount_received": "20.00",
            "status": "partial",
        },
    )

    sale = migrations.migrate_record(CollectionName.SALES, raw)

    assert [entry.amount for entry in sale.payment.entries] == [Decimal("20.00")]
    assert sale.payment.amount_received == Decimal("20.00")
    assert sale.payment.status is constants.PaymentStatus.PARTIAL


def test_stored_received_amount_is_clamped_to_total():
    raw = _legacy_sale(
        payment_method="card",
        payment={
            "payment_id": "PAY-1",
            "owner_id": "SAL-legacy",
            "method": "card",
            "total_owed": "50.00",
            "amount_received": "0.00",
            "status": "pending",
            "entries": [{"entry_id": "E1", "amount": "70.00", "paid_on": "2023-11-03"}],
        },
    )

    sale = migrations.migrate_record(CollectionName.SALES, raw)

    assert sale.payment.amount_received == Decimal("50.00")
    assert sale.status is constants.SaleStatus.COMPLETED


def test_cancelled_status_survives_migration():
    sale = migrations.migrate_record(CollectionName.SALES, _legacy_sale(status="cancelled"))

    assert sale.status is constants.SaleStatus.CANCELLED


def test_legacy_loan_gets_default_interest_rate():
    raw = {
        "loan_id": "LOA-1",
        "customer_name": "Bruno",
        "requested_amount": "100.00",
        "total_owed": "120.00",
        "loan_date": "2024-01-01",
        "due_date": "2024-01-31",
        "status": "pending",
    }

    loan = migrations.migrate_record(CollectionName.LOANS, raw)

    assert loan.interest_rate == constants.DEFAULT_LOAN_INTEREST_RATE
    assert loan.payment.total_owed == Decimal("120.00")
    assert loan.status is constants.LoanStatus.PENDING


def test_movement_channel_is_rederived_from_type():
    movement = migrations.migrate_record(
        CollectionName.CASH_MOVEMENTS,
        _movement(channel="electronic", direction="inflow"),
    )

    assert movement.channel is constants.CashChannel.PHYSICAL_CASH
    assert movement.direction is constants.CashDirection.OUTFLOW


def test_movement_without_channel_is_filled_in():
    raw = _movement()
    del raw["channel"]
    del raw["direction"]

    movement = migrations.migrate_record(CollectionName.CASH_MOVEMENTS, raw)

    assert movement.channel is constants.CashChannel.PHYSICAL_CASH


@pytest.mark.parametrize(
    "raw",
    [
        "not a record",
        _movement(amount="lots"),
        _movement(movement_type="teleport"),
        _movement(schema=99),
        {"schema": 2, "movement_id": "MOV-2"},
    ],
)
def test_malformed_records_raise_validation_error(raw):
    with pytest.raises(migrations.RecordValidationError) as excinfo:
        migrations.migrate_record(CollectionName.CASH_MOVEMENTS, raw, index=4)

    assert excinfo.value.collection is CollectionName.CASH_MOVEMENTS
    assert excinfo.value.index == 4


def test_migrate_collection_filters_bad_and_duplicate_records():
    report = migrations.migrate_collection(
        CollectionName.CASH_MOVEMENTS,
        [_movement(), _movement(amount=None), _movement()],
    )

    assert [movement.movement_id for movement in report.records] == ["MOV-1"]
    assert report.rejected_count == 2
    assert {error.index for error in report.errors} == {1, 2}


def test_migrate_store_discards_non_list_collections(caplog):
    store = data_manager.create_empty_store()
    store["products"] = {"oops": True}
    store["cash_movements"] = [_movement()]

    result = migrations.migrate_store(store)

    assert result.state.products == ()
    assert len(result.state.cash_movements) == 1
    assert result.errors == ()
    assert "non-list" in caplog.text


def _product(**overrides):
    raw = {
        "schema": 2,
        "product_id": "PRD-1",
        "name": "Scarf",
        "description": "",
        "category": "clothing",
        "cost_price": "10.00",
        "sale_price": "25.00",
        "quantity": 4,
        "acquired_on": "2024-01-05",
        "created_at": "2024-01-05T10:00:00+00:00",
    }
    raw.update(overrides)
    return raw


@pytest.mark.parametrize("quantity", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_product_quantity_is_rejected_not_raised(quantity):
    report = migrations.migrate_collection(
        CollectionName.PRODUCTS, [_product(quantity=quantity), _product(product_id="PRD-2")]
    )

    assert [product.product_id for product in report.records] == ["PRD-2"]
    assert report.rejected_count == 1
    assert report.errors[0].index == 0


@pytest.mark.parametrize("target", ["NaN", "Infinity", "-Infinity", float("nan")])
def test_non_finite_goal_target_raises_validation_error(target):
    raw = {
        "schema": 2,
        "goal_id": "GOL-1",
        "target_percentage": target,
        "period_start": "2024-03-01",
        "period_end": "2024-03-31",
        "active": True,
        "created_at": "2024-03-01T10:00:00+00:00",
    }

    with pytest.raises(migrations.RecordValidationError) as excinfo:
        migrations.migrate_record(CollectionName.REINVESTMENT_GOALS, raw)

    assert excinfo.value.collection is CollectionName.REINVESTMENT_GOALS


def test_non_finite_money_amount_is_rejected():
    report = migrations.migrate_collection(CollectionName.CASH_MOVEMENTS, [_movement(amount="Infinity")])

    assert report.records == ()
    assert report.rejected_count == 1
