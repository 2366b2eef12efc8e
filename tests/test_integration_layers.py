"""Integration tests describing end-to-end Shop Ledger workflows.

These scenarios run the engine against a real data file on disk, persisting
and reloading between steps the way the command-line tool does.
"""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

from shop_ledger import cli, constants, core_logic, reports
from shop_ledger.constants import PaymentMethod, PaymentStatus, SaleStatus


def _register_sample_product(context: core_logic.RuntimeContext, *, name: str, price: str, quantity: int):
    return core_logic.record_product(
        context,
        core_logic.ProductCommand(
            name=name,
            category=constants.ProductCategory.CLOTHING,
            cost_price=Decimal(price) / 2,
            sale_price=Decimal(price),
            quantity=quantity,
        ),
    )


def _reload(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    core_logic.persist_context(context)
    return core_logic.refresh_context(context)


def test_installment_sale_lifecycle_flow(runtime_context):
    """Stock, sell on installments, collect, and reload between every step."""

    context = runtime_context
    product = _register_sample_product(context, name="Wool coat", price="150.00", quantity=4)
    context = _reload(context)

    sale = core_logic.record_sale(
        context,
        core_logic.SaleCommand(
            items=(core_logic.SaleLine(product_id=product.product_id, quantity=2),),
            customer_name="Ana",
            payment_method=PaymentMethod.INSTALLMENT,
            installment_count=3,
        ),
    )
    context = _reload(context)

    assert core_logic.get_product(context.state, product.product_id).quantity == 2
    assert context.state.customers[0].total_spent == Decimal("300.00")

    for _ in range(3):
        core_logic.record_sale_payment(
            context, sale.sale_id, core_logic.PaymentCommand(amount=Decimal("100.00"))
        )
        context = _reload(context)

    stored = core_logic.get_sale(context.state, sale.sale_id)
    assert stored.status is SaleStatus.COMPLETED
    assert stored.payment.status is PaymentStatus.PAID
    assert all(item.paid for item in stored.payment.installments)
    assert len(stored.payment.entries) == 3
    assert reports.customer_debts(context.state) == []


def test_loan_and_cash_flow(runtime_context):
    """A loan is disbursed from cash and repaid electronically."""

    context = runtime_context
    loan = core_logic.record_loan(
        context, core_logic.LoanCommand(customer_name="Bruno", requested_amount=Decimal("1000"))
    )
    core_logic.record_cash_movement(
        context,
        core_logic.MovementCommand(
            movement_type=constants.MovementType.LOAN_DISBURSEMENT_CASH, amount=Decimal("1000")
        ),
    )
    context = _reload(context)

    core_logic.record_loan_payment(context, loan.loan_id, core_logic.PaymentCommand(amount=Decimal("1250")))
    core_logic.record_cash_movement(
        context,
        core_logic.MovementCommand(
            movement_type=constants.MovementType.LOAN_REPAYMENT_INSTANT, amount=Decimal("1200")
        ),
    )
    context = _reload(context)

    stored = core_logic.get_loan(context.state, loan.loan_id)
    assert stored.status is constants.LoanStatus.PAID
    assert stored.payment.amount_received == Decimal("1200.00")

    balances = core_logic.calculate_cash_balances(context.state)
    assert balances.electronic == Decimal("1200.00")
    assert balances.physical_cash == Decimal("-1000.00")
    assert balances.total == Decimal("200.00")

    summary = reports.profit_summary(context.state)
    assert summary.loan_profit_realized == Decimal("200.00")


def test_purchase_goal_and_removal_flow(runtime_context):
    """Reinvesting through purchases moves goal progress; removing one rolls its cash back."""

    context = runtime_context
    product = _register_sample_product(context, name="Scarf", price="100.00", quantity=20)
    core_logic.record_sale(
        context,
        core_logic.SaleCommand(
            items=(core_logic.SaleLine(product_id=product.product_id, quantity=10),),
            customer_name="Carla",
            payment_method=PaymentMethod.CASH,
        ),
    )
    today = context.state.sales[0].sale_date
    goal = core_logic.record_goal(
        context,
        core_logic.GoalCommand(target_percentage=Decimal("30"), period_start=today, period_end=today),
    )
    purchase = core_logic.record_purchase(
        context,
        core_logic.PurchaseCommand(
            supplier="Mill",
            items=(core_logic.PurchaseLine(product_id=product.product_id, quantity=3, unit_cost=Decimal("50")),),
            payment_method=PaymentMethod.CASH,
            purchase_date=today,
        ),
    )
    context = _reload(context)

    progress = reports.goal_progress(context.state, goal)
    assert progress.percent_realized == Decimal("50.00")
    assert progress.shortfall == Decimal("150.00")
    assert core_logic.get_product(context.state, product.product_id).quantity == 13

    core_logic.record_purchase_removal(context, purchase.purchase_id)
    context = _reload(context)

    assert context.state.purchases == ()
    assert context.state.cash_movements == ()
    assert reports.goal_progress(context.state, goal).reinvested_amount == Decimal("0.00")


def test_legacy_records_are_upgraded_and_malformed_ones_dropped(config_factory):
    """Loading a version 1 file upgrades good records and drops the rest on save."""

    bundle = config_factory()
    document = json.loads(bundle.data_path.read_text(encoding="utf-8"))
    document["sales"] = [
        {
            "sale_id": "SAL-legacy",
            "product_id": "PRD-1",
            "product_name": "Scarf",
            "quantity": 1,
            "unit_price": "40.00",
            "total_value": "40.00",
            "customer_name": "Ana",
            "sale_date": "2023-11-02",
            "payment_method": "card",
            "status": "pending",
        },
        {"sale_id": "SAL-broken", "total_value": "oops"},
    ]
    bundle.data_path.write_text(json.dumps(document), encoding="utf-8")

    context = core_logic.load_runtime_context(bundle.config_path)

    assert [sale.sale_id for sale in context.state.sales] == ["SAL-legacy"]
    assert len(context.rejected) == 1

    core_logic.persist_context(context)
    saved = json.loads(bundle.data_path.read_text(encoding="utf-8"))

    assert [raw["sale_id"] for raw in saved["sales"]] == ["SAL-legacy"]
    assert saved["sales"][0]["schema"] == constants.RECORD_SCHEMA_VERSION
    assert saved["sales"][0]["payment"]["status"] == "pending"


def test_cli_sale_and_payment_flow(config_factory, capsys):
    """Drive product, sale, and payment commands through the CLI entry point."""

    bundle = config_factory()
    base = ["--config", str(bundle.config_path)]

    assert cli.main(
        base
        + ["add-product", "--name", "Denim jacket", "--category", "clothing", "--cost-price", "60", "--sale-price", "100", "--quantity", "3"]
    ) == 0
    product_id = core_logic.load_runtime_context(bundle.config_path).state.products[0].product_id

    assert cli.main(
        base
        + ["sale", "--item", f"{product_id}:3", "--customer", "Ana", "--payment-method", "card", "--installments", "3"]
    ) == 0
    sale_id = core_logic.load_runtime_context(bundle.config_path).state.sales[0].sale_id

    assert cli.main(base + ["pay-sale", "--sale-id", sale_id, "--amount", "100"]) == 0
    capsys.readouterr()

    assert cli.main(base + ["debts"]) == 0
    assert "200.00" in capsys.readouterr().out

    context = core_logic.load_runtime_context(bundle.config_path)
    sale = core_logic.get_sale(context.state, sale_id)
    assert sale.payment.status is PaymentStatus.PARTIAL
    assert [item.paid for item in sale.payment.installments] == [True, False, False]
    assert core_logic.get_product(context.state, product_id).quantity == 0


def test_cli_rejects_oversell_without_writing(config_factory):
    bundle = config_factory()
    base = ["--config", str(bundle.config_path)]

    assert cli.main(
        base
        + ["add-product", "--name", "Mug", "--category", "misc", "--cost-price", "4", "--sale-price", "9", "--quantity", "1"]
    ) == 0
    product_id = core_logic.load_runtime_context(bundle.config_path).state.products[0].product_id

    exit_code = cli.main(
        base + ["sale", "--item", f"{product_id}:2", "--customer", "Dora", "--payment-method", "cash"]
    )

    assert exit_code == 2
    context = core_logic.load_runtime_context(bundle.config_path)
    assert context.state.sales == ()
    assert context.state.products[0].quantity == 1


def test_cli_unknown_sale_payment_exits_with_business_error(config_factory):
    bundle = config_factory()

    exit_code = cli.main(
        ["--config", str(bundle.config_path), "pay-sale", "--sale-id", "SAL-missing", "--amount", "10"]
    )

    assert exit_code == 2


def test_cli_export_leaves_data_file_untouched(config_factory, tmp_path):
    bundle = config_factory()
    before = bundle.data_path.read_text(encoding="utf-8")
    output = tmp_path / "out.xlsx"

    assert cli.main(["--config", str(bundle.config_path), "export", "--output", str(output)]) == 0

    assert output.exists()
    assert bundle.data_path.read_text(encoding="utf-8") == before


def test_cli_goal_report_flow(config_factory, capsys):
    bundle = config_factory()
    base = ["--config", str(bundle.config_path)]
    today = date.today().isoformat()

    assert cli.main(base + ["add-goal", "--target", "25", "--start", today, "--end", today]) == 0
    capsys.readouterr()

    assert cli.main(base + ["goal"]) == 0
    output = capsys.readouterr().out
    assert "25" in output
    assert "Target amount:  0.00" in output
