"""Command-line entry points for Shop Ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the ledger
engine, and printing the aggregates it returns. Keeping the CLI thin ensures
the same parser configuration can be reused by tests, scripts, or any other
front-end that wants to expose the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, export, log, reports
from .constants import CashChannel, CashDirection, MovementType, PaymentMethod, ProductCategory

Registrar = Callable[[argparse.ArgumentParser], None]
Executor = Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Executor
    persist: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shop-ledger",
        description="Command-line tools for the Shop Ledger data file.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs, *read_specs])


def _make_spec(name: str, help_text: str, configure: Registrar, execute: Executor, *, persist: bool = True) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        configure(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, persist=persist)


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> List[CommandSpec]:
    """Declare mutating CLI commands such as sales, payments, and purchases."""
    specs = [
        register_add_product_command(),
        register_update_product_command(),
        _make_spec("remove-product", "Remove a product from the catalog.", _id_argument("--product-id"), run_remove_product),
        register_sale_command(),
        register_pay_sale_command(),
        _make_spec("cancel-sale", "Cancel a sale without restoring stock.", _id_argument("--sale-id"), run_cancel_sale),
        register_loan_command(),
        register_pay_loan_command(),
        register_movement_command(),
        _make_spec("remove-movement", "Remove a cash movement.", _id_argument("--movement-id"), run_remove_movement),
        register_purchase_command(),
        _make_spec(
            "remove-purchase",
            "Remove a purchase and its linked cash movement.",
            _id_argument("--purchase-id"),
            run_remove_purchase,
        ),
        register_add_goal_command(),
        _make_spec("activate-goal", "Make a reinvestment goal the active one.", _id_argument("--goal-id"), run_activate_goal),
    ]
    for spec in specs:
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> List[CommandSpec]:
    """Declare read-only CLI commands such as reports and the export."""
    specs = [
        _make_spec("stock", "Display current stock levels.", _no_arguments, run_stock_report, persist=False),
        register_balances_command(),
        _make_spec("profit", "Display revenue, profit, and margin.", _no_arguments, run_profit_report, persist=False),
        register_report_command(),
        _make_spec("debts", "Display what each customer owes.", _no_arguments, run_debts_report, persist=False),
        _make_spec(
            "goal",
            "Display reinvestment goal progress.",
            _optional_id_argument("--goal-id"),
            run_goal_report,
            persist=False,
        ),
        register_receivables_command(),
        register_export_command(),
    ]
    for spec in specs:
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def parse_money_argument(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value!r}") from exc


def parse_date_argument(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value!r}") from exc


def parse_sale_item(value: str) -> core_logic.SaleLine:
    """Parse ``PRODUCT_ID:QTY`` or ``PRODUCT_ID:QTY:UNIT_PRICE``."""
    parts = value.split(":")
    if len(parts) not in (2, 3) or not parts[0]:
        raise argparse.ArgumentTypeError(f"Expected PRODUCT_ID:QTY[:UNIT_PRICE], got {value!r}")
    try:
        quantity = int(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid quantity in {value!r}") from exc
    unit_price = parse_money_argument(parts[2]) if len(parts) == 3 else None
    return core_logic.SaleLine(product_id=parts[0], quantity=quantity, unit_price=unit_price)


def _parse_purchase_parts(value: str) -> tuple[str, int, Decimal]:
    parts = value.rsplit(":", 2)
    if len(parts) != 3 or not parts[0]:
        raise argparse.ArgumentTypeError(f"Expected NAME_OR_ID:QTY:UNIT_COST, got {value!r}")
    try:
        quantity = int(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid quantity in {value!r}") from exc
    return parts[0], quantity, parse_money_argument(parts[2])


def parse_purchase_item(value: str) -> core_logic.PurchaseLine:
    """Parse ``PRODUCT_ID:QTY:UNIT_COST`` for catalog products."""
    product_id, quantity, unit_cost = _parse_purchase_parts(value)
    return core_logic.PurchaseLine(product_id=product_id, quantity=quantity, unit_cost=unit_cost)


def parse_adhoc_item(value: str) -> core_logic.PurchaseLine:
    """Parse ``NAME:QTY:UNIT_COST`` for goods outside the catalog."""
    name, quantity, unit_cost = _parse_purchase_parts(value)
    return core_logic.PurchaseLine(product_name=name, quantity=quantity, unit_cost=unit_cost)


def _no_arguments(parser: argparse.ArgumentParser) -> None:
    return None


def _id_argument(flag: str) -> Registrar:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(flag, required=True)

    return configure


def _optional_id_argument(flag: str) -> Registrar:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(flag, default=None)

    return configure


# ---------------------------------------------------------------------------
# Command registration
# ---------------------------------------------------------------------------


def register_add_product_command() -> CommandSpec:
    """Register the parser and executor for ``add-product``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--category", choices=[member.value for member in ProductCategory], required=True)
        parser.add_argument("--cost-price", type=parse_money_argument, required=True)
        parser.add_argument("--sale-price", type=parse_money_argument, required=True)
        parser.add_argument("--quantity", type=int, default=0)
        parser.add_argument("--description", default="")
        parser.add_argument("--supplier", default=None)
        parser.add_argument("--acquired-on", type=parse_date_argument, default=None)
        parser.add_argument("--notes", default=None)

    return _make_spec("add-product", "Register a new product in the catalog.", configure, run_add_product)


def register_update_product_command() -> CommandSpec:
    """Register the parser and executor for ``update-product``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--category", choices=[member.value for member in ProductCategory], default=None)
        parser.add_argument("--cost-price", type=parse_money_argument, default=None)
        parser.add_argument("--sale-price", type=parse_money_argument, default=None)
        parser.add_argument("--quantity", type=int, default=None)
        parser.add_argument("--description", default=None)
        parser.add_argument("--supplier", default=None)
        parser.add_argument("--notes", default=None)

    return _make_spec("update-product", "Edit fields of an existing product.", configure, run_update_product)


def register_sale_command() -> CommandSpec:
    """Register the parser and executor for ``sale``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=parse_sale_item,
            required=True,
            help="PRODUCT_ID:QTY[:UNIT_PRICE]; repeat for several lines.",
        )
        parser.add_argument("--customer", required=True)
        parser.add_argument("--contact", default=None)
        parser.add_argument("--payment-method", choices=[member.value for member in PaymentMethod], required=True)
        parser.add_argument("--installments", type=int, default=1)
        parser.add_argument("--date", type=parse_date_argument, default=None)
        parser.add_argument("--notes", default=None)

    return _make_spec("sale", "Record a sale.", configure, run_sale)


def _configure_payment(id_flag: str) -> Registrar:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(id_flag, required=True)
        parser.add_argument("--amount", type=parse_money_argument, required=True)
        parser.add_argument("--date", type=parse_date_argument, default=None)
        parser.add_argument("--note", default=None)

    return configure


def register_pay_sale_command() -> CommandSpec:
    """Register the parser and executor for ``pay-sale``."""
    return _make_spec("pay-sale", "Register a payment against a sale.", _configure_payment("--sale-id"), run_pay_sale)


def register_pay_loan_command() -> CommandSpec:
    """Register the parser and executor for ``pay-loan``."""
    return _make_spec("pay-loan", "Register a repayment against a loan.", _configure_payment("--loan-id"), run_pay_loan)


def register_loan_command() -> CommandSpec:
    """Register the parser and executor for ``loan``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer", required=True)
        parser.add_argument("--amount", type=parse_money_argument, required=True)
        parser.add_argument("--date", type=parse_date_argument, default=None)
        parser.add_argument("--due-date", type=parse_date_argument, default=None)
        parser.add_argument("--notes", default=None)

    return _make_spec("loan", "Record a loan to a customer.", configure, run_loan)


def register_movement_command() -> CommandSpec:
    """Register the parser and executor for ``movement``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--type", dest="movement_type", choices=[member.value for member in MovementType], required=True)
        parser.add_argument("--amount", type=parse_money_argument, required=True)
        parser.add_argument("--description", default=None)
        parser.add_argument("--date", type=parse_date_argument, default=None)
        parser.add_argument("--sale-id", default=None)
        parser.add_argument("--notes", default=None)

    return _make_spec("movement", "Record a manual cash movement.", configure, run_movement)


def register_purchase_command() -> CommandSpec:
    """Register the parser and executor for ``purchase``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--supplier", required=True)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=parse_purchase_item,
            default=[],
            help="PRODUCT_ID:QTY:UNIT_COST; repeat for several lines.",
        )
        parser.add_argument(
            "--adhoc-item",
            dest="adhoc_items",
            action="append",
            type=parse_adhoc_item,
            default=[],
            help="NAME:QTY:UNIT_COST for goods outside the catalog.",
        )
        parser.add_argument("--payment-method", choices=[member.value for member in PaymentMethod], required=True)
        parser.add_argument("--date", type=parse_date_argument, default=None)
        parser.add_argument("--notes", default=None)

    return _make_spec("purchase", "Record a stock purchase.", configure, run_purchase)


def register_add_goal_command() -> CommandSpec:
    """Register the parser and executor for ``add-goal``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--target", type=parse_money_argument, required=True, help="Target percentage.")
        parser.add_argument("--start", type=parse_date_argument, required=True)
        parser.add_argument("--end", type=parse_date_argument, required=True)
        parser.add_argument("--inactive", action="store_true", help="Do not activate the goal on creation.")
        parser.add_argument("--notes", default=None)

    return _make_spec("add-goal", "Create a reinvestment goal.", configure, run_add_goal)


def register_balances_command() -> CommandSpec:
    """Register the parser and executor for ``balances``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--channel", choices=[member.value for member in CashChannel], default=None)
        parser.add_argument("--direction", choices=[member.value for member in CashDirection], default=None)
        parser.add_argument("--list", dest="list_movements", action="store_true", help="Also list movements.")

    return _make_spec("balances", "Display cash balances per channel.", configure, run_balances_report, persist=False)


def register_report_command() -> CommandSpec:
    """Register the parser and executor for ``report``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--start", type=parse_date_argument, default=None, help="First sale date (inclusive).")
        parser.add_argument("--end", type=parse_date_argument, default=None, help="Last sale date (inclusive).")
        parser.add_argument("--limit", type=int, default=10, help="Customers to list.")

    return _make_spec(
        "report", "Display sales figures and breakdowns for a period.", configure, run_sales_report, persist=False
    )


def register_receivables_command() -> CommandSpec:
    """Register the parser and executor for ``receivables``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--today", type=parse_date_argument, default=None)

    return _make_spec(
        "receivables", "Display sales with money still due.", configure, run_receivables_report, persist=False
    )


def register_export_command() -> CommandSpec:
    """Register the parser and executor for ``export``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--output", type=Path, required=True)
        parser.add_argument("--force", action="store_true", help="Overwrite an existing export.")

    return _make_spec("export", "Export sales and products to an .xlsx file.", configure, run_export, persist=False)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_add_product(args: argparse.Namespace) -> core_logic.ProductCommand:
    """Translate CLI args into a product command object."""
    return core_logic.ProductCommand(
        name=args.name,
        category=ProductCategory(args.category),
        cost_price=args.cost_price,
        sale_price=args.sale_price,
        quantity=args.quantity,
        acquired_on=args.acquired_on,
        description=args.description,
        supplier=args.supplier,
        notes=args.notes,
    )


def translate_update_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Collect the product fields that were supplied on the command line."""
    fields = ("name", "category", "cost_price", "sale_price", "quantity", "description", "supplier", "notes")
    return {field: getattr(args, field) for field in fields if getattr(args, field) is not None}


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        items=tuple(args.items),
        customer_name=args.customer,
        customer_contact=args.contact,
        payment_method=PaymentMethod(args.payment_method),
        installment_count=args.installments,
        sale_date=args.date,
        notes=args.notes,
    )


def translate_payment(args: argparse.Namespace) -> core_logic.PaymentCommand:
    return core_logic.PaymentCommand(amount=args.amount, paid_on=args.date, note=args.note)


def translate_loan(args: argparse.Namespace) -> core_logic.LoanCommand:
    return core_logic.LoanCommand(
        customer_name=args.customer,
        requested_amount=args.amount,
        loan_date=args.date,
        due_date=args.due_date,
        notes=args.notes,
    )


def translate_movement(args: argparse.Namespace) -> core_logic.MovementCommand:
    return core_logic.MovementCommand(
        movement_type=MovementType(args.movement_type),
        amount=args.amount,
        description=args.description,
        movement_date=args.date,
        sale_id=args.sale_id,
        notes=args.notes,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseCommand:
    """Translate CLI args into a purchase command object."""
    items = tuple(args.items) + tuple(args.adhoc_items)
    if not items:
        raise ValueError("A purchase needs at least one --item or --adhoc-item")
    return core_logic.PurchaseCommand(
        supplier=args.supplier,
        items=items,
        payment_method=PaymentMethod(args.payment_method),
        purchase_date=args.date,
        notes=args.notes,
    )


def translate_goal(args: argparse.Namespace) -> core_logic.GoalCommand:
    return core_logic.GoalCommand(
        target_percentage=args.target,
        period_start=args.start,
        period_end=args.end,
        active=not args.inactive,
        notes=args.notes,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = core_logic.record_product(context, translate_add_product(args))
    print(f"Added product {product.product_id} ({product.name})")
    return 0


def run_update_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    changes = translate_update_product(args)
    if not changes:
        print("Nothing to update.")
        return 0
    product = core_logic.record_product_update(context, args.product_id, **changes)
    print(f"Updated product {product.product_id}")
    return 0


def run_remove_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.record_product_removal(context, args.product_id)
    print(f"Removed product {args.product_id}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Check stock, then record the sale through the engine."""
    command = translate_sale(args)
    core_logic.ensure_stock_available(context.state, command.items)
    sale = core_logic.record_sale(context, command)
    print(f"Recorded sale {sale.sale_id}: total {sale.total_value} ({sale.payment.status.value})")
    return 0


def run_pay_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    sale = core_logic.record_sale_payment(context, args.sale_id, translate_payment(args))
    print(f"Sale {sale.sale_id}: received {sale.payment.amount_received} of {sale.payment.total_owed} ({sale.payment.status.value})")
    return 0


def run_cancel_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.record_sale_cancellation(context, args.sale_id)
    print(f"Cancelled sale {args.sale_id}")
    return 0


def run_loan(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    loan = core_logic.record_loan(context, translate_loan(args))
    print(f"Recorded loan {loan.loan_id}: {loan.customer_name} owes {loan.total_owed} by {loan.due_date}")
    return 0


def run_pay_loan(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    loan = core_logic.record_loan_payment(context, args.loan_id, translate_payment(args))
    print(f"Loan {loan.loan_id}: received {loan.payment.amount_received} of {loan.total_owed} ({loan.status.value})")
    return 0


def run_movement(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    movement = core_logic.record_cash_movement(context, translate_movement(args))
    print(f"Recorded {movement.direction.value} {movement.movement_id} of {movement.amount} on {movement.channel.value}")
    return 0


def run_remove_movement(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.record_movement_removal(context, args.movement_id)
    print(f"Removed movement {args.movement_id}")
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    purchase = core_logic.record_purchase(context, translate_purchase(args))
    print(f"Recorded purchase {purchase.purchase_id}: total {purchase.total_value}")
    return 0


def run_remove_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.record_purchase_removal(context, args.purchase_id)
    print(f"Removed purchase {args.purchase_id}")
    return 0


def run_add_goal(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    goal = core_logic.record_goal(context, translate_goal(args))
    print(f"Added goal {goal.goal_id} ({goal.target_percentage}%, active={goal.active})")
    return 0


def run_activate_goal(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.record_goal_activation(context, args.goal_id)
    print(f"Activated goal {args.goal_id}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every product with its quantity, flagging low stock."""
    threshold = context.settings.low_stock_threshold
    low = {product.product_id for product in reports.low_stock_products(context.state, threshold=threshold)}
    for product in context.state.products:
        flag = "  LOW" if product.product_id in low else ""
        print(f"{product.product_id}  {product.name:<30} {product.quantity:>5}  {product.sale_price:>10}{flag}")
    at_cost, at_sale = reports.inventory_value(context.state)
    print(f"Stock value: {at_cost} at cost, {at_sale} at sale price")
    print(f"Invested in inventory: {reports.total_invested_in_inventory(context.state)}")
    return 0


def run_balances_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    balances = core_logic.calculate_cash_balances(context.state)
    print(f"Electronic:    {balances.electronic}")
    print(f"Physical cash: {balances.physical_cash}")
    print(f"Total:         {balances.total}")
    print(f"Inflow {balances.total_inflow} / Outflow {balances.total_outflow}")
    if args.list_movements or args.channel or args.direction:
        for movement in core_logic.filter_movements(context.state, channel=args.channel, direction=args.direction):
            print(
                f"{movement.movement_date}  {movement.movement_id}  {movement.channel.value:<13} "
                f"{movement.direction.value:<7} {movement.amount:>10}  {movement.description}"
            )
    return 0


def run_profit_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = reports.profit_summary(context.state)
    print(f"Product revenue:      {summary.product_revenue}")
    print(f"Product profit:       {summary.product_profit}")
    print(f"Interest expected:    {summary.interest_expected}")
    print(f"Loan profit realized: {summary.loan_profit_realized}")
    print(f"Total profit:         {summary.total_profit}")
    print(f"Margin:               {summary.margin}%")
    for entry in reports.top_products(context.state):
        print(f"  {entry.product_name:<30} sold {entry.quantity_sold:>4}  profit {entry.profit}")
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the period summary and its breakdowns."""
    state = context.state
    window = {"start": args.start, "end": args.end}
    summary = reports.sales_summary(state, **window)
    print(f"Period: {args.start or 'beginning'} to {args.end or 'today'}")
    print(f"Sales:          {summary.sale_count}")
    print(f"Revenue:        {summary.revenue}")
    print(f"Received:       {summary.received}")
    print(f"Pending:        {summary.pending}")
    print(f"Average ticket: {summary.average_ticket}")
    print(f"Profit:         {summary.profit} ({summary.margin}%)")
    print("By category:")
    for entry in reports.sales_by_category(state, **window):
        print(f"  {entry.category.value:<15} sold {entry.quantity_sold:>4}  {entry.revenue:>10}  profit {entry.profit}")
    print("Top customers:")
    for entry in reports.top_customers(state, limit=args.limit, **window):
        print(f"  {entry.customer_name:<30} {entry.sale_count:>3} sales  {entry.total_spent:>10}")
    print("By payment method:")
    for entry in reports.sales_by_payment_method(state, **window):
        print(f"  {entry.payment_method.value:<17} {entry.sale_count:>3} sales  {entry.revenue:>10}")
    return 0


def run_debts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    debts = reports.customer_debts(context.state)
    if not debts:
        print("No outstanding debts.")
    for debt in debts:
        print(f"{debt.customer_name:<30} sales {debt.owed_on_sales:>10}  loans {debt.owed_on_loans:>10}  total {debt.total:>10}")
    return 0


def run_goal_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print progress for ``--goal-id`` or for the active goal."""
    if args.goal_id:
        goal = next((item for item in context.state.goals if item.goal_id == args.goal_id), None)
        if goal is None:
            raise core_logic.MissingReferenceError(f"Goal '{args.goal_id}' not found")
    else:
        goal = reports.active_goal(context.state)
    if goal is None:
        print("No active reinvestment goal.")
        return 0
    progress = reports.goal_progress(context.state, goal)
    print(f"Goal {goal.goal_id}: {goal.target_percentage}% of revenue {goal.period_start} to {goal.period_end}")
    print(f"Period revenue: {progress.period_revenue}")
    print(f"Target amount:  {progress.target_amount}")
    print(f"Reinvested:     {progress.reinvested_amount} ({progress.percent_realized}%)")
    print("Achieved" if progress.achieved else f"Shortfall: {progress.shortfall}")
    return 0


def run_receivables_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    today = args.today or date.today()
    for item in reports.receivables(context.state, today=today):
        due = item.next_due_date.isoformat() if item.next_due_date else "-"
        if item.days_overdue > 0:
            timing = f"overdue {item.days_overdue}d"
        elif item.days_overdue < 0:
            timing = f"due in {-item.days_overdue}d"
        else:
            timing = "due today" if item.next_due_date else "no schedule"
        print(f"{item.sale_id}  {item.customer_name:<30} {item.outstanding:>10}  due {due}  {timing}")
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    destination = export.export_workbook(context.state, args.output, overwrite=args.force)
    print(f"Exported to {destination}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_store(context: core_logic.RuntimeContext) -> None:
    """Persist ledger changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        spec = command_table[args.command]
        if spec.persist:
            core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and spec.persist:
            persist_store(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
