"""Read-only aggregates computed across the ledgers.

Nothing in this module changes state. Every function takes a
:class:`~shop_ledger.data_manager.LedgerState` and recomputes its figures from
scratch; cancelled sales never contribute to a financial aggregate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from . import log
from .constants import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    UNKNOWN_PRODUCT_NAME,
    PaymentMethod,
    ProductCategory,
    SaleStatus,
)
from .data_manager import LedgerState, Product, ReinvestmentGoal, Sale, SaleItem
from .money import HUNDRED, ZERO, covers, has_outstanding, money_sum, outstanding, percentage, to_money


@dataclass(frozen=True)
class GoalProgress:
    goal: ReinvestmentGoal
    period_revenue: Decimal
    target_amount: Decimal
    reinvested_amount: Decimal
    percent_realized: Decimal
    achieved: bool
    shortfall: Decimal


@dataclass(frozen=True)
class CustomerDebt:
    customer_name: str
    owed_on_sales: Decimal
    owed_on_loans: Decimal
    total: Decimal


@dataclass(frozen=True)
class ProfitSummary:
    """Profit figures for the whole ledger.

    ``product_profit`` prices every sold unit at the product's current cost.
    Loan interest is recognised in proportion to how much of all loans has
    been collected.
    """

    product_revenue: Decimal
    product_cost: Decimal
    product_profit: Decimal
    interest_expected: Decimal
    loan_profit_realized: Decimal
    total_profit: Decimal
    total_revenue: Decimal
    margin: Decimal


@dataclass(frozen=True)
class SalesSummary:
    sale_count: int
    revenue: Decimal
    received: Decimal
    pending: Decimal
    average_ticket: Decimal
    profit: Decimal
    margin: Decimal


@dataclass(frozen=True)
class CategorySales:
    category: ProductCategory
    quantity_sold: int
    revenue: Decimal
    profit: Decimal


@dataclass(frozen=True)
class CustomerRanking:
    customer_name: str
    contact: str
    sale_count: int
    total_spent: Decimal


@dataclass(frozen=True)
class PaymentMethodSales:
    payment_method: PaymentMethod
    sale_count: int
    revenue: Decimal


@dataclass(frozen=True)
class ProductPerformance:
    product_id: str
    product_name: str
    quantity_sold: int
    revenue: Decimal
    profit: Decimal


@dataclass(frozen=True)
class Receivable:
    """Open balance on a sale.

    ``days_overdue`` is signed: positive once the next installment is late,
    negative while it is still ahead, and zero when it falls due today or the
    sale has no installment schedule.
    """

    sale_id: str
    customer_name: str
    outstanding: Decimal
    next_due_date: Optional[date]
    days_overdue: int


def active_sales(state: LedgerState) -> Iterator[Sale]:
    """Yield every sale that is not cancelled."""

    return (sale for sale in state.sales if sale.status is not SaleStatus.CANCELLED)


def _in_window(value: date, start: Optional[date], end: Optional[date]) -> bool:
    return (start is None or value >= start) and (end is None or value <= end)


def _window_sales(state: LedgerState, start: Optional[date], end: Optional[date]) -> List[Sale]:
    return [sale for sale in active_sales(state) if _in_window(sale.sale_date, start, end)]


def _catalog(state: LedgerState) -> Dict[str, Product]:
    return {product.product_id: product for product in state.products}


def _line_cost(catalog: Dict[str, Product], item: SaleItem) -> Decimal:
    # A line whose product was deleted has no known cost.
    product = catalog.get(item.product_id)
    return product.cost_price * item.quantity if product is not None else ZERO


def product_name(state: LedgerState, product_id: str) -> str:
    """Return the current name of ``product_id`` or a placeholder for deleted products."""

    for product in state.products:
        if product.product_id == product_id:
            return product.name
    return UNKNOWN_PRODUCT_NAME


def total_invested_in_inventory(state: LedgerState) -> Decimal:
    """Sum of every recorded purchase."""

    return money_sum(purchase.total_value for purchase in state.purchases)


# ---------------------------------------------------------------------------
# Reinvestment goals
# ---------------------------------------------------------------------------


def goal_progress(state: LedgerState, goal: ReinvestmentGoal) -> GoalProgress:
    """Measure how much of the goal's period revenue went back into stock.

    Revenue comes from non-cancelled sales dated inside the goal period and
    reinvestment from purchases dated inside the same period; both bounds
    are inclusive. ``percent_realized`` is capped at 100 and is zero when the
    target amount is zero.
    """

    period_revenue = money_sum(
        sale.total_value
        for sale in active_sales(state)
        if _in_window(sale.sale_date, goal.period_start, goal.period_end)
    )
    target_amount = to_money(period_revenue * goal.target_percentage / HUNDRED)
    reinvested = money_sum(
        purchase.total_value
        for purchase in state.purchases
        if _in_window(purchase.purchase_date, goal.period_start, goal.period_end)
    )
    percent = min(HUNDRED, percentage(reinvested, target_amount)) if target_amount > ZERO else ZERO

    progress = GoalProgress(
        goal=goal,
        period_revenue=period_revenue,
        target_amount=target_amount,
        reinvested_amount=reinvested,
        percent_realized=to_money(percent),
        achieved=covers(reinvested, target_amount),
        shortfall=outstanding(reinvested, target_amount),
    )
    log.debug(
        "Goal '%s' progress: %s of %s (%s%%)",
        goal.goal_id,
        reinvested,
        target_amount,
        progress.percent_realized,
    )
    return progress


def active_goal(state: LedgerState) -> Optional[ReinvestmentGoal]:
    return next((goal for goal in state.goals if goal.active), None)


def active_goal_progress(state: LedgerState) -> Optional[GoalProgress]:
    """Progress of the active goal, or ``None`` when no goal is active."""

    goal = active_goal(state)
    return goal_progress(state, goal) if goal is not None else None


# ---------------------------------------------------------------------------
# Debts and receivables
# ---------------------------------------------------------------------------


def customer_debts(state: LedgerState) -> List[CustomerDebt]:
    """Group what each customer still owes on sales and loans.

    Only balances above the one-cent tolerance count. The result is sorted by
    combined total, largest first.
    """

    sales: Dict[str, Decimal] = {}
    loans: Dict[str, Decimal] = {}
    for sale in active_sales(state):
        payment = sale.payment
        if has_outstanding(payment.amount_received, payment.total_owed):
            sales[sale.customer_name] = sales.get(sale.customer_name, ZERO) + outstanding(
                payment.amount_received, payment.total_owed
            )
    for loan in state.loans:
        payment = loan.payment
        if has_outstanding(payment.amount_received, payment.total_owed):
            loans[loan.customer_name] = loans.get(loan.customer_name, ZERO) + outstanding(
                payment.amount_received, payment.total_owed
            )

    debts = []
    for name in set(sales) | set(loans):
        owed_sales = to_money(sales.get(name, ZERO))
        owed_loans = to_money(loans.get(name, ZERO))
        debts.append(
            CustomerDebt(
                customer_name=name,
                owed_on_sales=owed_sales,
                owed_on_loans=owed_loans,
                total=to_money(owed_sales + owed_loans),
            )
        )
    debts.sort(key=lambda debt: (-debt.total, debt.customer_name))
    return debts


def receivables(state: LedgerState, *, today: date) -> List[Receivable]:
    """List sales with money still due, most overdue first.

    ``next_due_date`` is the first unpaid installment; sales without
    installments report ``None`` and are never counted as overdue. Balances
    that are not yet due carry a negative ``days_overdue`` and sort after the
    late ones, soonest first.
    """

    results = []
    for sale in active_sales(state):
        payment = sale.payment
        if not has_outstanding(payment.amount_received, payment.total_owed):
            continue
        next_due = next((item.due_date for item in payment.installments if not item.paid), None)
        overdue = (today - next_due).days if next_due is not None else 0
        results.append(
            Receivable(
                sale_id=sale.sale_id,
                customer_name=sale.customer_name,
                outstanding=outstanding(payment.amount_received, payment.total_owed),
                next_due_date=next_due,
                days_overdue=overdue,
            )
        )
    results.sort(key=lambda item: (-item.days_overdue, -item.outstanding))
    return results


# ---------------------------------------------------------------------------
# Profit and sales
# ---------------------------------------------------------------------------


def _product_figures(sales: Iterable[Sale], catalog: Dict[str, Product]) -> Tuple[Decimal, Decimal]:
    revenue = ZERO
    cost = ZERO
    for sale in sales:
        for item in sale.items:
            revenue += item.subtotal
            cost += _line_cost(catalog, item)
    return to_money(revenue), to_money(cost)


def profit_summary(state: LedgerState) -> ProfitSummary:
    """Compute product profit, realised loan interest, and the overall margin.

    ``total_revenue`` adds the full expected interest to product revenue,
    and ``margin`` is ``total_profit / total_revenue * 100`` (zero when there
    is no revenue).
    """

    product_revenue, product_cost = _product_figures(active_sales(state), _catalog(state))
    product_profit = to_money(product_revenue - product_cost)

    interest_expected = money_sum(loan.total_owed - loan.requested_amount for loan in state.loans)
    loan_owed = money_sum(loan.payment.total_owed for loan in state.loans)
    loan_received = money_sum(loan.payment.amount_received for loan in state.loans)
    if loan_owed > ZERO:
        loan_profit_realized = to_money(interest_expected * loan_received / loan_owed)
    else:
        loan_profit_realized = ZERO

    total_profit = to_money(product_profit + loan_profit_realized)
    total_revenue = to_money(product_revenue + interest_expected)
    summary = ProfitSummary(
        product_revenue=product_revenue,
        product_cost=product_cost,
        product_profit=product_profit,
        interest_expected=interest_expected,
        loan_profit_realized=loan_profit_realized,
        total_profit=total_profit,
        total_revenue=total_revenue,
        margin=percentage(total_profit, total_revenue),
    )
    log.debug("Profit summary: %s", summary)
    return summary


def sales_summary(
    state: LedgerState, *, start: Optional[date] = None, end: Optional[date] = None
) -> SalesSummary:
    """Totals for non-cancelled sales dated within the optional window.

    ``profit`` prices each line at the product's current cost and ``margin``
    is that profit as a percentage of the window's revenue.
    """

    sales = _window_sales(state, start, end)
    revenue = money_sum(sale.total_value for sale in sales)
    received = money_sum(sale.payment.amount_received for sale in sales)
    average = to_money(revenue / len(sales)) if sales else ZERO
    _, cost = _product_figures(sales, _catalog(state))
    profit = to_money(revenue - cost)
    return SalesSummary(
        sale_count=len(sales),
        revenue=revenue,
        received=received,
        pending=money_sum(outstanding(sale.payment.amount_received, sale.payment.total_owed) for sale in sales),
        average_ticket=average,
        profit=profit,
        margin=percentage(profit, revenue),
    )


def sales_by_category(
    state: LedgerState, *, start: Optional[date] = None, end: Optional[date] = None
) -> List[CategorySales]:
    """Units, revenue and profit per product category, highest revenue first.

    Lines whose product has been deleted are left out since their category
    is no longer known.
    """

    catalog = _catalog(state)
    quantities: Dict[ProductCategory, int] = {}
    revenues: Dict[ProductCategory, Decimal] = {}
    profits: Dict[ProductCategory, Decimal] = {}
    for sale in _window_sales(state, start, end):
        for item in sale.items:
            product = catalog.get(item.product_id)
            if product is None:
                continue
            category = product.category
            quantities[category] = quantities.get(category, 0) + item.quantity
            revenues[category] = revenues.get(category, ZERO) + item.subtotal
            profits[category] = profits.get(category, ZERO) + item.subtotal - _line_cost(catalog, item)

    breakdown = [
        CategorySales(
            category=category,
            quantity_sold=quantity,
            revenue=to_money(revenues[category]),
            profit=to_money(profits[category]),
        )
        for category, quantity in quantities.items()
    ]
    breakdown.sort(key=lambda entry: (-entry.revenue, entry.category.value))
    return breakdown


def top_customers(
    state: LedgerState, *, start: Optional[date] = None, end: Optional[date] = None, limit: int = 10
) -> List[CustomerRanking]:
    """Customers ranked by how much they bought inside the window."""

    counts: Dict[str, int] = {}
    totals: Dict[str, Decimal] = {}
    contacts: Dict[str, str] = {}
    for sale in _window_sales(state, start, end):
        name = sale.customer_name
        counts[name] = counts.get(name, 0) + 1
        totals[name] = totals.get(name, ZERO) + sale.total_value
        if sale.customer_contact and name not in contacts:
            contacts[name] = sale.customer_contact

    ranking = [
        CustomerRanking(
            customer_name=name,
            contact=contacts.get(name, ""),
            sale_count=count,
            total_spent=to_money(totals[name]),
        )
        for name, count in counts.items()
    ]
    ranking.sort(key=lambda entry: (-entry.total_spent, entry.customer_name))
    return ranking[:limit]


def sales_by_payment_method(
    state: LedgerState, *, start: Optional[date] = None, end: Optional[date] = None
) -> List[PaymentMethodSales]:
    counts: Dict[PaymentMethod, int] = {}
    revenues: Dict[PaymentMethod, Decimal] = {}
    for sale in _window_sales(state, start, end):
        method = sale.payment_method
        counts[method] = counts.get(method, 0) + 1
        revenues[method] = revenues.get(method, ZERO) + sale.total_value

    breakdown = [
        PaymentMethodSales(payment_method=method, sale_count=count, revenue=to_money(revenues[method]))
        for method, count in counts.items()
    ]
    breakdown.sort(key=lambda entry: (-entry.revenue, entry.payment_method.value))
    return breakdown


def top_products(state: LedgerState, *, limit: int = 5) -> List[ProductPerformance]:
    """Best selling products ranked by profit at the current cost price."""

    catalog = _catalog(state)
    quantities: Dict[str, int] = {}
    revenues: Dict[str, Decimal] = {}
    profits: Dict[str, Decimal] = {}
    for sale in active_sales(state):
        for item in sale.items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
            revenues[item.product_id] = revenues.get(item.product_id, ZERO) + item.subtotal
            margin = item.subtotal - _line_cost(catalog, item)
            profits[item.product_id] = profits.get(item.product_id, ZERO) + margin

    ranking = [
        ProductPerformance(
            product_id=product_id,
            product_name=product_name(state, product_id),
            quantity_sold=quantity,
            revenue=to_money(revenues[product_id]),
            profit=to_money(profits.get(product_id, ZERO)),
        )
        for product_id, quantity in quantities.items()
    ]
    ranking.sort(key=lambda entry: (-entry.profit, -entry.quantity_sold))
    return ranking[:limit]


def low_stock_products(state: LedgerState, *, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> List[Product]:
    """Products whose quantity is at or below ``threshold``, emptiest first."""

    return sorted(
        (product for product in state.products if product.quantity <= threshold),
        key=lambda product: (product.quantity, product.name),
    )


def inventory_value(state: LedgerState) -> Tuple[Decimal, Decimal]:
    """Return the stock on hand valued at cost and at sale price."""

    at_cost = money_sum(product.cost_price * product.quantity for product in state.products)
    at_sale = money_sum(product.sale_price * product.quantity for product in state.products)
    return at_cost, at_sale
