"""Spreadsheet export of the sales and product collections.

The export is read-only with respect to the ledger: it renders the current
state into an ``.xlsx`` workbook and never feeds anything back.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, List, Mapping, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.worksheet.worksheet import Worksheet

from . import log
from .data_manager import LedgerState, Product, Sale

EXPORT_COLUMNS: Mapping[str, Sequence[str]] = {
    "Sales": [
        "SaleID",
        "SaleDate",
        "Customer",
        "Items",
        "TotalValue",
        "AmountReceived",
        "PaymentStatus",
        "PaymentMethod",
        "Installments",
        "Status",
    ],
    "Products": [
        "ProductID",
        "Name",
        "Category",
        "CostPrice",
        "SalePrice",
        "Quantity",
        "Supplier",
        "AcquiredOn",
    ],
}


def sale_row(sale: Sale) -> List[Any]:
    items = "; ".join(f"{item.quantity} x {item.product_name}" for item in sale.items)
    return [
        sale.sale_id,
        sale.sale_date,
        sale.customer_name,
        items,
        sale.total_value,
        sale.payment.amount_received,
        sale.payment.status.value,
        sale.payment_method.value,
        sale.installment_count,
        sale.status.value,
    ]


def product_row(product: Product) -> List[Any]:
    return [
        product.product_id,
        product.name,
        product.category.value,
        product.cost_price,
        product.sale_price,
        product.quantity,
        product.supplier or "",
        product.acquired_on,
    ]


def _write_sheet(worksheet: Worksheet, columns: Sequence[str], rows: Iterable[List[Any]]) -> int:
    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(columns, start=1):
        cell = worksheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font

    count = 0
    for row in rows:
        worksheet.append(row)
        count += 1
    return count


def export_workbook(
    state: LedgerState,
    destination: Path,
    *,
    overwrite: bool = False,
) -> Path:
    """Write the sales and products of ``state`` to an ``.xlsx`` file.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing export: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    sales = _write_sheet(
        workbook.create_sheet(title="Sales"),
        EXPORT_COLUMNS["Sales"],
        (sale_row(sale) for sale in state.sales),
    )
    products = _write_sheet(
        workbook.create_sheet(title="Products"),
        EXPORT_COLUMNS["Products"],
        (product_row(product) for product in state.products),
    )

    workbook.save(destination)
    log.info("Exported %d sale(s) and %d product(s) to '%s'", sales, products, destination)
    return destination
