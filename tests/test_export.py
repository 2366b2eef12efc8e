"""Tests for the spreadsheet export."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import openpyxl
import pytest

from shop_ledger import constants, core_logic, export


@pytest.fixture
def sold_state(stocked_state):
    state, product = stocked_state
    state, sale = core_logic.create_sale(
        state,
        core_logic.SaleCommand(
            items=(core_logic.SaleLine(product_id=product.product_id, quantity=2),),
            customer_name="Ana",
            payment_method=constants.PaymentMethod.CARD,
            installment_count=2,
            timestamp=datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
        ),
    )
    return state, sale


def test_export_workbook_writes_sales_and_products(tmp_path, sold_state):
    state, sale = sold_state
    destination = tmp_path / "exports" / "ledger.xlsx"

    written = export.export_workbook(state, destination)

    workbook = openpyxl.load_workbook(written)
    assert workbook.sheetnames == ["Sales", "Products"]

    sales_sheet = workbook["Sales"]
    headers = [cell.value for cell in sales_sheet[1]]
    assert headers == list(export.EXPORT_COLUMNS["Sales"])
    assert sales_sheet["A1"].font.bold
    row = [cell.value for cell in sales_sheet[2]]
    assert row[0] == sale.sale_id
    assert row[3] == "2 x Denim jacket"
    assert Decimal(str(row[4])) == Decimal("200.00")
    assert row[6] == "pending"

    products_sheet = workbook["Products"]
    assert products_sheet.max_row == 2
    assert products_sheet["F2"].value == 8


def test_export_workbook_refuses_to_overwrite(tmp_path, empty_state):
    destination = tmp_path / "ledger.xlsx"
    export.export_workbook(empty_state, destination)

    with pytest.raises(FileExistsError):
        export.export_workbook(empty_state, destination)

    export.export_workbook(empty_state, destination, overwrite=True)
