"""Unit tests for payment status derivation and installment allocation."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from shop_ledger import constants, payments
from shop_ledger.data_manager import PaymentEntry

START = date(2024, 3, 1)


def _entry(amount: str, paid_on: date = date(2024, 3, 10), entry_id: str = "ENT-1") -> PaymentEntry:
    return PaymentEntry(entry_id=entry_id, amount=Decimal(amount), paid_on=paid_on)


@pytest.mark.parametrize(
    ("received", "owed", "expected"),
    [
        ("0.00", "100.00", constants.PaymentStatus.PENDING),
        ("0.01", "100.00", constants.PaymentStatus.PARTIAL),
        ("99.98", "100.00", constants.PaymentStatus.PARTIAL),
        ("99.99", "100.00", constants.PaymentStatus.PAID),
        ("100.00", "100.00", constants.PaymentStatus.PAID),
        ("0.00", "0.00", constants.PaymentStatus.PAID),
    ],
)
def test_derive_payment_status(received, owed, expected):
    assert payments.derive_payment_status(Decimal(received), Decimal(owed)) is expected


def test_build_installments_spaces_due_dates_thirty_days_apart():
    installments = payments.build_installments(Decimal("300.00"), 3, START)

    assert [item.number for item in installments] == [1, 2, 3]
    assert [item.amount for item in installments] == [Decimal("100.00")] * 3
    assert [item.due_date for item in installments] == [
        date(2024, 3, 31),
        date(2024, 4, 30),
        date(2024, 5, 30),
    ]
    assert not any(item.paid for item in installments)


def test_build_installments_sum_matches_total_exactly():
    installments = payments.build_installments(Decimal("100.00"), 3, START)

    assert sum(item.amount for item in installments) == Decimal("100.00")
    assert installments[-1].amount == Decimal("33.34")


def test_single_installment_count_produces_no_schedule():
    assert payments.build_installments(Decimal("300.00"), 1, START) == ()


def test_apply_payment_allocates_installments_greedily():
    """250 against three installments of 100 pays #1 and #2 and leaves #3 open."""

    payment = payments.open_payment(
        payment_id="PAY-1",
        owner_id="SAL-1",
        method=constants.PaymentMethod.CARD,
        total=Decimal("300.00"),
        installments=payments.build_installments(Decimal("300.00"), 3, START),
    )

    updated = payments.apply_payment(payment, _entry("250.00"))

    assert [item.paid for item in updated.installments] == [True, True, False]
    assert updated.amount_received == Decimal("250.00")
    assert updated.status is constants.PaymentStatus.PARTIAL
    assert len(updated.entries) == 1


def test_apply_payment_keeps_original_paid_dates():
    payment = payments.open_payment(
        payment_id="PAY-1",
        owner_id="SAL-1",
        method=constants.PaymentMethod.INSTALLMENT,
        total=Decimal("200.00"),
        installments=payments.build_installments(Decimal("200.00"), 2, START),
    )

    first = payments.apply_payment(payment, _entry("100.00", date(2024, 3, 5), "ENT-1"))
    second = payments.apply_payment(first, _entry("100.00", date(2024, 4, 5), "ENT-2"))

    assert second.installments[0].paid_on == date(2024, 3, 5)
    assert second.installments[1].paid_on == date(2024, 4, 5)
    assert second.status is constants.PaymentStatus.PAID


def test_apply_payment_clamps_received_to_total():
    payment = payments.open_payment(
        payment_id="PAY-1",
        owner_id="LOA-1",
        method=None,
        total=Decimal("1200.00"),
    )

    updated = payments.apply_payment(payment, _entry("1250.00"))

    assert updated.amount_received == Decimal("1200.00")
    assert updated.status is constants.PaymentStatus.PAID
    assert updated.entries[0].amount == Decimal("1250.00")


def test_settled_payment_has_single_synthetic_entry():
    payment = payments.settled_payment(
        payment_id="PAY-1",
        owner_id="SAL-1",
        method=constants.PaymentMethod.CASH,
        total=Decimal("150.00"),
        entry_id="ENT-1",
        paid_on=START,
    )

    assert payment.status is constants.PaymentStatus.PAID
    assert payment.amount_received == Decimal("150.00")
    assert len(payment.entries) == 1
    assert payment.entries[0].note == constants.PAID_AT_CREATION_NOTE


def test_normalize_payment_recomputes_received_from_entries():
    payment = payments.open_payment(
        payment_id="PAY-1",
        owner_id="SAL-1",
        method=constants.PaymentMethod.CARD,
        total=Decimal("100.00"),
    )
    drifted = payments.apply_payment(payment, _entry("30.00"))

    tampered = replace(drifted, amount_received=Decimal("90.00"), status=constants.PaymentStatus.PAID)

    normalized = payments.normalize_payment(tampered)

    assert normalized.amount_received == Decimal("30.00")
    assert normalized.status is constants.PaymentStatus.PARTIAL
