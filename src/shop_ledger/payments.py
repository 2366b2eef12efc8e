"""Allocation rules for the payment record embedded in sales and loans.

Every function here is pure: it receives a :class:`~shop_ledger.data_manager.Payment`
(or the values needed to build one) and returns a new instance. The same
rules apply to sales and loans; only sales carry installments.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from .constants import INSTALLMENT_INTERVAL_DAYS, PAID_AT_CREATION_NOTE, PaymentMethod, PaymentStatus
from .data_manager import Installment, Payment, PaymentEntry
from .money import ZERO, clamp, covers, is_settled, money_sum, split_evenly, to_money


def derive_payment_status(received: Decimal, owed: Decimal) -> PaymentStatus:
    """Return the status implied by comparing ``received`` against ``owed``.

    ``paid`` once the received amount is within one cent of the total,
    ``partial`` when anything has been received, ``pending`` otherwise.
    """

    if is_settled(received, owed):
        return PaymentStatus.PAID
    if to_money(received) > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def build_installments(total: Decimal, count: int, start: date) -> Tuple[Installment, ...]:
    """Split ``total`` into ``count`` installments due every 30 days after ``start``.

    A count of one (or less) means the sale is not installment based and no
    schedule is produced. Rounding leftovers land on the final installment.
    """

    if count <= 1:
        return ()
    return tuple(
        Installment(
            number=number,
            amount=amount,
            due_date=start + timedelta(days=INSTALLMENT_INTERVAL_DAYS * number),
        )
        for number, amount in enumerate(split_evenly(total, count), start=1)
    )


def allocate_installments(
    installments: Iterable[Installment], received: Decimal, paid_on: date
) -> Tuple[Installment, ...]:
    """Walk the schedule in order, marking installments the received money covers.

    Allocation is greedy and stops at the first installment the remaining
    money cannot fully cover; that installment and every later one are left
    unpaid. Installments that were already paid keep their original payment
    date, newly covered ones get ``paid_on``.
    """

    remaining = to_money(received)
    allocated = []
    exhausted = False
    for installment in installments:
        if not exhausted and covers(remaining, installment.amount):
            remaining = remaining - installment.amount
            allocated.append(
                replace(installment, paid=True, paid_on=installment.paid_on or paid_on)
            )
        else:
            exhausted = True
            allocated.append(replace(installment, paid=False, paid_on=None))
    return tuple(allocated)


def open_payment(
    *,
    payment_id: str,
    owner_id: str,
    method: Optional[PaymentMethod],
    total: Decimal,
    installments: Tuple[Installment, ...] = (),
) -> Payment:
    """Build a payment with nothing received yet."""

    return Payment(
        payment_id=payment_id,
        owner_id=owner_id,
        method=method,
        total_owed=to_money(total),
        amount_received=ZERO,
        status=derive_payment_status(ZERO, total),
        installments=installments,
        entries=(),
    )


def settled_payment(
    *,
    payment_id: str,
    owner_id: str,
    method: PaymentMethod,
    total: Decimal,
    entry_id: str,
    paid_on: date,
    installments: Tuple[Installment, ...] = (),
) -> Payment:
    """Build a payment settled in full at creation with one synthetic entry."""

    entry = PaymentEntry(entry_id=entry_id, amount=to_money(total), paid_on=paid_on, note=PAID_AT_CREATION_NOTE)
    return normalize_payment(
        Payment(
            payment_id=payment_id,
            owner_id=owner_id,
            method=method,
            total_owed=to_money(total),
            amount_received=to_money(total),
            status=PaymentStatus.PAID,
            installments=allocate_installments(installments, to_money(total), paid_on),
            entries=(entry,),
        )
    )


def apply_payment(payment: Payment, entry: PaymentEntry) -> Payment:
    """Record ``entry`` against ``payment``.

    The entry is appended to the ledger of receipts, the received amount grows
    by the entry amount but never beyond the total owed, the status is derived
    again, and the installment schedule (if any) is re-allocated.
    """

    received = clamp(payment.amount_received + entry.amount, payment.total_owed)
    return replace(
        payment,
        entries=payment.entries + (entry,),
        amount_received=received,
        status=derive_payment_status(received, payment.total_owed),
        installments=allocate_installments(payment.installments, received, entry.paid_on),
    )


def normalize_payment(payment: Payment) -> Payment:
    """Re-establish the received/status invariants on an existing payment.

    The received amount is recomputed from the entries and capped at the
    total owed; the status is derived from the result. Installment flags are
    left untouched.
    """

    received = clamp(money_sum(entry.amount for entry in payment.entries), payment.total_owed)
    return replace(
        payment,
        amount_received=received,
        status=derive_payment_status(received, payment.total_owed),
    )


__all__ = [
    "derive_payment_status",
    "build_installments",
    "allocate_installments",
    "open_payment",
    "settled_payment",
    "apply_payment",
    "normalize_payment",
]
