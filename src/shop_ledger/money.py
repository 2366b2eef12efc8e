"""Monetary arithmetic shared by every ledger.

All amounts flowing through Shop Ledger are :class:`~decimal.Decimal` values
quantised to whole cents. Every "is this paid?" style comparison in the
package goes through the helpers below so the one-cent tolerance lives in a
single place instead of being repeated next to each comparison.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Tuple, Union

MoneyLike = Union[Decimal, int, str, float]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

# One cent: totals this close to each other are considered equal.
MONEY_TOLERANCE = CENT
TOLERANCE_CENTS = 1


def to_money(value: MoneyLike) -> Decimal:
    """Coerce ``value`` into a cent-quantised :class:`Decimal`.

    Floats are routed through ``str`` first so binary noise such as
    ``0.1 + 0.2`` does not leak into the ledger.

    Raises:
        ValueError: If ``value`` cannot be interpreted as a number.
    """

    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        if not amount.is_finite():
            raise ValueError(f"Not a monetary amount: {value!r}")
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def to_cents(value: MoneyLike) -> int:
    """Return ``value`` expressed as an integer number of cents."""

    return int(to_money(value) * 100)


def money_sum(values: Iterable[MoneyLike]) -> Decimal:
    """Sum monetary values, returning a quantised total (``0.00`` when empty)."""

    total = ZERO
    for value in values:
        total += to_money(value)
    return to_money(total)


def is_settled(received: MoneyLike, owed: MoneyLike) -> bool:
    """Return ``True`` when ``received`` covers ``owed`` within one cent."""

    return to_cents(received) >= to_cents(owed) - TOLERANCE_CENTS


def covers(available: MoneyLike, due: MoneyLike) -> bool:
    """Return ``True`` when ``available`` is enough to settle ``due``."""

    return is_settled(available, due)


def outstanding(received: MoneyLike, owed: MoneyLike) -> Decimal:
    """Amount still owed, never negative."""

    return max(ZERO, to_money(owed) - to_money(received))


def has_outstanding(received: MoneyLike, owed: MoneyLike) -> bool:
    """Return ``True`` when more than the tolerance is still owed."""

    return to_cents(owed) - to_cents(received) > TOLERANCE_CENTS


def clamp(amount: MoneyLike, ceiling: MoneyLike) -> Decimal:
    """Cap ``amount`` at ``ceiling``."""

    return min(to_money(amount), to_money(ceiling))


def split_evenly(total: MoneyLike, parts: int) -> Tuple[Decimal, ...]:
    """Split ``total`` into ``parts`` cent amounts that add up exactly.

    Every share is rounded down to the cent and whatever is left over is
    added to the final share, so ``sum(split_evenly(t, n)) == t`` always.

    Raises:
        ValueError: If ``parts`` is less than one.
    """

    if parts < 1:
        raise ValueError("Cannot split an amount into fewer than one part")
    total_money = to_money(total)
    share = (total_money / parts).quantize(CENT, rounding=ROUND_DOWN)
    last = total_money - share * (parts - 1)
    return tuple([share] * (parts - 1) + [to_money(last)])


def percentage(part: MoneyLike, whole: MoneyLike) -> Decimal:
    """Return ``part`` as a percentage of ``whole`` (``0.00`` when whole is zero)."""

    whole_money = to_money(whole)
    if whole_money == ZERO:
        return ZERO
    return (to_money(part) / whole_money * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_rate(amount: MoneyLike, rate: Decimal) -> Decimal:
    """Return ``amount`` grown by ``rate`` (``0.20`` means +20%)."""

    return to_money(to_money(amount) * (Decimal("1") + rate))


__all__ = [
    "CENT",
    "ZERO",
    "HUNDRED",
    "MONEY_TOLERANCE",
    "to_money",
    "to_cents",
    "money_sum",
    "is_settled",
    "covers",
    "outstanding",
    "has_outstanding",
    "clamp",
    "split_evenly",
    "percentage",
    "apply_rate",
]
