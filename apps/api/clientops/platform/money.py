from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field


class Money(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str = Field(min_length=3, max_length=3)


def quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def sum_by_currency(amounts: Iterable[Money]) -> list[Money]:
    """Total amounts per currency; different currencies are never added together."""
    totals: dict[str, Decimal] = {}
    for money in amounts:
        code = money.currency.upper()
        totals[code] = totals.get(code, Decimal("0")) + money.amount
    return [Money(amount=quantize(total), currency=code) for code, total in sorted(totals.items())]


def ratio(numerator: int, denominator: int) -> Decimal:
    if denominator <= 0:
        return Decimal("0")
    return (Decimal(numerator) / Decimal(denominator)).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
