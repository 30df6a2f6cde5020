from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

from config import get_settings

Number = Union[Decimal, int, float, str]


class Grouping(str, Enum):
    indian = "indian"
    western = "western"


@dataclass(frozen=True)
class CurrencyFormat:
    symbol: str = "₹"
    grouping: Grouping = Grouping.indian

    @classmethod
    def from_settings(cls) -> "CurrencyFormat":
        settings = get_settings()
        return cls(
            symbol=settings.currency_symbol,
            grouping=Grouping(settings.number_grouping.lower()),
        )

    def format(self, amount: Number) -> str:
        return f"{self.symbol}{group_digits(amount, self.grouping)}"


def to_decimal(value: object) -> Optional[Decimal]:
    """Parse ``value`` into a finite Decimal, or ``None`` when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def group_digits(amount: Number, grouping: Grouping = Grouping.indian) -> str:
    value = to_decimal(amount)
    if value is None:
        raise ValueError(f"Not a number: {amount!r}")
    whole = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if whole < 0 else ""
    digits = str(abs(int(whole)))

    if grouping == Grouping.western:
        return f"{sign}{int(digits):,}"

    # 12,34,567: the last three digits, then pairs
    if len(digits) <= 3:
        return sign + digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return sign + ",".join(pairs + [tail])
