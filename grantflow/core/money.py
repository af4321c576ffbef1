"""Arbitrary-precision money arithmetic.

All monetary fields travel as decimal strings. They are parsed into
``MoneyAmount`` for every sum and comparison; binary floats are rejected.
"""
from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Iterable

from grantflow.core.config import settings
from grantflow.core.errors import InvariantViolationError

MONEY_CONTEXT = Context(prec=settings.MONEY_PRECISION, rounding=ROUND_HALF_EVEN)

_HUNDRED = Decimal(100)


class MoneyAmount:
    __slots__ = ("_value",)

    def __init__(self, value: Decimal):
        self._value = value

    @classmethod
    def parse(cls, value: "MoneyAmount | Decimal | str | int | None", *, field: str = "amount") -> "MoneyAmount":
        if isinstance(value, MoneyAmount):
            return value
        if isinstance(value, bool) or isinstance(value, float):
            raise InvariantViolationError(f"{field} must be a decimal string, not {type(value).__name__}")
        if value is None:
            raise InvariantViolationError(f"{field} is required")
        try:
            if isinstance(value, Decimal):
                parsed = value
            elif isinstance(value, int):
                parsed = Decimal(value)
            else:
                parsed = MONEY_CONTEXT.create_decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvariantViolationError(f"{field} is not a valid decimal: {value!r}")
        if not parsed.is_finite():
            raise InvariantViolationError(f"{field} must be a finite decimal: {value!r}")
        return cls(parsed)

    @classmethod
    def zero(cls) -> "MoneyAmount":
        return cls(Decimal(0))

    @classmethod
    def sum(cls, values: Iterable["MoneyAmount | Decimal | str | int"]) -> "MoneyAmount":
        total = Decimal(0)
        for value in values:
            total = MONEY_CONTEXT.add(total, cls.parse(value).value)
        return cls(total)

    @property
    def value(self) -> Decimal:
        return self._value

    def percent(self, percentage: "MoneyAmount | Decimal | str | int") -> "MoneyAmount":
        """``self * percentage / 100``"""
        pct = MoneyAmount.parse(percentage, field="percentage").value
        return MoneyAmount(MONEY_CONTEXT.divide(MONEY_CONTEXT.multiply(self._value, pct), _HUNDRED))

    def is_zero(self) -> bool:
        return self._value == 0

    def is_negative(self) -> bool:
        return self._value < 0

    def is_positive(self) -> bool:
        return self._value > 0

    def __add__(self, other) -> "MoneyAmount":
        return MoneyAmount(MONEY_CONTEXT.add(self._value, MoneyAmount.parse(other).value))

    def __sub__(self, other) -> "MoneyAmount":
        return MoneyAmount(MONEY_CONTEXT.subtract(self._value, MoneyAmount.parse(other).value))

    def __mul__(self, other) -> "MoneyAmount":
        return MoneyAmount(MONEY_CONTEXT.multiply(self._value, MoneyAmount.parse(other).value))

    def __truediv__(self, other) -> "MoneyAmount":
        divisor = MoneyAmount.parse(other).value
        if divisor == 0:
            raise ZeroDivisionError("division of a money amount by zero")
        return MoneyAmount(MONEY_CONTEXT.divide(self._value, divisor))

    def __neg__(self) -> "MoneyAmount":
        return MoneyAmount(-self._value)

    def _coerce(self, other) -> Decimal | None:
        if isinstance(other, MoneyAmount):
            return other.value
        if isinstance(other, (Decimal, int, str)) and not isinstance(other, bool):
            return MoneyAmount.parse(other).value
        return None

    def __eq__(self, other) -> bool:
        other_value = self._coerce(other)
        if other_value is None:
            return NotImplemented
        return self._value == other_value

    def __lt__(self, other) -> bool:
        other_value = self._coerce(other)
        if other_value is None:
            return NotImplemented
        return self._value < other_value

    def __le__(self, other) -> bool:
        other_value = self._coerce(other)
        if other_value is None:
            return NotImplemented
        return self._value <= other_value

    def __gt__(self, other) -> bool:
        other_value = self._coerce(other)
        if other_value is None:
            return NotImplemented
        return self._value > other_value

    def __ge__(self, other) -> bool:
        other_value = self._coerce(other)
        if other_value is None:
            return NotImplemented
        return self._value >= other_value

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        if self._value == 0:
            return "0"
        return format(self._value.normalize(MONEY_CONTEXT), "f")

    def __repr__(self) -> str:
        return f"MoneyAmount('{self}')"
