from typing import Annotated

from pydantic import BeforeValidator

from grantflow.core.errors import InvariantViolationError
from grantflow.core.money import MoneyAmount


def _decimal_string(value):
    if value is None:
        return value
    if isinstance(value, float):
        raise ValueError("amounts must be sent as decimal strings, not floating point numbers")
    try:
        return str(MoneyAmount.parse(value))
    except InvariantViolationError as e:
        raise ValueError(e.message)


# Monetary values travel as decimal strings; floats are rejected before they can lose precision
DecimalString = Annotated[str, BeforeValidator(_decimal_string)]
