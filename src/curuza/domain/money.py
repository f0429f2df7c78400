from __future__ import annotations

from decimal import Decimal, InvalidOperation

from curuza.domain.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: object, field: str = "amount") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number.")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number. Received: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number.")
    return amount.quantize(CENT)


def to_quantity(value: object, field: str = "quantity") -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer. Received: {value!r}") from exc
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f"{field} must be an integer. Received: {value!r}")
    return int(number)
