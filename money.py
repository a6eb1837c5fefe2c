from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union


def parse_amount(value: Union[str, int, float, Decimal]) -> int:
    """Convert a decimal amount ("12.50", "12,50", Decimal) into positive cents.

    Floats are routed through their ``str`` form so no binary rounding leaks
    into the stored value.
    """
    if isinstance(value, bool):
        raise ValueError("Invalid amount")
    if isinstance(value, Decimal):
        amount = value
    else:
        clean = str(value).strip().replace("€", "").replace("$", "").replace(" ", "")
        clean = clean.replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Amount must be a finite number")
    scaled = amount * 100
    if scaled != scaled.to_integral_value():
        raise ValueError("Amount cannot have more than two decimal places")
    cents = int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise ValueError("Amount must be positive")
    return cents
