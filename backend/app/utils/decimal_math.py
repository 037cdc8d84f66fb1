from decimal import Decimal, ROUND_HALF_UP


MONEY_QUANT = Decimal("0.01")
NO_DATA = "-"


def money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def money_str(value: Decimal | int | float | str | None, *, missing: str = "0.00") -> str:
    """Fixed two-decimal string used for every money-like wire field."""
    if value is None:
        return missing
    quantized = money(value)
    if quantized == 0:
        # avoid "-0.00"
        quantized = money(0)
    return f"{quantized:.2f}"


def round2(value: float | None) -> float | None:
    if value is None:
        return None
    return float(money(value))


def parse_amount(value: str | None) -> float:
    """Parse a wire cell back to a float; the no-data sentinel reads as 0."""
    if value is None or value == NO_DATA or value == "":
        return 0.0
    try:
        return float(value)
    except ValueError:
        return 0.0
