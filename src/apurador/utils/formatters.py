from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def format_brl(value: float | str) -> str:
    """Format a numeric value as R$ X.XXX,XX (negative as -R$ X,XX)."""
    d = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if d < 0 else ""
    formatted = f"{abs(d):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{sign}R$ {formatted}"


def format_period(period: str) -> str:
    """Format YYYYMM as MM/YYYY."""
    return f"{period[4:6]}/{period[:4]}"
