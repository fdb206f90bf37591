from __future__ import annotations

import re

_PERIOD_RE = re.compile(r"\d{6}")


def parse_period(period: str) -> tuple[int, int]:
    """Split a YYYYMM period into (year, month).

    Raises ValueError for anything that is not six digits with month 01-12.
    """
    if not isinstance(period, str) or not _PERIOD_RE.fullmatch(period):
        raise ValueError(f"Periodo invalido: '{period}'. Use YYYYMM.")
    year, month = int(period[:4]), int(period[4:])
    if not 1 <= month <= 12:
        raise ValueError(f"Mes invalido no periodo: '{period}'")
    return year, month


def make_period(year: int, month: int) -> str:
    """Format year and month as YYYYMM."""
    if not 1 <= month <= 12:
        raise ValueError(f"Mes invalido: {month}")
    return f"{year:04d}{month:02d}"


def next_period(period: str) -> str:
    """Period in which a payment made in *period* becomes credit (Dec -> Jan of next year)."""
    year, month = parse_period(period)
    if month == 12:
        return make_period(year + 1, 1)
    return make_period(year, month + 1)


def previous_period(period: str) -> str:
    """Period whose payment is credited in *period* (Jan -> Dec of previous year)."""
    year, month = parse_period(period)
    if month == 1:
        return make_period(year - 1, 12)
    return make_period(year, month - 1)


def period_from_date(value: str) -> str | None:
    """Derive YYYYMM from an ISO date (YYYY-MM-DD...) or a SPED date (DDMMYYYY).

    Returns None when the value is in neither format.
    """
    value = (value or "").strip()
    m = re.match(r"(\d{4})-(\d{2})-\d{2}", value)
    if m:
        year, month = int(m.group(1)), int(m.group(2))
    elif re.fullmatch(r"\d{8}", value):
        year, month = int(value[4:]), int(value[2:4])
    else:
        return None
    if not 1 <= month <= 12:
        return None
    return make_period(year, month)
