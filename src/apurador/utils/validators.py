from __future__ import annotations

import re


def validate_ncm(value: str) -> str:
    """Validate NCM: exactly 8 numeric digits (dots are stripped)."""
    digits = str(value).replace(".", "").strip()
    if not re.fullmatch(r"\d{8}", digits):
        raise ValueError(f"NCM: deve ter 8 digitos numericos: '{value}'")
    return digits


def validate_cfop(value: str) -> str:
    """Validate CFOP: exactly 4 numeric digits, first digit 1-3 or 5-7."""
    digits = str(value).replace(".", "").strip()
    if not re.fullmatch(r"[1-35-7]\d{3}", digits):
        raise ValueError(f"CFOP: codigo invalido: '{value}'")
    return digits


def validate_cst(value: str) -> str:
    """Validate CST ICMS: 2 digits (tabela B) or 3 digits (origem + tabela B)."""
    digits = str(value).strip()
    if not re.fullmatch(r"\d{2,3}", digits):
        raise ValueError(f"CST: deve ter 2 ou 3 digitos numericos: '{value}'")
    return digits


def validate_cnpj(value: str) -> str:
    """Validate a CNPJ: 14 digits after stripping punctuation."""
    digits = re.sub(r"[.\-/]", "", str(value)).strip()
    if not re.fullmatch(r"\d{14}", digits):
        raise ValueError(f"CNPJ: deve ter 14 digitos: '{value}'")
    return digits


def validate_rate(value: float | int | str) -> float:
    """Validate a percentage (0-100), returned as float."""
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Percentual invalido: '{value}'") from None
    if rate != rate or rate < 0 or rate > 100:
        raise ValueError(f"Percentual deve estar entre 0 e 100: '{value}'")
    return rate
