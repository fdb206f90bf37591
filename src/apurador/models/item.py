from __future__ import annotations

from dataclasses import dataclass

from apurador.utils.periods import period_from_date


def _code(value) -> str:
    return str(value or "").replace(".", "").strip()


@dataclass(frozen=True)
class CanonicalLineItem:
    """One fiscal line item as produced by the upstream SPED/NFe parser."""

    document: str
    date: str  # YYYY-MM-DD or DDMMYYYY
    company_tax_id: str
    product: str  # description, matched against PROTEGE 2% keywords
    ncm: str
    cfop: str
    cst: str
    value: float
    icms_base: float
    icms_amount: float
    product_code: str = ""
    ipi_base: float = 0.0
    ipi_amount: float = 0.0

    @classmethod
    def from_dict(cls, d: dict) -> CanonicalLineItem:
        """Create a line item from a JSON/YAML-loaded dict, applying defaults for optional fields."""
        return cls(
            document=str(d.get("document", "")),
            date=str(d.get("date", "")),
            company_tax_id=str(d.get("company_tax_id", "")),
            product=str(d.get("product", "")),
            ncm=_code(d.get("ncm")),
            cfop=_code(d.get("cfop")),
            cst=str(d.get("cst", "")),
            value=float(d.get("value", 0) or 0),
            icms_base=float(d.get("icms_base", 0) or 0),
            icms_amount=float(d.get("icms_amount", 0) or 0),
            product_code=str(d.get("product_code", "")),
            ipi_base=float(d.get("ipi_base", 0) or 0),
            ipi_amount=float(d.get("ipi_amount", 0) or 0),
        )

    @property
    def period(self) -> str | None:
        return period_from_date(self.date)


@dataclass(frozen=True)
class ParsedLedger:
    """Output contract of a LineItemProducer."""

    items: tuple[CanonicalLineItem, ...] = ()
