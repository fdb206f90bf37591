"""Rule types for ICMS apportionment and the PROTEGE surtax.

Rules carry an explicit ``priority``; lower values are evaluated first. The
engines take the first rule (in priority order) whose defined filters all
equal the item's codes. An unset filter matches anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from apurador.models.item import CanonicalLineItem
from apurador.utils.periods import parse_period
from apurador.utils.validators import validate_cfop, validate_cst, validate_ncm, validate_rate


class BenefitType(str, Enum):
    BASE_REDUZIDA = "BASE_REDUZIDA"
    CREDITO_OUTORGADO = "CREDITO_OUTORGADO"
    DIFAL = "DIFAL"
    CIAP = "CIAP"
    OUTROS = "OUTROS"


class ProtegeTrack(str, Enum):
    PROTEGE_15 = "PROTEGE_15"
    PROTEGE_2 = "PROTEGE_2"


def _optional_code(d: dict, key: str, validator) -> str | None:
    value = d.get(key)
    if value is None or value == "":
        return None
    return validator(str(value))


def _optional_rate(d: dict, key: str) -> float | None:
    value = d.get(key)
    if value is None or value == "":
        return None
    return validate_rate(value)


def matches(rule: TaxRule | ProtegeRule, item: CanonicalLineItem) -> bool:
    """True when every filter the rule defines equals the item's code."""
    return (
        (not rule.ncm or rule.ncm == item.ncm)
        and (not rule.cfop or rule.cfop == item.cfop)
        and (not rule.cst or rule.cst == item.cst)
    )


def sort_by_priority(rules):
    """Stable sort: equal priorities keep declaration order."""
    return tuple(sorted(rules, key=lambda r: r.priority))


@dataclass(frozen=True)
class TaxRule:
    """ICMS rule."""

    rate: float
    ncm: str | None = None
    cfop: str | None = None
    cst: str | None = None
    base_reduction: float | None = None  # % of the base kept, in (0, 100)
    benefit: str = ""
    protege: bool = False
    difal: bool = False
    ciap: bool = False
    priority: int = 0
    description: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> TaxRule:
        return cls(
            rate=validate_rate(d.get("rate", 0)),
            ncm=_optional_code(d, "ncm", validate_ncm),
            cfop=_optional_code(d, "cfop", validate_cfop),
            cst=_optional_code(d, "cst", validate_cst),
            base_reduction=_optional_rate(d, "base_reduction"),
            benefit=str(d.get("benefit") or ""),
            protege=bool(d.get("protege", False)),
            difal=bool(d.get("difal", False)),
            ciap=bool(d.get("ciap", False)),
            priority=int(d.get("priority", 0)),
            description=str(d.get("description") or ""),
        )


@dataclass(frozen=True)
class Benefit:
    """Benefit stackable on the PROTEGE 15% track."""

    code: str
    description: str
    type: BenefitType
    rate: float | None = None
    base_reduction: float | None = None
    active: bool = True
    conditions: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, d: dict) -> Benefit:
        return cls(
            code=str(d["code"]),
            description=str(d.get("description") or ""),
            type=BenefitType(str(d.get("type", "OUTROS")).upper()),
            rate=_optional_rate(d, "rate"),
            base_reduction=_optional_rate(d, "base_reduction"),
            active=bool(d.get("active", True)),
            conditions=tuple(str(c) for c in d.get("conditions") or ()),
        )


@dataclass(frozen=True)
class ProtegeRule:
    track: ProtegeTrack
    rate: float
    ncm: str | None = None
    cfop: str | None = None
    cst: str | None = None
    benefits: tuple[Benefit, ...] = ()  # PROTEGE_15 only
    keywords: tuple[str, ...] = ()  # PROTEGE_2 only
    eligibility_conditions: tuple[str, ...] = ()
    priority: int = 0
    description: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> ProtegeRule:
        track = ProtegeTrack(str(d["track"]).upper())
        benefits = tuple(Benefit.from_dict(b) for b in d.get("benefits") or ())
        keywords = tuple(str(k) for k in d.get("keywords") or ())
        if track is ProtegeTrack.PROTEGE_2 and benefits:
            raise ValueError("PROTEGE_2: beneficios so se aplicam ao PROTEGE_15")
        if track is ProtegeTrack.PROTEGE_15 and keywords:
            raise ValueError("PROTEGE_15: lista de produtos so se aplica ao PROTEGE_2")
        return cls(
            track=track,
            rate=validate_rate(d["rate"]),
            ncm=_optional_code(d, "ncm", validate_ncm),
            cfop=_optional_code(d, "cfop", validate_cfop),
            cst=_optional_code(d, "cst", validate_cst),
            benefits=benefits,
            keywords=keywords,
            eligibility_conditions=tuple(str(c) for c in d.get("eligibility_conditions") or ()),
            priority=int(d.get("priority", 0)),
            description=str(d.get("description") or ""),
        )


@dataclass(frozen=True)
class RuleConfiguration:
    """PROTEGE configuration for one company, as extracted from benefit schedules."""

    company_id: str
    rules: tuple[ProtegeRule, ...] = ()
    benefits: tuple[Benefit, ...] = ()
    active: bool = True
    start_date: date = field(default_factory=date.today)
    end_date: date | None = None

    @classmethod
    def from_dict(cls, company_id: str, d: dict) -> RuleConfiguration:
        start = d.get("start_date")
        end = d.get("end_date")
        return cls(
            company_id=company_id,
            rules=sort_by_priority(ProtegeRule.from_dict(r) for r in d.get("rules") or ()),
            benefits=tuple(Benefit.from_dict(b) for b in d.get("benefits") or ()),
            active=bool(d.get("active", True)),
            start_date=_as_date(start) if start else date.today(),
            end_date=_as_date(end) if end else None,
        )

    def expired_for(self, period: str) -> bool:
        """True when the configuration ended before *period* starts."""
        year, month = parse_period(period)
        return self.end_date is not None and self.end_date < date(year, month, 1)


def _as_date(value: date | str) -> date:
    # yaml.safe_load already turns unquoted ISO dates into date objects
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
