from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from apurador.models.item import CanonicalLineItem
from apurador.models.rules import Benefit, ProtegeRule, ProtegeTrack, RuleConfiguration, TaxRule

STATUS_OK = "calculado"
STATUS_ERROR = "erro"


# --- ICMS ---


@dataclass(frozen=True)
class ApportionmentDetail:
    item: CanonicalLineItem
    rule: TaxRule | None
    base: float
    rate: float
    tax_due: float
    label: str
    benefit: str | None = None


@dataclass(frozen=True)
class ApportionmentResult:
    total: float
    details: tuple[ApportionmentDetail, ...] = ()
    status: str = STATUS_OK
    confidence: float = 1.0
    error: str | None = None


# --- PROTEGE ---


@dataclass(frozen=True)
class AppliedBenefit:
    benefit: Benefit
    value: float
    label: str
    conditions_met: bool


@dataclass(frozen=True)
class ProtegeItemCalculation:
    base: float
    track: ProtegeTrack
    rate: float
    value: float
    net: float
    applied_benefits: tuple[AppliedBenefit, ...] = ()
    total_benefits: float = 0.0
    # 2% track only
    icms_original: float | None = None
    icms_with_protege: float | None = None
    payment_period: str | None = None
    credit_period: str | None = None


@dataclass(frozen=True)
class ProtegeDetail:
    item: CanonicalLineItem
    calculation: ProtegeItemCalculation
    rule: ProtegeRule | None = None


@dataclass(frozen=True)
class ProtegeResult:
    """Aggregate PROTEGE figures for one company and period.

    ``valor_final == total_protege15 + saldo_protege2 - total_benefits``.
    """

    company_id: str
    period: str
    total_base: float = 0.0
    total_protege15: float = 0.0
    total_benefits: float = 0.0
    protege2_payment: float = 0.0
    protege2_credit: float = 0.0
    saldo_protege2: float = 0.0
    valor_final: float = 0.0
    details: tuple[ProtegeDetail, ...] = ()


@dataclass(frozen=True)
class ProtegeRun:
    """Outcome of computing PROTEGE for a period, including failures."""

    id: str
    company_id: str
    period: str
    result: ProtegeResult
    configuration: RuleConfiguration | None = None
    calculated_at: datetime = field(default_factory=datetime.now)
    status: str = STATUS_OK
    confidence: float = 1.0
    error: str | None = None
