"""PROTEGE dual-track computation.

Two independent tracks per item, chosen by the first matching rule:

* PROTEGE_15: ``base × rate/100`` minus the stacked value of every active
  benefit attached to the rule.
* PROTEGE_2: ``base × rate/100`` for items whose description carries one of
  the rule's keywords. The amount is due in the current period and becomes
  credit in the next calendar period.

The period total is reconciled as
``valor_final = total_protege15 + (protege2_payment - protege2_credit) - total_benefits``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from apurador.models.item import CanonicalLineItem
from apurador.models.results import (
    AppliedBenefit,
    ProtegeDetail,
    ProtegeItemCalculation,
    ProtegeResult,
)
from apurador.models.rules import Benefit, BenefitType, ProtegeRule, ProtegeTrack, matches
from apurador.utils.periods import next_period

logger = logging.getLogger(__name__)

DIFAL_SHARE = 0.4
CIAP_SHARE = 0.1


def find_rule(item: CanonicalLineItem, rules: Sequence[ProtegeRule]) -> ProtegeRule | None:
    return next((r for r in rules if matches(r, item)), None)


def benefit_conditions_met(
    benefit: Benefit, item: CanonicalLineItem, rule: ProtegeRule
) -> bool:
    """Eligibility of a 15%-track benefit for an item.

    The declared textual conditions are not evaluated yet: every active
    benefit applies.
    """
    # TODO: evaluate benefit.conditions once the schedule extractor emits structured conditions
    return True


def is_protege2_product(item: CanonicalLineItem, rule: ProtegeRule) -> bool:
    """True when the item description contains one of the rule's keywords (case-insensitive)."""
    if rule.track is not ProtegeTrack.PROTEGE_2 or not rule.keywords:
        return False
    description = item.product.lower()
    return any(keyword.lower() in description for keyword in rule.keywords)


def calculate_benefit(
    item: CanonicalLineItem, benefit: Benefit, rule: ProtegeRule
) -> AppliedBenefit:
    conditions_met = benefit_conditions_met(benefit, item, rule)
    value = 0.0
    label = ""
    if conditions_met:
        if benefit.type is BenefitType.BASE_REDUZIDA:
            if benefit.base_reduction and benefit.rate:
                value = item.icms_base * (benefit.base_reduction / 100) * (benefit.rate / 100)
                label = f"Base Reduzida {benefit.base_reduction:g}% - Alíquota {benefit.rate:g}%"
        elif benefit.type is BenefitType.CREDITO_OUTORGADO:
            if benefit.rate:
                value = item.icms_base * (benefit.rate / 100)
                label = f"Crédito Outorgado {benefit.rate:g}%"
        elif benefit.type is BenefitType.DIFAL:
            value = item.icms_amount * DIFAL_SHARE
            label = "DIFAL - 40% do ICMS"
        elif benefit.type is BenefitType.CIAP:
            value = item.icms_amount * CIAP_SHARE
            label = "CIAP - 10% do ICMS"
        else:
            label = "Benefício não calculado"
    return AppliedBenefit(benefit=benefit, value=value, label=label, conditions_met=conditions_met)


def _zero(item: CanonicalLineItem) -> ProtegeItemCalculation:
    return ProtegeItemCalculation(
        base=item.icms_base, track=ProtegeTrack.PROTEGE_15, rate=0.0, value=0.0, net=0.0
    )


def _calculate_protege15(item: CanonicalLineItem, rule: ProtegeRule) -> ProtegeItemCalculation:
    value = item.icms_base * (rule.rate / 100)
    applied = tuple(calculate_benefit(item, b, rule) for b in rule.benefits if b.active)
    total_benefits = sum(a.value for a in applied)
    return ProtegeItemCalculation(
        base=item.icms_base,
        track=ProtegeTrack.PROTEGE_15,
        rate=rule.rate,
        value=value,
        net=value - total_benefits,
        applied_benefits=applied,
        total_benefits=total_benefits,
    )


def _calculate_protege2(
    item: CanonicalLineItem, rule: ProtegeRule, period: str
) -> ProtegeItemCalculation:
    if not is_protege2_product(item, rule):
        return ProtegeItemCalculation(
            base=item.icms_base, track=ProtegeTrack.PROTEGE_2, rate=rule.rate, value=0.0, net=0.0
        )
    value = item.icms_base * (rule.rate / 100)
    return ProtegeItemCalculation(
        base=item.icms_base,
        track=ProtegeTrack.PROTEGE_2,
        rate=rule.rate,
        value=value,
        net=value,
        icms_original=item.icms_amount,
        icms_with_protege=item.icms_amount + value,
        payment_period=period,
        credit_period=next_period(period),
    )


def calculate_item(
    item: CanonicalLineItem, rule: ProtegeRule | None, period: str
) -> ProtegeItemCalculation:
    if rule is None:
        return _zero(item)
    if rule.track is ProtegeTrack.PROTEGE_15:
        return _calculate_protege15(item, rule)
    return _calculate_protege2(item, rule, period)


def compute(
    items: Iterable[CanonicalLineItem],
    rules: Sequence[ProtegeRule],
    company_id: str,
    period: str,
    prior_period_credit: float = 0.0,
) -> ProtegeResult:
    """Compute both PROTEGE tracks for one company and period.

    *prior_period_credit* is the 2%-track payment recorded for the previous
    calendar period; it is looked up by the caller.
    """
    next_period(period)  # reject malformed periods before doing any work

    details: list[ProtegeDetail] = []
    total_base = 0.0
    total_protege15 = 0.0
    total_benefits = 0.0
    protege2_payment = 0.0

    for item in items:
        rule = find_rule(item, rules)
        calc = calculate_item(item, rule, period)
        total_base += calc.base
        if calc.track is ProtegeTrack.PROTEGE_15:
            total_protege15 += calc.net
            total_benefits += calc.total_benefits
        else:
            protege2_payment += calc.value
        details.append(ProtegeDetail(item=item, calculation=calc, rule=rule))

    protege2_credit = prior_period_credit or 0.0
    saldo_protege2 = protege2_payment - protege2_credit
    return ProtegeResult(
        company_id=company_id,
        period=period,
        total_base=total_base,
        total_protege15=total_protege15,
        total_benefits=total_benefits,
        protege2_payment=protege2_payment,
        protege2_credit=protege2_credit,
        saldo_protege2=saldo_protege2,
        valor_final=total_protege15 + saldo_protege2 - total_benefits,
        details=tuple(details),
    )


def protege2_credit_for(
    items: Iterable[CanonicalLineItem], rules: Sequence[ProtegeRule]
) -> float:
    """Credit a set of items generates for the following period (2% track only)."""
    total = 0.0
    for item in items:
        rule = next(
            (r for r in rules if r.track is ProtegeTrack.PROTEGE_2 and matches(r, item)),
            None,
        )
        if rule is not None and is_protege2_product(item, rule):
            total += item.icms_base * (rule.rate / 100)
    return total
