from __future__ import annotations

from collections.abc import Iterable, Sequence

from apurador.models.item import CanonicalLineItem
from apurador.models.results import ApportionmentDetail, ApportionmentResult
from apurador.models.rules import TaxRule, matches

LABEL_STANDARD = "PADRÃO"
LABEL_REDUCED_BASE = "BASE REDUZIDA"
LABEL_GRANTED_CREDIT = "CRÉDITO OUTORGADO"
LABEL_NO_RULE = "SEM_REGRA"


def find_rule(item: CanonicalLineItem, rules: Sequence[TaxRule]) -> TaxRule | None:
    """First rule (in the given order) whose defined filters all match *item*."""
    return next((r for r in rules if matches(r, item)), None)


def apportion_item(item: CanonicalLineItem, rule: TaxRule | None) -> ApportionmentDetail:
    if rule is None:
        # Trust the recorded amount over a recomputation
        rate = (item.icms_amount / item.icms_base) * 100 if item.icms_base > 0 else 0.0
        return ApportionmentDetail(
            item=item,
            rule=None,
            base=item.icms_base,
            rate=rate,
            tax_due=item.icms_amount,
            label=LABEL_NO_RULE,
        )

    base = item.icms_base
    label = LABEL_STANDARD
    if rule.base_reduction is not None and 0 < rule.base_reduction < 100:
        base = base * (rule.base_reduction / 100)
        label = LABEL_REDUCED_BASE
    tax_due = base * (rule.rate / 100)
    if LABEL_GRANTED_CREDIT.lower() in rule.benefit.lower():
        label = LABEL_GRANTED_CREDIT
    if rule.protege:
        label += " + PROTEGE"
    if rule.difal:
        label += " + DIFAL"
    if rule.ciap:
        label += " + CIAP"

    return ApportionmentDetail(
        item=item,
        rule=rule,
        base=base,
        rate=rule.rate,
        tax_due=tax_due,
        label=label,
        benefit=rule.benefit or None,
    )


def apportion(items: Iterable[CanonicalLineItem], rules: Sequence[TaxRule]) -> ApportionmentResult:
    """Apportion ICMS per item. A missing rule is a labeled outcome, never an error."""
    details = tuple(apportion_item(item, find_rule(item, rules)) for item in items)
    return ApportionmentResult(total=sum(d.tax_due for d in details), details=details)
