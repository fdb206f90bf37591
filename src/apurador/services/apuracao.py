"""Per-period orchestration around the pure ICMS and PROTEGE engines.

These functions never raise: a computation that cannot load its rules, or
fails unexpectedly, comes back with status ``erro`` and zero confidence.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from apurador.models.item import CanonicalLineItem
from apurador.models.results import (
    STATUS_ERROR,
    ApportionmentResult,
    ProtegeResult,
    ProtegeRun,
)
from apurador.models.rules import RuleConfiguration
from apurador.services import icms, protege
from apurador.services.exceptions import ApuradorError
from apurador.services.rule_repository import RuleRepository
from apurador.utils.ledger import PeriodCreditLedger

logger = logging.getLogger(__name__)


def _run_id(company_id: str, period: str, at: datetime) -> str:
    return f"protege_{company_id}_{period}_{at.strftime('%Y%m%dT%H%M%S%f')}"


def _failed_run(
    company_id: str, period: str, configuration: RuleConfiguration | None, error: str
) -> ProtegeRun:
    now = datetime.now()
    return ProtegeRun(
        id=_run_id(company_id, period, now),
        company_id=company_id,
        period=period,
        result=ProtegeResult(company_id=company_id, period=period),
        configuration=configuration,
        calculated_at=now,
        status=STATUS_ERROR,
        confidence=0.0,
        error=error,
    )


def calculate_icms(
    company_id: str,
    items: Sequence[CanonicalLineItem],
    repository: RuleRepository,
) -> ApportionmentResult:
    try:
        rules = repository.icms_rules(company_id)
    except ApuradorError as exc:
        logger.error("ICMS rules unavailable for %s: %s", company_id, exc)
        return ApportionmentResult(total=0.0, status=STATUS_ERROR, confidence=0.0, error=str(exc))

    result = icms.apportion(items, rules)
    unmatched = sum(1 for d in result.details if d.rule is None)
    logger.info(
        "ICMS apportioned for %s: %d items (%d without rule), total %.2f",
        company_id,
        len(result.details),
        unmatched,
        result.total,
    )
    return result


def calculate_protege(
    company_id: str,
    period: str,
    repository: RuleRepository,
    ledger: PeriodCreditLedger,
    items: Sequence[CanonicalLineItem] | None = None,
    configuration: RuleConfiguration | None = None,
) -> ProtegeRun:
    """Compute PROTEGE for a period and record a non-zero 2% payment in the ledger."""
    try:
        if configuration is None:
            configuration = repository.protege_configuration(company_id)
        if configuration is None:
            raise ApuradorError(f"Configuracao PROTEGE nao encontrada para a empresa {company_id}")
        if not configuration.active:
            raise ApuradorError(f"Configuracao PROTEGE inativa para a empresa {company_id}")
        if configuration.expired_for(period):
            raise ApuradorError(
                f"Configuracao PROTEGE da empresa {company_id} encerrada em {configuration.end_date}"
            )

        if items is None:
            items = repository.items(company_id, period)
        if not items:
            logger.warning("No line items for %s/%s; computing credit only", company_id, period)

        credit = ledger.credit_for(company_id, period)
        result = protege.compute(items, configuration.rules, company_id, period, credit)
    except Exception as exc:
        logger.error("PROTEGE computation failed for %s/%s: %s", company_id, period, exc)
        return _failed_run(company_id, period, configuration, str(exc))

    # A zero payment must not overwrite one recorded by an earlier run
    if result.protege2_payment > 0:
        ledger.put(company_id, period, result.protege2_payment)

    now = datetime.now()
    logger.info(
        "PROTEGE computed for %s/%s: final %.2f (15%%: %.2f, 2%%: %.2f, credit %.2f, benefits %.2f)",
        company_id,
        period,
        result.valor_final,
        result.total_protege15,
        result.protege2_payment,
        result.protege2_credit,
        result.total_benefits,
    )
    return ProtegeRun(
        id=_run_id(company_id, period, now),
        company_id=company_id,
        period=period,
        result=result,
        configuration=configuration,
        calculated_at=now,
    )
