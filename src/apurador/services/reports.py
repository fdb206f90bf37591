from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from apurador.models.results import ProtegeResult
from apurador.models.rules import ProtegeTrack
from apurador.utils.ledger import PeriodCreditLedger
from apurador.utils.periods import next_period, parse_period


def benefits_report(result: ProtegeResult) -> dict[str, Any]:
    """Benefit totals per type and gross PROTEGE per track for one period."""
    by_type: dict[str, float] = {}
    by_track = {ProtegeTrack.PROTEGE_15.value: 0.0, ProtegeTrack.PROTEGE_2.value: 0.0}
    conditions: set[str] = set()
    for detail in result.details:
        calc = detail.calculation
        by_track[calc.track.value] += calc.value
        if detail.rule is not None:
            conditions.update(detail.rule.eligibility_conditions)
        for applied in calc.applied_benefits:
            key = applied.benefit.type.value
            by_type[key] = by_type.get(key, 0.0) + applied.value

    return {
        "periodo": result.period,
        "total_protege15": result.total_protege15,
        "total_protege2": result.protege2_payment,
        "total_beneficios": result.total_benefits,
        "valor_final": result.valor_final,
        "beneficios_por_tipo": by_type,
        "protege_por_tipo": by_track,
        "quantidade_itens": len(result.details),
        "protege2_pagamento": result.protege2_payment,
        "protege2_credito": result.protege2_credit,
        "saldo_protege2": result.saldo_protege2,
        "condicoes_elegibilidade": sorted(conditions),
    }


def cross_credit_report(
    results: Iterable[ProtegeResult], start: str, end: str
) -> dict[str, Any]:
    """PROTEGE 2% payments, credits and balances for the periods in [start, end]."""
    parse_period(start)
    parse_period(end)
    selected = sorted((r for r in results if start <= r.period <= end), key=lambda r: r.period)

    summary = {"total_pagamentos": 0.0, "total_creditos": 0.0, "saldo_acumulado": 0.0}
    rows = []
    for r in selected:
        summary["total_pagamentos"] += r.protege2_payment
        summary["total_creditos"] += r.protege2_credit
        summary["saldo_acumulado"] += r.saldo_protege2
        rows.append(
            {
                "periodo": r.period,
                "pagamento": r.protege2_payment,
                "credito": r.protege2_credit,
                "saldo": r.saldo_protege2,
                "mes_credito": next_period(r.period),
            }
        )
    return {
        "periodo_inicio": start,
        "periodo_fim": end,
        "total_periodos": len(rows),
        "resumo": summary,
        "detalhes_por_periodo": rows,
    }


def ledger_history(
    ledger: PeriodCreditLedger, company_id: str, start: str, end: str
) -> list[ProtegeResult]:
    """Rebuild payment/credit figures per period from the ledger alone."""
    results = []
    period = start
    while period <= end:
        payment = ledger.get(company_id, period) or 0.0
        credit = ledger.credit_for(company_id, period)
        results.append(
            ProtegeResult(
                company_id=company_id,
                period=period,
                protege2_payment=payment,
                protege2_credit=credit,
                saldo_protege2=payment - credit,
            )
        )
        period = next_period(period)
    return results
