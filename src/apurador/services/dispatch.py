from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from apurador.models.item import CanonicalLineItem
from apurador.models.results import ApportionmentResult, ProtegeRun
from apurador.models.source import Lane, SourceFile
from apurador.services.apuracao import calculate_icms, calculate_protege
from apurador.services.collaborators import LineItemProducer, ScheduleExtractor, ScheduleFile
from apurador.services.rule_repository import RuleRepository
from apurador.utils.ledger import PeriodCreditLedger

logger = logging.getLogger(__name__)

# Order in which one scan pass dispatches lanes: items first, then schedules
LANE_ORDER = {Lane.SPED: 0, Lane.PROTEGE_SCHEDULE: 1, Lane.GENERIC: 2}


@dataclass
class DispatchOutcome:
    lane: Lane
    icms: ApportionmentResult | None = None
    protege: ProtegeRun | None = None
    notes: list[str] = field(default_factory=list)


class Dispatcher:
    """Routes a classified SourceFile to the handler for its lane.

    Handlers raise on failure; the scanner decides what a failure means for
    the processed-file set.
    """

    def __init__(
        self,
        repository: RuleRepository,
        ledger: PeriodCreditLedger,
        producer: LineItemProducer,
        schedule_extractor: ScheduleExtractor,
    ) -> None:
        self.repository = repository
        self.ledger = ledger
        self.producer = producer
        self.schedule_extractor = schedule_extractor
        self.handlers: dict[Lane, Callable[[SourceFile], DispatchOutcome]] = {
            Lane.SPED: self.handle_sped,
            Lane.PROTEGE_SCHEDULE: self.handle_protege_schedule,
            Lane.GENERIC: self.handle_generic,
        }

    def dispatch(self, source: SourceFile) -> DispatchOutcome:
        logger.info(
            "Processing %s (lane=%s, company=%s, period=%s, %d bytes)",
            source.filename,
            source.lane.value,
            source.company_id,
            source.period,
            source.size,
        )
        return self.handlers[source.lane](source)

    def handle_sped(self, source: SourceFile) -> DispatchOutcome:
        parsed = self.producer.parse(source.path, source.company_id)
        items = list(parsed.items)
        company_id = source.company_id or next(
            (i.company_tax_id for i in items if i.company_tax_id), None
        )
        outcome = DispatchOutcome(lane=Lane.SPED)
        if company_id is None:
            outcome.notes.append("empresa nao identificada")
            logger.info("SPED file %s has no identifiable company; items not stored", source.filename)
            return outcome

        self._store_items(company_id, source, items)
        outcome.icms = calculate_icms(company_id, items, self.repository)
        return outcome

    def _store_items(
        self, company_id: str, source: SourceFile, items: list[CanonicalLineItem]
    ) -> None:
        by_period: dict[str, list[CanonicalLineItem]] = {}
        for item in items:
            period = source.period or item.period
            if period is None:
                continue
            by_period.setdefault(period, []).append(item)
        self.repository.store_items(company_id, str(source.path), by_period)

    def handle_protege_schedule(self, source: SourceFile) -> DispatchOutcome:
        outcome = DispatchOutcome(lane=Lane.PROTEGE_SCHEDULE)
        if source.company_id is None:
            outcome.notes.append("empresa nao identificada")
            logger.info("PROTEGE schedule %s has no identifiable company", source.filename)
            return outcome

        self.repository.update_protege(
            self.schedule_extractor.extract(
                source.company_id, [ScheduleFile(name=source.filename, path=source.path)]
            )
        )

        period = source.period
        if period is None:
            outcome.notes.append("periodo nao identificado")
            return outcome
        outcome.protege = calculate_protege(source.company_id, period, self.repository, self.ledger)
        return outcome

    def handle_generic(self, source: SourceFile) -> DispatchOutcome:
        # Terminal no-op lane: recorded and logged, never computed
        logger.info(
            "Generic file, no computation: %s (company=%s, period=%s)",
            source.filename,
            source.company_id,
            source.period,
        )
        return DispatchOutcome(lane=Lane.GENERIC, notes=["sem processamento"])
