"""Boundaries to the external collaborators the scanner dispatches to.

SPED/NFe parsing and benefit-schedule extraction live outside this package.
They are plugged in as ``module:attribute`` factories named in scanner.yaml.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from apurador.models.item import ParsedLedger
from apurador.models.rules import RuleConfiguration
from apurador.services.exceptions import (
    CollaboratorError,
    RuleConfigurationError,
    ScheduleExtractionError,
)
from apurador.services.rule_repository import RuleRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleFile:
    name: str
    path: Path


@runtime_checkable
class LineItemProducer(Protocol):
    """Turns a SPED/NFe file into canonical line items."""

    def parse(self, path: Path, company_id: str | None = None) -> ParsedLedger:
        """Raise ParseError when the file cannot be parsed."""
        ...


@runtime_checkable
class ScheduleExtractor(Protocol):
    """Turns benefit-schedule documents into a PROTEGE rule configuration."""

    def extract(self, company_id: str, files: Sequence[ScheduleFile]) -> RuleConfiguration:
        """Raise ScheduleExtractionError when no configuration can be built."""
        ...


class ConfiguredScheduleExtractor:
    """Serves the ``protege`` section of the company's rule file.

    Used when no document extractor is configured: dropping a schedule into
    the tree then (re)applies the configuration maintained by the operator.
    """

    def __init__(self, repository: RuleRepository) -> None:
        self.repository = repository

    def extract(self, company_id: str, files: Sequence[ScheduleFile]) -> RuleConfiguration:
        self.repository.reload(company_id)
        try:
            configuration = self.repository.protege_configuration(company_id)
        except RuleConfigurationError as exc:
            raise ScheduleExtractionError(str(exc)) from exc
        if configuration is None:
            raise ScheduleExtractionError(
                f"Nenhuma configuracao PROTEGE para a empresa {company_id}"
            )
        logger.info(
            "Schedule files %s mapped to configured PROTEGE rules for %s",
            [f.name for f in files],
            company_id,
        )
        return configuration


def load_factory(ref: str) -> Any:
    """Resolve a ``package.module:attribute`` reference."""
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        raise CollaboratorError(f"Referencia invalida (use modulo:atributo): '{ref}'")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise CollaboratorError(f"Nao foi possivel carregar '{ref}': {exc}") from exc


def build_collaborator(ref: str, *args: Any) -> Any:
    """Import a factory and call it with *args*."""
    factory = load_factory(ref)
    return factory(*args)
