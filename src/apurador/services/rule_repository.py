"""In-process holder of rule sets and line items per company.

ICMS rules and the PROTEGE configuration are loaded from
``config/rules/{company_id}.yaml`` on first use; a schedule extraction can
later replace the PROTEGE configuration. Every accessor returns tuples, so a
computation works on a snapshot that later updates cannot change.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path

import yaml

from apurador import config as _config
from apurador.models.item import CanonicalLineItem
from apurador.models.rules import RuleConfiguration, TaxRule, sort_by_priority
from apurador.services.exceptions import RuleConfigurationError

logger = logging.getLogger(__name__)


def load_rule_file(company_id: str, path: Path | None = None) -> dict:
    """Read a company's rule file. A missing file is an empty rule set."""
    path = path or _config.rules_path(company_id)
    if not path.exists():
        return {}
    try:
        data = _config.load_yaml(path)
    except (OSError, yaml.YAMLError) as exc:
        raise RuleConfigurationError(f"Arquivo de regras ilegivel: {path}: {exc}", company_id) from exc
    if not isinstance(data, dict):
        raise RuleConfigurationError(f"Arquivo de regras invalido: {path}", company_id)
    return data


def parse_icms_rules(company_id: str, data: dict) -> tuple[TaxRule, ...]:
    try:
        return sort_by_priority(TaxRule.from_dict(r) for r in data.get("icms") or ())
    except (KeyError, TypeError, ValueError) as exc:
        raise RuleConfigurationError(f"Regra ICMS invalida: {exc}", company_id) from exc


def parse_protege_configuration(company_id: str, data: dict) -> RuleConfiguration | None:
    section = data.get("protege")
    if not section:
        return None
    try:
        return RuleConfiguration.from_dict(company_id, section)
    except (KeyError, TypeError, ValueError) as exc:
        raise RuleConfigurationError(f"Configuracao PROTEGE invalida: {exc}", company_id) from exc


class RuleRepository:
    def __init__(self, rules_dir: Path | None = None) -> None:
        self._rules_dir = rules_dir
        self._lock = threading.Lock()
        self._icms: dict[str, tuple[TaxRule, ...]] = {}
        self._protege: dict[str, RuleConfiguration] = {}
        # (company, period) -> source file -> items
        self._items: dict[tuple[str, str], dict[str, tuple[CanonicalLineItem, ...]]] = {}

    def _path(self, company_id: str) -> Path:
        if self._rules_dir is not None:
            return self._rules_dir / f"{company_id}.yaml"
        return _config.rules_path(company_id)

    def _load(self, company_id: str) -> None:
        data = load_rule_file(company_id, self._path(company_id))
        self._icms[company_id] = parse_icms_rules(company_id, data)
        configuration = parse_protege_configuration(company_id, data)
        if configuration is not None:
            self._protege.setdefault(company_id, configuration)
        logger.info(
            "Rules loaded for %s: %d ICMS, %d PROTEGE",
            company_id,
            len(self._icms[company_id]),
            len(configuration.rules) if configuration else 0,
        )

    # --- ICMS ---

    def icms_rules(self, company_id: str) -> tuple[TaxRule, ...]:
        """Priority-ordered ICMS rules; raises RuleConfigurationError if the file is invalid."""
        with self._lock:
            if company_id not in self._icms:
                self._load(company_id)
            return self._icms[company_id]

    # --- PROTEGE ---

    def protege_configuration(self, company_id: str) -> RuleConfiguration | None:
        with self._lock:
            if company_id not in self._protege and company_id not in self._icms:
                self._load(company_id)
            return self._protege.get(company_id)

    def update_protege(self, configuration: RuleConfiguration) -> None:
        """Replace the company's PROTEGE configuration (rules re-sorted by priority)."""
        ordered = RuleConfiguration(
            company_id=configuration.company_id,
            rules=sort_by_priority(configuration.rules),
            benefits=configuration.benefits,
            active=configuration.active,
            start_date=configuration.start_date,
            end_date=configuration.end_date,
        )
        with self._lock:
            self._protege[configuration.company_id] = ordered
        logger.info(
            "PROTEGE configuration updated for %s: %d rules, %d benefits",
            configuration.company_id,
            len(ordered.rules),
            len(ordered.benefits),
        )

    # --- Line items ---

    def store_items(
        self,
        company_id: str,
        source: str,
        items_by_period: Mapping[str, Iterable[CanonicalLineItem]],
    ) -> None:
        """Replace everything *source* contributed for the company with *items_by_period*.

        Re-reading the same file therefore never counts its items twice.
        """
        with self._lock:
            for (company, _), by_source in self._items.items():
                if company == company_id:
                    by_source.pop(source, None)
            for period, items in items_by_period.items():
                self._items.setdefault((company_id, period), {})[source] = tuple(items)

    def items(self, company_id: str, period: str) -> tuple[CanonicalLineItem, ...]:
        """Items of every source for the period, in the order the sources were stored."""
        with self._lock:
            by_source = self._items.get((company_id, period), {})
            return tuple(item for items in by_source.values() for item in items)

    def reload(self, company_id: str) -> None:
        """Drop cached rules so the next access re-reads the company's file."""
        with self._lock:
            self._icms.pop(company_id, None)
            self._protege.pop(company_id, None)
