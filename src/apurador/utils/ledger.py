"""Period credit ledger: PROTEGE 2% payments per company and period.

The payment recorded for period P is the credit consumed by period P+1. This
ledger is the only channel through which that credit crosses periods. Reads
never fail: an unavailable store, a missing key or a malformed period all
resolve to zero credit so a PROTEGE computation can still finish.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from filelock import FileLock

from apurador.config import LEDGER_NAMESPACE
from apurador.utils.periods import parse_period, previous_period

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """String keys, numeric values. Nothing else is required of a backing store."""

    def get(self, key: str) -> float | None: ...

    def set(self, key: str, value: float) -> None: ...


class MemoryStore:
    def __init__(self, data: dict[str, float] | None = None) -> None:
        self._data: dict[str, float] = dict(data or {})

    def get(self, key: str) -> float | None:
        return self._data.get(key)

    def set(self, key: str, value: float) -> None:
        self._data[key] = value

    def keys(self) -> list[str]:
        return list(self._data)


def _backup_corrupt(path: Path) -> Path:
    """Rename a corrupt file to a timestamped backup before it gets overwritten."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
    backup = path.with_name(f"{path.name}.corrupt.{ts}")
    path.rename(backup)
    logger.warning("Corrupt file backed up: %s → %s", path, backup)
    return backup


class JsonFileStore:
    """JSON object on disk, guarded by a file lock for read-modify-write."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(self.path.with_suffix(".lock")):
            yield

    def _load(self) -> dict[str, float]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, ValueError):
            _backup_corrupt(self.path)
            return {}
        if not isinstance(data, dict):
            _backup_corrupt(self.path)
            return {}
        return data

    def _save(self, data: dict[str, float]) -> None:
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n")
        os.replace(tmp, self.path)

    def get(self, key: str) -> float | None:
        with self._locked():
            value = self._load().get(key)
        return None if value is None else float(value)

    def set(self, key: str, value: float) -> None:
        with self._locked():
            data = self._load()
            data[key] = value
            self._save(data)

    def keys(self) -> list[str]:
        with self._locked():
            return list(self._load())


class PeriodCreditLedger:
    def __init__(self, store: KeyValueStore, namespace: str = LEDGER_NAMESPACE) -> None:
        self.store = store
        self.namespace = namespace

    def key(self, company_id: str, period: str) -> str:
        parse_period(period)
        return f"{self.namespace}:{company_id}:{period}"

    def get(self, company_id: str, period: str) -> float | None:
        """Return the PROTEGE 2% payment recorded for *period*, or None.

        Store failures are logged and reported as absent.
        """
        try:
            value = self.store.get(self.key(company_id, period))
        except Exception:
            logger.warning(
                "Ledger read failed for %s/%s; treating as absent",
                company_id,
                period,
                exc_info=True,
            )
            return None
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Unreadable ledger value for %s/%s: %r", company_id, period, value)
            return None

    def put(self, company_id: str, period: str, amount: float) -> bool:
        """Record the payment for *period*. Returns False if the store rejected the write."""
        try:
            self.store.set(self.key(company_id, period), float(amount))
        except Exception:
            logger.error("Ledger write failed for %s/%s", company_id, period, exc_info=True)
            return False
        logger.info("PROTEGE 2%% payment recorded: %s/%s = %.2f", company_id, period, amount)
        return True

    def credit_for(self, company_id: str, period: str) -> float:
        """Credit available in *period*: the payment recorded for the prior calendar month."""
        try:
            prior = previous_period(period)
        except ValueError:
            logger.warning("Malformed period %r; credit defaults to zero", period)
            return 0.0
        return self.get(company_id, prior) or 0.0
