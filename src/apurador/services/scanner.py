"""Periodic scanner over a per-company, per-period directory tree.

Contract:
    ``start()`` runs one pass immediately and then one pass per interval on
    a daemon thread; ``stop()`` ends the loop. ``scan()`` runs a single pass
    and reports what happened.

A file is dispatched at most once per absolute path. Files that fail are
left out of the processed set and picked up again by the next pass. A tick
that fires while a pass is still running is skipped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from apurador.config import ScannerConfig
from apurador.models.source import SourceFile
from apurador.services.classifier import analyze
from apurador.services.dispatch import LANE_ORDER, Dispatcher, DispatchOutcome
from apurador.utils.processed import MemoryProcessedFiles, ProcessedFiles

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    discovered: int = 0
    dispatched: list[str] = field(default_factory=list)
    already_processed: int = 0
    failed: list[str] = field(default_factory=list)
    outcomes: dict[str, DispatchOutcome] = field(default_factory=dict)
    skipped_overlap: bool = False


@dataclass(frozen=True)
class ScannerStats:
    running: bool
    processed_count: int
    config: ScannerConfig


class Scanner:
    def __init__(
        self,
        config: ScannerConfig,
        dispatcher: Dispatcher,
        processed: ProcessedFiles | None = None,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self.processed: ProcessedFiles = (
            processed if processed is not None else MemoryProcessedFiles()
        )
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._root: Path | None = config.root

    # --- Operator controls ---

    def start(self, root: Path | None = None) -> ScanReport:
        """Run a pass now, then keep scanning every interval in the background."""
        if root is not None:
            self._root = root
        if self._root is None:
            raise ValueError("Diretorio raiz nao configurado")
        if self.running:
            logger.info("Scanner already running")
            return ScanReport()

        logger.info(
            "Starting scanner on %s every %d ms", self._root, self.config.scan_interval_ms
        )
        report = self.scan(self._root)
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="apurador-scanner", daemon=True)
        self._thread.start()
        return report

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Scanner stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stats(self) -> ScannerStats:
        return ScannerStats(
            running=self.running,
            processed_count=len(self.processed),
            config=self.config,
        )

    def clear_processed(self) -> None:
        self.processed.clear()
        logger.info("Processed-file set cleared")

    # --- Scanning ---

    def _run_loop(self) -> None:
        interval = self.config.scan_interval_ms / 1000
        while not self._stop_event.wait(timeout=interval):
            try:
                self.scan(self._root)
            except Exception:
                logger.exception("Scan pass failed")

    def scan(self, root: Path) -> ScanReport:
        """Run one pass over *root*. Returns immediately if a pass is in progress."""
        if not self._pass_lock.acquire(blocking=False):
            logger.warning("Previous scan pass still running; skipping this tick")
            return ScanReport(skipped_overlap=True)
        try:
            return self._scan(Path(root))
        finally:
            self._pass_lock.release()

    def _scan(self, root: Path) -> ScanReport:
        report = ScanReport()
        if not root.is_dir():
            logger.info("Scan root does not exist: %s", root)
            return report

        pending: list[SourceFile] = []
        for path in self._discover(root):
            report.discovered += 1
            key = str(path.resolve())
            if self.processed.seen(key):
                report.already_processed += 1
                continue
            try:
                source = analyze(path, self.config, root)
            except OSError:
                logger.error("Failed to analyze %s", path, exc_info=True)
                report.failed.append(key)
                continue
            if source is not None:
                pending.append(source)

        pending.sort(key=lambda s: (LANE_ORDER[s.lane], str(s.path)))
        for source in pending:
            key = str(source.path)
            try:
                report.outcomes[key] = self.dispatcher.dispatch(source)
            except Exception:
                logger.error(
                    "Failed to process %s (lane=%s); will retry next pass",
                    source.filename,
                    source.lane.value,
                    exc_info=True,
                )
                report.failed.append(key)
                continue
            self.processed.mark_seen(key)
            report.dispatched.append(key)

        logger.info(
            "Scan pass finished: %d files, %d new, %d failed",
            report.discovered,
            len(report.dispatched),
            len(report.failed),
        )
        return report

    def _discover(self, directory: Path):
        try:
            entries = sorted(directory.iterdir())
        except OSError:
            logger.error("Failed to list %s", directory, exc_info=True)
            return
        for entry in entries:
            if entry.is_dir():
                yield from self._discover(entry)
            elif entry.is_file():
                yield entry
