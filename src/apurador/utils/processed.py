"""Processed-file set owned by the scanner.

Keyed by absolute path. A path only leaves the set through ``clear()``; there
is no re-processing when a file's content changes.
"""

from __future__ import annotations

import json
import logging
import os
from collections import OrderedDict
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from filelock import FileLock

logger = logging.getLogger(__name__)


class ProcessedFiles(Protocol):
    def seen(self, path: str) -> bool: ...

    def mark_seen(self, path: str) -> None: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...


class MemoryProcessedFiles:
    """In-memory set; with *max_entries*, the oldest paths are evicted first."""

    def __init__(self, max_entries: int | None = None) -> None:
        self._paths: OrderedDict[str, None] = OrderedDict()
        self.max_entries = max_entries

    def seen(self, path: str) -> bool:
        return path in self._paths

    def mark_seen(self, path: str) -> None:
        self._paths[path] = None
        if self.max_entries is not None:
            while len(self._paths) > self.max_entries:
                evicted, _ = self._paths.popitem(last=False)
                logger.debug("Processed set full, evicting %s", evicted)

    def clear(self) -> None:
        self._paths.clear()

    def __len__(self) -> int:
        return len(self._paths)


class JsonProcessedFiles:
    """Durable set stored as a JSON list, shared across processes via a file lock."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(self.path.with_suffix(".lock")):
            yield

    def _load(self) -> list[str]:
        if not self.path.exists():
            return []
        try:
            return list(json.loads(self.path.read_text()))
        except (json.JSONDecodeError, ValueError, TypeError):
            logger.warning("Unreadable processed-file set %s; starting empty", self.path)
            return []

    def _save(self, paths: list[str]) -> None:
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(paths, indent=2, ensure_ascii=False) + "\n")
        os.replace(tmp, self.path)

    def seen(self, path: str) -> bool:
        with self._locked():
            return path in self._load()

    def mark_seen(self, path: str) -> None:
        with self._locked():
            paths = self._load()
            if path not in paths:
                paths.append(path)
                self._save(paths)

    def clear(self) -> None:
        with self._locked():
            self._save([])

    def __len__(self) -> int:
        with self._locked():
            return len(self._load())
