from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path

from apurador.utils.periods import make_period


class Lane(str, Enum):
    SPED = "SPED"
    PROTEGE_SCHEDULE = "PROTEGE_SCHEDULE"
    GENERIC = "GENERIC"


@dataclass(frozen=True)
class SourceFile:
    """A file discovered by one scan pass. Identity is the absolute path."""

    path: Path
    filename: str
    size: int
    extension: str
    last_modified: datetime
    lane: Lane = Lane.GENERIC
    company_id: str | None = None
    year: int | None = None
    month: int | None = None

    @property
    def period(self) -> str | None:
        if self.year is None or self.month is None:
            return None
        return make_period(self.year, self.month)

    def with_lane(self, lane: Lane) -> SourceFile:
        return replace(self, lane=lane)
