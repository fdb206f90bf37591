from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from apurador.config import PROTEGE_SCHEDULE_KEYWORDS, ScannerConfig
from apurador.models.source import Lane, SourceFile
from apurador.services.content import infer_from_content, is_sped

logger = logging.getLogger(__name__)

_YEAR_RE = re.compile(r"20\d{2}")
_MONTH_RE = re.compile(r"0?[1-9]|1[0-2]")


@dataclass(frozen=True)
class PathInfo:
    company_id: str | None = None
    year: int | None = None
    month: int | None = None


def infer_path_info(
    path: Path,
    root: Path | None,
    company_keywords: tuple[str, ...],
    year_hints: tuple[str, ...] = (),
) -> PathInfo:
    """Infer company, year and month from the path segments below *root*.

    A segment containing a company keyword names the company in the next
    segment, which is then skipped. A segment that is a year (``20xx``,
    restricted to *year_hints* when given) sets the year; after that, a
    segment that is a month number sets the month. Later segments override
    earlier ones.
    """
    if root is not None:
        try:
            path = path.relative_to(root)
        except ValueError:
            pass
    parts = [p for p in path.parts if p not in ("/", "\\")]

    company_id: str | None = None
    year: int | None = None
    month: int | None = None
    consumed = -1
    for i, part in enumerate(parts):
        if i == consumed:
            continue
        lowered = part.lower()
        if any(k in lowered for k in company_keywords) and i + 1 < len(parts):
            company_id = parts[i + 1]
            consumed = i + 1
            continue
        if _YEAR_RE.fullmatch(part) and (not year_hints or part in year_hints):
            year = int(part)
            continue
        if year is not None and _MONTH_RE.fullmatch(part):
            month = int(part)
    return PathInfo(company_id=company_id, year=year, month=month)


def classify(filename: str, extension: str, data: bytes) -> Lane:
    """Assign a processing lane from the filename and, failing that, the content."""
    lowered = filename.lower()
    if extension == ".pdf" and any(k in lowered for k in PROTEGE_SCHEDULE_KEYWORDS):
        return Lane.PROTEGE_SCHEDULE
    if is_sped(data):
        return Lane.SPED
    return Lane.GENERIC


def analyze(path: Path, config: ScannerConfig, root: Path | None = None) -> SourceFile | None:
    """Build a SourceFile for *path*, or None when it is filtered out.

    OSError while reading propagates to the caller.
    """
    stats = path.stat()
    extension = path.suffix.lower()
    if extension not in config.allowed_extensions:
        logger.info("Unsupported extension, skipping: %s", path)
        return None
    if stats.st_size > config.max_file_size_bytes:
        logger.info(
            "File too large, skipping: %s (%d > %d bytes)",
            path,
            stats.st_size,
            config.max_file_size_bytes,
        )
        return None

    data = path.read_bytes()
    info = infer_path_info(
        path, root, config.company_folder_keywords, config.year_folder_hints
    )
    company_id, year, month = info.company_id, info.year, info.month
    if company_id is None or year is None or month is None:
        inferred = infer_from_content(path, data)
        company_id = company_id or inferred.company_id
        if year is None:
            year, month = inferred.year, inferred.month
        elif month is None and inferred.year == year:
            month = inferred.month

    return SourceFile(
        path=path.resolve(),
        filename=path.name,
        size=stats.st_size,
        extension=extension,
        last_modified=datetime.fromtimestamp(stats.st_mtime),
        lane=classify(path.name, extension, data),
        company_id=company_id,
        year=year,
        month=month,
    )
