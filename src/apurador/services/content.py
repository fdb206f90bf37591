"""Company and period inference from file content.

Used when the directory layout does not name the company or period: SPED
files open with a ``|0000|`` record carrying the filer's CNPJ and the period
start date; NFe XML carries the emitter's CNPJ and the issue date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from lxml import etree

from apurador.config import SPED_MARKERS
from apurador.utils.periods import parse_period, period_from_date
from apurador.utils.validators import validate_cnpj

logger = logging.getLogger(__name__)

NFE_NS = "http://www.portalfiscal.inf.br/nfe"
_NFE_XPATH_NS = {"n": NFE_NS}

# |0000|COD_VER|COD_FIN|DT_INI|DT_FIN|NOME|CNPJ|CPF|UF|...
_IDX_DT_INI = 4
_IDX_CNPJ = 7


@dataclass(frozen=True)
class ContentInfo:
    company_id: str | None = None
    year: int | None = None
    month: int | None = None


def _info(cnpj: str, period: str | None) -> ContentInfo:
    year = month = None
    if period:
        year, month = parse_period(period)
    try:
        company_id = validate_cnpj(cnpj)
    except ValueError:
        company_id = None
    return ContentInfo(company_id=company_id, year=year, month=month)


def is_sped(data: bytes) -> bool:
    return any(marker in data for marker in SPED_MARKERS)


def sped_header_info(data: bytes) -> ContentInfo:
    """Read CNPJ and DT_INI from the first |0000| record."""
    for raw in data.splitlines():
        line = raw.decode("latin-1").strip()
        if not line.startswith("|0000|"):
            continue
        parts = line.split("|")
        dt_ini = parts[_IDX_DT_INI] if len(parts) > _IDX_DT_INI else ""
        cnpj = parts[_IDX_CNPJ].strip() if len(parts) > _IDX_CNPJ else ""
        return _info(cnpj, period_from_date(dt_ini))
    return ContentInfo()


def nfe_info(data: bytes) -> ContentInfo:
    """Read emitter CNPJ and issue period from an NFe (or nfeProc) document."""
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    root = etree.fromstring(data, parser=parser)

    def txt(xpath: str) -> str:
        return root.findtext(xpath, default="", namespaces=_NFE_XPATH_NS).strip()

    cnpj = txt(".//n:emit/n:CNPJ")
    issued = txt(".//n:ide/n:dhEmi") or txt(".//n:ide/n:dEmi")
    return _info(cnpj, period_from_date(issued))


def infer_from_content(path: Path, data: bytes | None = None) -> ContentInfo:
    """Best-effort content inference. Never raises; failures are logged."""
    try:
        if data is None:
            data = path.read_bytes()
        if path.suffix.lower() == ".xml":
            return nfe_info(data)
        if is_sped(data):
            return sped_header_info(data)
    except (OSError, etree.XMLSyntaxError, ValueError):
        logger.info("Could not infer company/period from content of %s", path, exc_info=True)
    return ContentInfo()
