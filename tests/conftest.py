from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from apurador.models.item import CanonicalLineItem, ParsedLedger
from apurador.models.rules import RuleConfiguration
from apurador.services.rule_repository import RuleRepository
from apurador.utils.ledger import MemoryStore, PeriodCreditLedger

CNPJ = "12345678000199"


# --- Line item fixtures ---


@pytest.fixture
def item_dict() -> dict:
    return {
        "document": "NF-1001",
        "date": "2025-03-15",
        "company_tax_id": CNPJ,
        "product": "CERVEJA PILSEN LATA 350ML",
        "product_code": "P001",
        "ncm": "12345678",
        "cfop": "5102",
        "cst": "00",
        "value": 1200.00,
        "icms_base": 1000.00,
        "icms_amount": 180.00,
    }


@pytest.fixture
def item(item_dict: dict) -> CanonicalLineItem:
    return CanonicalLineItem.from_dict(item_dict)


def make_item(**overrides) -> CanonicalLineItem:
    base = {
        "document": "NF-1",
        "date": "2025-03-15",
        "company_tax_id": CNPJ,
        "product": "PRODUTO GENERICO",
        "ncm": "12345678",
        "cfop": "5102",
        "cst": "00",
        "value": 1000.0,
        "icms_base": 1000.0,
        "icms_amount": 180.0,
    }
    base.update(overrides)
    return CanonicalLineItem.from_dict(base)


# --- Rule fixtures ---


@pytest.fixture
def rules_dict() -> dict:
    return {
        "icms": [
            {"priority": 20, "cfop": "5102", "rate": 17},
            {"priority": 10, "ncm": "12345678", "rate": 12, "base_reduction": 50},
        ],
        "protege": {
            "active": True,
            "start_date": "2025-01-01",
            "rules": [
                {"priority": 10, "track": "PROTEGE_15", "rate": 15,
                 "benefits": [{"code": "CIAP", "description": "CIAP", "type": "CIAP"}]},
                {"priority": 1, "track": "PROTEGE_2", "rate": 2, "ncm": "22030000",
                 "keywords": ["cerveja"]},
            ],
        },
    }


@pytest.fixture
def rules_dir(tmp_path: Path, rules_dict: dict) -> Path:
    d = tmp_path / "rules"
    d.mkdir()
    (d / f"{CNPJ}.yaml").write_text(yaml.dump(rules_dict))
    return d


@pytest.fixture
def repository(rules_dir: Path) -> RuleRepository:
    return RuleRepository(rules_dir)


@pytest.fixture
def protege_configuration(rules_dict: dict) -> RuleConfiguration:
    return RuleConfiguration.from_dict(CNPJ, rules_dict["protege"])


# --- Ledger fixtures ---


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def ledger(store: MemoryStore) -> PeriodCreditLedger:
    return PeriodCreditLedger(store)


# --- Collaborator fakes ---


class FakeProducer:
    def __init__(self, items=(), error: Exception | None = None) -> None:
        self.items = tuple(items)
        self.error = error
        self.calls: list[tuple[Path, str | None]] = []

    def parse(self, path: Path, company_id: str | None = None) -> ParsedLedger:
        self.calls.append((path, company_id))
        if self.error is not None:
            raise self.error
        return ParsedLedger(items=self.items)


class FakeExtractor:
    def __init__(self, configuration: RuleConfiguration | None = None, error: Exception | None = None):
        self.configuration = configuration
        self.error = error
        self.calls: list[str] = []

    def extract(self, company_id, files):
        self.calls.append(company_id)
        if self.error is not None:
            raise self.error
        return self.configuration


# --- Directory tree fixture ---

SPED_CONTENT = (
    f"|0000|017|0|01032025|31032025|ACME COMERCIO LTDA|{CNPJ}||GO|123456789|5208707||A|1|\n"
    "|C100|0|1|FORN1|55|00|1|1001|CHAVE|15032025|15032025|1000,00|\n"
    "|9999|3|\n"
)


@pytest.fixture
def fiscal_tree(tmp_path: Path) -> Path:
    """empresa/<cnpj>/2025/03 with one SPED, one PROTEGE schedule and one generic file."""
    root = tmp_path / "fiscal"
    month_dir = root / "empresa" / CNPJ / "2025" / "03"
    month_dir.mkdir(parents=True)
    (month_dir / "efd_icms_ipi.txt").write_text(SPED_CONTENT, encoding="latin-1")
    (month_dir / "protege_goias.pdf").write_bytes(b"%PDF-1.4 fake schedule")
    (month_dir / "notas.txt").write_text("anotacoes sem marcadores")
    (month_dir / "planilha.xlsx").write_bytes(b"ignored")
    return root
