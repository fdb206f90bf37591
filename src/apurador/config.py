from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

APP_NAME = "apurador-protege"


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Resolve config dir for .env loading without depending on env vars from .env itself.

    Only checks sources available before .env is loaded (env var set in shell,
    dev layout, an existing platformdirs directory).
    """
    from_env = os.environ.get("APURADOR_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    pd = Path(platformdirs.user_config_dir(APP_NAME))
    if pd.is_dir():
        return pd
    return None


# Load .env: cwd first (highest priority), then config dir (won't override)
load_dotenv()
_cfg_dir = _resolve_config_dir_for_dotenv()
if _cfg_dir is not None:
    load_dotenv(_cfg_dir / ".env")


def _resolve_dir(env_var: str, default_subdir: str, kind: str) -> Path:
    """Resolve a directory from env var, repo layout, or platform default.

    Priority: 1) env var, 2) dev repo layout, 3) platformdirs user directory.
    """
    from_env = os.environ.get(env_var)
    if from_env:
        return Path(from_env)
    # Development layout: src/apurador/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / default_subdir
    if candidate.is_dir():
        return candidate
    if kind == "config":
        return Path(platformdirs.user_config_dir(APP_NAME))
    return Path(platformdirs.user_data_dir(APP_NAME))


def get_config_dir() -> Path:
    """Resolve config directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("APURADOR_CONFIG_DIR", "config", kind="config")


def get_data_dir() -> Path:
    """Resolve data directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("APURADOR_DATA_DIR", "data", kind="data")


def get_log_level() -> str:
    return os.environ.get("APURADOR_LOG_LEVEL", "INFO").upper()


SPED_MARKERS = (b"|C100|", b"|M100|", b"|M200|", b"|0000|", b"|9999|")

PROTEGE_SCHEDULE_KEYWORDS = ("protege", "guia", "manual", "auditoria")

LEDGER_NAMESPACE = "protege:pagamento2"

DEFAULT_EXTENSIONS = (".xml", ".txt", ".sped", ".ecd", ".ecf", ".pdf")
DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024
DEFAULT_SCAN_INTERVAL_MS = 30_000
DEFAULT_COMPANY_KEYWORDS = ("empresa", "company", "cnpj")


# --- Scanner config ---


@dataclass(frozen=True)
class ScannerConfig:
    """Scanner settings loaded from config/scanner.yaml."""

    root: Path | None = None
    allowed_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE
    scan_interval_ms: int = DEFAULT_SCAN_INTERVAL_MS
    company_folder_keywords: tuple[str, ...] = DEFAULT_COMPANY_KEYWORDS
    year_folder_hints: tuple[str, ...] = ()
    producer: str | None = None  # "module:factory"
    schedule_extractor: str | None = None
    processed_store: str = "memory"  # memory | file

    @classmethod
    def from_dict(cls, d: dict) -> ScannerConfig:
        """Create a ScannerConfig from a YAML-loaded dict, applying defaults."""
        root = d.get("root")
        extensions = d.get("allowed_extensions") or DEFAULT_EXTENSIONS
        return cls(
            root=Path(root) if root else None,
            allowed_extensions=tuple(_normalize_extension(e) for e in extensions),
            max_file_size_bytes=int(d.get("max_file_size_bytes", DEFAULT_MAX_FILE_SIZE)),
            scan_interval_ms=int(d.get("scan_interval_ms", DEFAULT_SCAN_INTERVAL_MS)),
            company_folder_keywords=tuple(
                str(k).lower()
                for k in d.get("company_folder_keywords") or DEFAULT_COMPANY_KEYWORDS
            ),
            year_folder_hints=tuple(str(h) for h in d.get("year_folder_hints") or ()),
            producer=d.get("producer"),
            schedule_extractor=d.get("schedule_extractor"),
            processed_store=str(d.get("processed_store", "memory")),
        )

    def to_dict(self) -> dict:
        return {
            "root": str(self.root) if self.root else None,
            "allowed_extensions": list(self.allowed_extensions),
            "max_file_size_bytes": self.max_file_size_bytes,
            "scan_interval_ms": self.scan_interval_ms,
            "company_folder_keywords": list(self.company_folder_keywords),
            "year_folder_hints": list(self.year_folder_hints),
            "producer": self.producer,
            "schedule_extractor": self.schedule_extractor,
            "processed_store": self.processed_store,
        }


def _normalize_extension(ext: str) -> str:
    ext = str(ext).lower()
    return ext if ext.startswith(".") else f".{ext}"


# --- YAML config ---


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text()) or {}


def load_scanner_config() -> ScannerConfig:
    """Load config/scanner.yaml (if present) and apply env overrides."""
    path = get_config_dir() / "scanner.yaml"
    data = load_yaml(path).get("scanner", {}) if path.is_file() else {}
    root = os.environ.get("APURADOR_SCAN_ROOT")
    if root:
        data["root"] = root
    interval = os.environ.get("APURADOR_SCAN_INTERVAL_MS")
    if interval:
        data["scan_interval_ms"] = interval
    return ScannerConfig.from_dict(data)


def get_rules_dir() -> Path:
    return get_config_dir() / "rules"


def rules_path(company_id: str) -> Path:
    return get_rules_dir() / f"{company_id}.yaml"


def list_companies() -> list[str]:
    """Return sorted list of company ids (YAML file stems) from config/rules/."""
    rules_dir = get_rules_dir()
    if not rules_dir.exists():
        return []
    return sorted(f.stem for f in rules_dir.glob("*.yaml"))


def get_ledger_path() -> Path:
    return get_data_dir() / "ledger.json"


def get_processed_path() -> Path:
    return get_data_dir() / "processed.json"
