from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

import apurador.config as config_mod


class TestResolveDir:
    def test_from_env_var(self, monkeypatch, tmp_path):
        monkeypatch.setenv("APURADOR_CONFIG_DIR", str(tmp_path))
        result = config_mod._resolve_dir("APURADOR_CONFIG_DIR", "config", kind="config")
        assert result == tmp_path

    def test_project_root_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("APURADOR_DATA_DIR", raising=False)
        fake_root = tmp_path / "src" / "apurador"
        fake_root.mkdir(parents=True)
        data_dir = tmp_path / "data"
        data_dir.mkdir()

        monkeypatch.setattr(config_mod, "__file__", str(fake_root / "config.py"))
        result = config_mod._resolve_dir("APURADOR_DATA_DIR", "data", kind="data")
        assert result == data_dir

    def test_platformdirs_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("APURADOR_CONFIG_DIR", raising=False)
        fake = tmp_path / "nowhere" / "src" / "apurador"
        fake.mkdir(parents=True)
        monkeypatch.setattr(config_mod, "__file__", str(fake / "config.py"))
        result = config_mod._resolve_dir("APURADOR_CONFIG_DIR", "config", kind="config")
        assert "apurador-protege" in str(result)

    def test_dotenv_dir_none_when_missing(self, monkeypatch, tmp_path):
        monkeypatch.delenv("APURADOR_CONFIG_DIR", raising=False)
        fake = tmp_path / "nowhere" / "src" / "apurador"
        fake.mkdir(parents=True)
        monkeypatch.setattr(config_mod, "__file__", str(fake / "config.py"))
        with patch("apurador.config.platformdirs.user_config_dir", return_value=str(fake / "pd")):
            assert config_mod._resolve_config_dir_for_dotenv() is None


class TestLogLevel:
    def test_default(self, monkeypatch):
        monkeypatch.delenv("APURADOR_LOG_LEVEL", raising=False)
        assert config_mod.get_log_level() == "INFO"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("APURADOR_LOG_LEVEL", "debug")
        assert config_mod.get_log_level() == "DEBUG"


class TestScannerConfig:
    def test_defaults(self):
        cfg = config_mod.ScannerConfig.from_dict({})
        assert cfg.root is None
        assert ".txt" in cfg.allowed_extensions
        assert cfg.scan_interval_ms == config_mod.DEFAULT_SCAN_INTERVAL_MS
        assert cfg.year_folder_hints == ()
        assert cfg.processed_store == "memory"

    def test_normalizes_extensions_and_keywords(self):
        cfg = config_mod.ScannerConfig.from_dict(
            {"allowed_extensions": ["TXT", ".Xml"], "company_folder_keywords": ["Cliente"]}
        )
        assert cfg.allowed_extensions == (".txt", ".xml")
        assert cfg.company_folder_keywords == ("cliente",)

    def test_year_hints_as_strings(self):
        cfg = config_mod.ScannerConfig.from_dict({"year_folder_hints": [2024, 2025]})
        assert cfg.year_folder_hints == ("2024", "2025")

    def test_to_dict_round_trips(self):
        cfg = config_mod.ScannerConfig.from_dict({"root": "/dados", "max_file_size_bytes": 10})
        assert config_mod.ScannerConfig.from_dict(cfg.to_dict()) == cfg


class TestLoadScannerConfig:
    def test_reads_yaml(self, monkeypatch, tmp_path):
        (tmp_path / "scanner.yaml").write_text(
            yaml.dump({"scanner": {"root": "/dados", "scan_interval_ms": 5000}})
        )
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: tmp_path)
        monkeypatch.delenv("APURADOR_SCAN_ROOT", raising=False)
        monkeypatch.delenv("APURADOR_SCAN_INTERVAL_MS", raising=False)
        cfg = config_mod.load_scanner_config()
        assert cfg.root == Path("/dados")
        assert cfg.scan_interval_ms == 5000

    def test_env_overrides(self, monkeypatch, tmp_path):
        (tmp_path / "scanner.yaml").write_text(yaml.dump({"scanner": {"root": "/dados"}}))
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: tmp_path)
        monkeypatch.setenv("APURADOR_SCAN_ROOT", "/outro")
        monkeypatch.setenv("APURADOR_SCAN_INTERVAL_MS", "1000")
        cfg = config_mod.load_scanner_config()
        assert cfg.root == Path("/outro")
        assert cfg.scan_interval_ms == 1000

    def test_missing_file_is_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: tmp_path)
        monkeypatch.delenv("APURADOR_SCAN_ROOT", raising=False)
        monkeypatch.delenv("APURADOR_SCAN_INTERVAL_MS", raising=False)
        assert config_mod.load_scanner_config() == config_mod.ScannerConfig()


class TestLoadYaml:
    def test_valid(self, tmp_path):
        f = tmp_path / "test.yaml"
        f.write_text(yaml.dump({"key": "value"}))
        assert config_mod.load_yaml(f) == {"key": "value"}

    def test_empty(self, tmp_path):
        f = tmp_path / "empty.yaml"
        f.write_text("")
        assert config_mod.load_yaml(f) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            config_mod.load_yaml(tmp_path / "missing.yaml")


class TestRules:
    def test_list_companies(self, monkeypatch, tmp_path):
        rules = tmp_path / "rules"
        rules.mkdir()
        (rules / "111.yaml").write_text("icms: []\n")
        (rules / "000.yaml").write_text("")
        (rules / "exemplo.yaml.example").write_text("")
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: tmp_path)
        assert config_mod.rules_path("111") == rules / "111.yaml"
        assert config_mod.list_companies() == ["000", "111"]

    def test_list_without_dir(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: tmp_path / "none")
        assert config_mod.list_companies() == []


class TestDataPaths:
    def test_paths(self, monkeypatch, tmp_path):
        monkeypatch.setenv("APURADOR_DATA_DIR", str(tmp_path))
        assert config_mod.get_ledger_path() == tmp_path / "ledger.json"
        assert config_mod.get_processed_path() == tmp_path / "processed.json"
