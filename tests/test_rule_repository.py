from __future__ import annotations

import pytest
import yaml

from apurador.models.rules import ProtegeRule, ProtegeTrack, RuleConfiguration
from apurador.services.exceptions import RuleConfigurationError
from apurador.services.rule_repository import RuleRepository, load_rule_file
from tests.conftest import CNPJ, make_item


class TestLoadRuleFile:
    def test_missing_file_is_empty(self, tmp_path):
        assert load_rule_file("x", tmp_path / "x.yaml") == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "x.yaml"
        path.write_text("icms: [unclosed")
        with pytest.raises(RuleConfigurationError) as exc_info:
            load_rule_file("x", path)
        assert exc_info.value.company_id == "x"

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "x.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(RuleConfigurationError):
            load_rule_file("x", path)


class TestIcmsRules:
    def test_sorted_by_priority(self, repository):
        rules = repository.icms_rules(CNPJ)
        assert [r.priority for r in rules] == [10, 20]

    def test_unknown_company_has_no_rules(self, repository):
        assert repository.icms_rules("00000000000000") == ()
        assert repository.protege_configuration("00000000000000") is None

    def test_invalid_rule(self, rules_dir):
        (rules_dir / "bad.yaml").write_text(yaml.dump({"icms": [{"cfop": "9999", "rate": 17}]}))
        with pytest.raises(RuleConfigurationError, match="ICMS"):
            RuleRepository(rules_dir).icms_rules("bad")

    def test_cached_until_reload(self, repository, rules_dir, rules_dict):
        assert len(repository.icms_rules(CNPJ)) == 2
        rules_dict["icms"] = [{"rate": 4}]
        (rules_dir / f"{CNPJ}.yaml").write_text(yaml.dump(rules_dict))
        assert len(repository.icms_rules(CNPJ)) == 2
        repository.reload(CNPJ)
        assert len(repository.icms_rules(CNPJ)) == 1


class TestProtegeConfiguration:
    def test_loaded_from_file(self, repository):
        cfg = repository.protege_configuration(CNPJ)
        assert cfg.active
        assert [r.track for r in cfg.rules] == [ProtegeTrack.PROTEGE_2, ProtegeTrack.PROTEGE_15]

    def test_invalid_section(self, rules_dir):
        (rules_dir / "bad.yaml").write_text(
            yaml.dump({"protege": {"rules": [{"track": "PROTEGE_3", "rate": 1}]}})
        )
        with pytest.raises(RuleConfigurationError, match="PROTEGE"):
            RuleRepository(rules_dir).protege_configuration("bad")

    def test_update_replaces_and_sorts(self, repository):
        cfg = RuleConfiguration(
            company_id=CNPJ,
            rules=(
                ProtegeRule(track=ProtegeTrack.PROTEGE_15, rate=15, priority=9),
                ProtegeRule(track=ProtegeTrack.PROTEGE_15, rate=10, priority=3),
            ),
        )
        repository.update_protege(cfg)
        assert [r.priority for r in repository.protege_configuration(CNPJ).rules] == [3, 9]

    def test_update_survives_later_icms_load(self, repository):
        cfg = RuleConfiguration(company_id=CNPJ)
        repository.update_protege(cfg)
        repository.icms_rules(CNPJ)
        assert repository.protege_configuration(CNPJ).rules == ()


class TestItems:
    def test_store_and_read(self, repository):
        a, b = make_item(document="A"), make_item(document="B")
        repository.store_items(CNPJ, "/r/a.txt", {"202503": [a]})
        repository.store_items(CNPJ, "/r/b.txt", {"202503": [b]})
        assert repository.items(CNPJ, "202503") == (a, b)
        assert repository.items(CNPJ, "202504") == ()

    def test_same_source_replaces_its_items(self, repository):
        a, b = make_item(document="A"), make_item(document="B")
        repository.store_items(CNPJ, "/r/a.txt", {"202503": [a]})
        repository.store_items(CNPJ, "/r/a.txt", {"202503": [a]})
        assert repository.items(CNPJ, "202503") == (a,)

        repository.store_items(CNPJ, "/r/a.txt", {"202504": [b]})
        assert repository.items(CNPJ, "202503") == ()
        assert repository.items(CNPJ, "202504") == (b,)

    def test_sources_are_per_company(self, repository):
        a = make_item()
        repository.store_items(CNPJ, "/r/a.txt", {"202503": [a]})
        repository.store_items("c2", "/r/a.txt", {"202503": [a]})
        assert repository.items(CNPJ, "202503") == (a,)
        assert repository.items("c2", "202503") == (a,)
