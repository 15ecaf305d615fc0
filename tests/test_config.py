"""
Configuration system tests.

Run with: pytest tests/test_config.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

from pathlib import Path

import pytest
import yaml

from agegate.config import (
    AgegateConfig,
    ConfigError,
    ConfigManager,
    ValidationError,
    get_config,
    get_config_manager,
)


class TestDefaults:

    def test_defaults(self):
        config = AgegateConfig()
        assert config.proof.freshness_tolerance_days.get() == 1
        assert config.proof.range_bits.get() == 16
        assert config.proof.verifier_gas_limit.get() == 2_000_000
        assert config.settlement.grace_period_seconds.get() == 7 * 86400
        assert config.settlement.sweep_batch_size.get() == 500
        assert config.observability.log_format.get() == "json"

    def test_manager_is_singleton(self):
        assert ConfigManager() is get_config_manager()
        assert get_config() is get_config_manager().config

    def test_to_yaml_round_trips(self):
        data = yaml.safe_load(AgegateConfig().to_yaml())
        assert data["proof"]["freshness_tolerance_days"] == 1
        assert data["settlement"]["grace_period_seconds"] == 604800


class TestOverrides:

    def test_set_and_get_by_path(self):
        mgr = get_config_manager()
        mgr.set("proof.verifier_gas_limit", 3_000_000)
        assert mgr.get("proof.verifier_gas_limit") == 3_000_000

    def test_invalid_value_rejected(self):
        mgr = get_config_manager()
        with pytest.raises(ValidationError):
            mgr.set("proof.freshness_tolerance_days", 90)
        with pytest.raises(ValidationError):
            mgr.set("proof.params_digest", "not-a-digest")
        with pytest.raises(ValidationError):
            mgr.set("observability.log_format", "xml")

    def test_invalid_path(self):
        mgr = get_config_manager()
        with pytest.raises(ConfigError):
            mgr.get("proof.no_such_key")
        with pytest.raises(ConfigError):
            mgr.set("proof", 1)

    def test_reset_discards_overrides(self):
        mgr = get_config_manager()
        mgr.set("settlement.grace_period_seconds", 0)
        mgr.reset()
        assert mgr.get("settlement.grace_period_seconds") == 7 * 86400

    def test_change_callback(self):
        config = AgegateConfig()
        seen = []
        config.settlement.sweep_batch_size.on_change(lambda old, new: seen.append((old, new)))
        config.settlement.sweep_batch_size.set(10)
        assert seen == [(None, 10)]


class TestFilesAndEnvironment:

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "agegate.yaml"
        path.write_text(yaml.safe_dump({
            "proof": {"verifier_gas_limit": 750000, "freshness_tolerance_days": 2},
            "settlement": {"grace_period_seconds": 86400},
        }), encoding="utf-8")

        mgr = get_config_manager()
        mgr.load_from_file(path)
        assert mgr.get("proof.verifier_gas_limit") == 750000
        assert mgr.get("proof.freshness_tolerance_days") == 2
        assert mgr.get("settlement.grace_period_seconds") == 86400

    def test_unknown_key_in_file(self, tmp_path: Path):
        path = tmp_path / "agegate.yaml"
        path.write_text("proof:\n  gas: 1\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="proof.gas"):
            get_config_manager().load_from_file(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(tmp_path / "missing.yaml")

    def test_reload_notifies_watchers(self, tmp_path: Path):
        path = tmp_path / "agegate.yaml"
        path.write_text("settlement:\n  sweep_batch_size: 5\n", encoding="utf-8")
        mgr = get_config_manager()
        mgr.load_from_file(path)

        notified = []
        mgr.watch(notified.append)
        path.write_text("settlement:\n  sweep_batch_size: 7\n", encoding="utf-8")
        mgr.reload()
        assert mgr.get("settlement.sweep_batch_size") == 7
        assert notified == [mgr.config]

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("AGEGATE_FRESHNESS_DAYS", "3")
        monkeypatch.setenv("AGEGATE_TRACING_ENABLED", "off")
        config = AgegateConfig()
        config.proof.freshness_tolerance_days.set(2)
        assert config.proof.freshness_tolerance_days.get() == 3
        assert config.observability.enable_tracing.get() is False

    def test_validate_reports_bad_environment(self, monkeypatch):
        monkeypatch.setenv("AGEGATE_GRACE_PERIOD", "-5")
        monkeypatch.setenv("AGEGATE_SWEEP_BATCH", "many")
        errors = get_config_manager().validate()
        assert any(e.startswith("settlement.grace_period_seconds") for e in errors)
        assert any(e.startswith("settlement.sweep_batch_size") for e in errors)

    def test_environment_value_is_validated_on_read(self, monkeypatch):
        monkeypatch.setenv("AGEGATE_GRACE_PERIOD", "-5")
        config = AgegateConfig()
        with pytest.raises(ValidationError, match="AGEGATE_GRACE_PERIOD"):
            config.settlement.grace_period_seconds.get()

        monkeypatch.setenv("AGEGATE_FRESHNESS_DAYS", "90")
        with pytest.raises(ValidationError):
            config.proof.freshness_tolerance_days.get()

    def test_unparseable_environment_value(self, monkeypatch):
        monkeypatch.setenv("AGEGATE_RANGE_BITS", "sixteen")
        with pytest.raises(ConfigError):
            AgegateConfig().proof.range_bits.get()

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        gas = schema["properties"]["proof"]["verifier_gas_limit"]
        assert gas["type"] == "int"
        assert gas["env_var"] == "AGEGATE_VERIFIER_GAS_LIMIT"

    def test_load_defaults_from_working_directory(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert get_config_manager().load_defaults() == []

        (tmp_path / "agegate.yaml").write_text("proof:\n  range_bits: 20\n", encoding="utf-8")
        assert get_config_manager().load_defaults() == [Path("agegate.yaml")]
        assert get_config_manager().get("proof.range_bits") == 20
