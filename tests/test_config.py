"""
Configuration management tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from upof.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    ConfigValue,
    get_config,
    get_config_manager,
)


class TestConfigValue:
    """Tests for individual configuration values."""

    def test_default(self):
        value = ConfigValue(default=5)
        assert value.get() == 5

    def test_set_and_reset(self):
        value = ConfigValue(default=5)
        value.set(7)
        assert value.get() == 7
        value.reset()
        assert value.get() == 5

    def test_validator(self):
        value = ConfigValue(default=5, validator=lambda x: x > 0)
        with pytest.raises(ConfigValidationError):
            value.set(0)

    def test_env_overrides_set_value(self, monkeypatch):
        value = ConfigValue(default=5, env_var="UPOF_TEST_VALUE")
        value.set(6)
        monkeypatch.setenv("UPOF_TEST_VALUE", "9")
        assert value.get() == 9

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("on", True), ("no", False)])
    def test_bool_coercion(self, monkeypatch, raw, expected):
        value = ConfigValue(default=False, env_var="UPOF_TEST_FLAG")
        monkeypatch.setenv("UPOF_TEST_FLAG", raw)
        assert value.get() is expected

    def test_bad_int_env(self, monkeypatch):
        value = ConfigValue(default=1, env_var="UPOF_TEST_INT")
        monkeypatch.setenv("UPOF_TEST_INT", "many")
        with pytest.raises(ConfigError):
            value.get()

    def test_change_callback(self):
        seen = []
        value = ConfigValue(default="a")
        value.on_change(lambda old, new: seen.append((old, new)))
        value.set("b")
        assert seen == [(None, "b")]


class TestConfigManager:
    """Tests for the configuration manager singleton."""

    def test_singleton(self):
        assert ConfigManager() is get_config_manager()
        assert get_config() is get_config_manager().config

    def test_defaults(self):
        manager = get_config_manager()
        assert manager.get("domain.name") == "ProofOfFundsVault"
        assert manager.get("domain.version") == "1"
        assert manager.get("domain.chain_id") == 31337
        assert manager.get("vault.soulbound_default") is False
        assert manager.get("observability.log_format") == "json"

    def test_set_by_path(self):
        manager = get_config_manager()
        manager.set("domain.chain_id", 8453)
        assert manager.get("domain.chain_id") == 8453

    def test_invalid_path(self):
        manager = get_config_manager()
        with pytest.raises(ConfigError):
            manager.get("domain.nope")
        with pytest.raises(ConfigError):
            manager.set("nope.value", 1)

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "upof.yaml"
        path.write_text(
            "domain:\n"
            "  name: StagingVault\n"
            "  chain_id: 11155111\n"
            "vault:\n"
            "  soulbound_default: true\n"
            "unknown_section:\n"
            "  ignored: 1\n"
        )
        manager = get_config_manager()
        manager.load_from_file(path)
        assert manager.get("domain.name") == "StagingVault"
        assert manager.get("domain.chain_id") == 11155111
        assert manager.get("vault.soulbound_default") is True
        assert manager.get("domain.version") == "1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("domain: [unclosed\n")
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_file_value_rejected_by_validator(self, tmp_path):
        path = tmp_path / "upof.yaml"
        path.write_text("domain:\n  chain_id: 0\n")
        with pytest.raises(ConfigValidationError):
            get_config_manager().load_from_file(path)

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "upof.yaml"
        path.write_text("domain:\n  chain_id: 10\n")
        manager = get_config_manager()
        manager.load_from_file(path)
        monkeypatch.setenv("UPOF_CHAIN_ID", "8453")
        assert manager.get("domain.chain_id") == 8453

    def test_reload(self, tmp_path):
        path = tmp_path / "upof.yaml"
        path.write_text("domain:\n  chain_id: 10\n")
        manager = get_config_manager()
        manager.load_from_file(path)
        path.write_text("domain:\n  chain_id: 20\n")
        manager.reload()
        assert manager.get("domain.chain_id") == 20

    def test_validate(self, monkeypatch):
        manager = get_config_manager()
        assert manager.validate() == []
        monkeypatch.setenv("UPOF_LOG_FORMAT", "xml")
        monkeypatch.setenv("UPOF_CHAIN_ID", "abc")
        errors = manager.validate()
        assert any(e.startswith("observability.log_format") for e in errors)
        assert any(e.startswith("domain.chain_id") for e in errors)

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        chain_id = schema["properties"]["domain"]["chain_id"]
        assert chain_id["type"] == "int"
        assert chain_id["env_var"] == "UPOF_CHAIN_ID"
        assert chain_id["default"] == "31337"

    def test_to_yaml(self):
        text = get_config().to_yaml()
        assert "chain_id: 31337" in text

    def test_reset_instance(self):
        manager = get_config_manager()
        manager.set("domain.chain_id", 99)
        ConfigManager.reset_instance()
        assert get_config_manager().get("domain.chain_id") == 31337
