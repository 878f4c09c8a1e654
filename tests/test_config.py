"""Tests for layered configuration."""

import pytest

from setzkasten.config import (
    CONFIG_RELATIVE_PATH,
    ConfigError,
    ConfigValue,
    SetzkastenConfig,
    load_config,
)

ENV_VARS = (
    "SETZKASTEN_LOG_LEVEL",
    "SETZKASTEN_ACTOR",
    "SETZKASTEN_POLICY_FAIL_ON",
    "SETZKASTEN_SCAN_MAX_MATCHED_PATHS",
    "SETZKASTEN_SCAN_MAX_DISCOVERED_FILES",
    "SETZKASTEN_EVENT_LOG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestConfigValue:
    """Single values."""

    def test_default(self):
        assert ConfigValue(default=3).get() == 3

    def test_set_coerces_strings(self):
        value = ConfigValue(default=3)
        value.set("7")
        assert value.get() == 7

    def test_bool_coercion(self, monkeypatch):
        value = ConfigValue(default=False, env_var="SETZKASTEN_TEST_FLAG")
        monkeypatch.setenv("SETZKASTEN_TEST_FLAG", "yes")
        assert value.get() is True

    def test_bad_integer(self):
        with pytest.raises(ConfigError):
            ConfigValue(default=3).set("three")

    def test_validator(self):
        value = ConfigValue(default=1, validator=lambda x: x > 0)
        with pytest.raises(ConfigError):
            value.set(0)


class TestSetzkastenConfig:
    """The root configuration."""

    def test_defaults(self):
        config = SetzkastenConfig()
        assert config.to_dict() == {
            "log_level": "WARNING",
            "actor": "local_user",
            "policy": {"fail_on": "escalate"},
            "scan": {"max_matched_paths": 30, "max_discovered_files": 200},
            "events": {"log_path": ".setzkasten/events.log"},
        }
        assert config.validate() == []

    def test_dotted_get_and_set(self):
        config = SetzkastenConfig()
        config.set("scan.max_matched_paths", 5)
        assert config.get("scan.max_matched_paths") == 5
        config.set("policy.fail_on", "warn")
        assert config.policy.fail_on.get() == "warn"

    def test_invalid_path(self):
        config = SetzkastenConfig()
        with pytest.raises(ConfigError):
            config.get("scan.nope")
        with pytest.raises(ConfigError):
            config.set("scan", 1)

    def test_invalid_choice(self):
        with pytest.raises(ConfigError):
            SetzkastenConfig().set("policy.fail_on", "always")

    def test_env_overrides_runtime(self, monkeypatch):
        config = SetzkastenConfig()
        config.set("actor", "alice")
        monkeypatch.setenv("SETZKASTEN_ACTOR", "ci-bot")
        assert config.get("actor") == "ci-bot"

    def test_apply_dict_ignores_unknown_keys(self):
        config = SetzkastenConfig()
        config.apply_dict({"scan": {"max_discovered_files": 10}, "colour": "red"})
        assert config.get("scan.max_discovered_files") == 10


class TestLoadConfig:
    """Files and environment."""

    def test_project_file(self, tmp_path):
        path = tmp_path / CONFIG_RELATIVE_PATH
        path.parent.mkdir()
        path.write_text("policy:\n  fail_on: never\nactor: build\n", encoding="utf-8")
        config = load_config(tmp_path)
        assert config.get("policy.fail_on") == "never"
        assert config.get("actor") == "build"

    def test_missing_project_file_uses_defaults(self, tmp_path):
        assert load_config(tmp_path).get("policy.fail_on") == "escalate"

    def test_explicit_file_must_exist(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path, tmp_path / "missing.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(config_path=path).get("actor") == "local_user"

    @pytest.mark.parametrize("text", ["- a\n- b\n", "scan: [unclosed\n"])
    def test_malformed_file(self, tmp_path, text):
        path = tmp_path / "c.yaml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(config_path=path)

    def test_invalid_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SETZKASTEN_LOG_LEVEL", "LOUD")
        with pytest.raises(ConfigError, match="log_level"):
            load_config(tmp_path)

    def test_environment_integer(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SETZKASTEN_SCAN_MAX_MATCHED_PATHS", "4")
        assert load_config(tmp_path).get("scan.max_matched_paths") == 4
