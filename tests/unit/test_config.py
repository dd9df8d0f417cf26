"""Test Settings loading from defaults, TOML files and the environment."""

from pathlib import Path

import pytest

from membership_sync.core.config import Settings, load_settings
from membership_sync.core.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "MEMBERSHIP_EVENT_LOG_PATH",
        "MEMBERSHIP_CARD_NUMBER_META_KEY",
        "MEMBERSHIP_OBSERVABILITY__LOG_LEVEL",
        "MEMBERSHIP_OBSERVABILITY__LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestSettingsDefaults:
    def test_default_settings(self):
        settings = Settings()
        assert settings.event_log_path == "data/events.jsonl"
        assert settings.card_number_meta_key == "access_card_number"
        assert settings.observability.log_level == "INFO"
        assert settings.observability.log_format == "json"


class TestEnvironment:
    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MEMBERSHIP_CARD_NUMBER_META_KEY", "badge_number")
        assert Settings().card_number_meta_key == "badge_number"

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("MEMBERSHIP_OBSERVABILITY__LOG_LEVEL", "DEBUG")
        assert Settings().observability.log_level == "DEBUG"

    def test_env_fills_fields_file_leaves_unset(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("MEMBERSHIP_EVENT_LOG_PATH", "/var/lib/membership/events.jsonl")
        path = tmp_path / "membership.toml"
        path.write_text('card_number_meta_key = "badge"\n')
        settings = load_settings(path)
        assert settings.event_log_path == "/var/lib/membership/events.jsonl"
        assert settings.card_number_meta_key == "badge"


class TestLoadSettings:
    def test_no_file(self):
        assert load_settings(None).card_number_meta_key == "access_card_number"

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        settings = load_settings(tmp_path / "absent.toml")
        assert settings.event_log_path == "data/events.jsonl"

    def test_toml_file(self, tmp_path: Path):
        path = tmp_path / "membership.toml"
        path.write_text(
            'event_log_path = "/tmp/events.jsonl"\n'
            "\n"
            "[observability]\n"
            'log_format = "console"\n'
        )
        settings = load_settings(path)
        assert settings.event_log_path == "/tmp/events.jsonl"
        assert settings.observability.log_format == "console"

    def test_overrides_win_over_file(self, tmp_path: Path):
        path = tmp_path / "membership.toml"
        path.write_text('event_log_path = "/tmp/a.jsonl"\n')
        settings = load_settings(path, overrides={"event_log_path": "/tmp/b.jsonl"})
        assert settings.event_log_path == "/tmp/b.jsonl"

    def test_invalid_toml(self, tmp_path: Path):
        path = tmp_path / "membership.toml"
        path.write_text("event_log_path = \n")
        with pytest.raises(ConfigError, match="Invalid config file"):
            load_settings(path)

    def test_invalid_log_format(self):
        with pytest.raises(ValueError):
            Settings(observability={"log_format": "xml"})
