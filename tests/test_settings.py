"""Tests for layered settings and logging configuration."""

from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from transync.settings import SettingsManager, SyncSettings, configure_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in (
        "TRANSYNC_ENV", "TRANSYNC_API_URL", "TRANSYNC_LOG_LEVEL",
        "TRANSYNC_POLL_INTERVAL", "TRANSYNC_AUTO_DOWNLOAD", "TRANSYNC_MERGE_STRATEGY",
        "TRANSYNC_CHECK_ON_START", "TRANSYNC_MAX_RECONNECT_ATTEMPTS",
    ):
        monkeypatch.delenv(key, raising=False)


# ── SettingsManager ──────────────────────────────────────────────────────────


class TestSettingsManager:
    def test_generate_env_template(self, tmp_path):
        path = SettingsManager().generate_env_template(tmp_path)
        assert path.name == ".env.example"
        content = path.read_text(encoding="utf-8")
        assert "TRANSYNC_API_URL=" in content
        assert "TRANSYNC_MERGE_STRATEGY=ask" in content

    def test_defaults_use_development_profile(self, tmp_path):
        config = SettingsManager().load_config(tmp_path)
        assert config["TRANSYNC_ENV"] == "development"
        assert config["TRANSYNC_LOG_LEVEL"] == "DEBUG"
        assert config["TRANSYNC_CHECK_ON_START"] == "true"

    def test_profile_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRANSYNC_ENV", "testing")
        settings = SettingsManager().load_settings(tmp_path)
        assert settings.env == "testing"
        assert settings.check_on_start is False
        assert settings.poll_interval == 0.05

    def test_config_json_layer(self, tmp_path):
        config_dir = tmp_path / ".transync"
        config_dir.mkdir()
        (config_dir / "config.json").write_text(
            json.dumps({"TRANSYNC_AUTO_DOWNLOAD": True, "TRANSYNC_API_URL": "https://a.example/"}),
            encoding="utf-8",
        )
        settings = SettingsManager().load_settings(tmp_path)
        assert settings.auto_download is True
        assert settings.api_url == "https://a.example"

    def test_dotenv_overrides_config_json(self, tmp_path):
        SettingsManager().save_config(tmp_path, {"TRANSYNC_LOG_LEVEL": "ERROR"})
        (tmp_path / ".env").write_text(
            "# local overrides\nTRANSYNC_LOG_LEVEL='warning'\nnot a setting\n",
            encoding="utf-8",
        )
        config = SettingsManager().load_config(tmp_path)
        assert config["TRANSYNC_LOG_LEVEL"] == "warning"
        assert SyncSettings.from_config(config).log_level == "WARNING"

    def test_environment_overrides_everything(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("TRANSYNC_API_URL=https://env-file.example\n", encoding="utf-8")
        monkeypatch.setenv("TRANSYNC_API_URL", "https://shell.example")
        assert SettingsManager().load_settings(tmp_path).api_url == "https://shell.example"

    def test_unreadable_config_json_ignored(self, tmp_path):
        config_dir = tmp_path / ".transync"
        config_dir.mkdir()
        (config_dir / "config.json").write_text("{broken", encoding="utf-8")
        assert SettingsManager().load_config(tmp_path)["TRANSYNC_ENV"] == "development"

    def test_save_config_merges(self, tmp_path):
        mgr = SettingsManager()
        mgr.save_config(tmp_path, {"TRANSYNC_AUTO_DOWNLOAD": True})
        path = mgr.save_config(tmp_path, {"TRANSYNC_MERGE_STRATEGY": "keep_local"})
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"TRANSYNC_AUTO_DOWNLOAD": "true", "TRANSYNC_MERGE_STRATEGY": "keep_local"}

    def test_save_config_rejects_unknown_keys(self, tmp_path):
        with pytest.raises(KeyError):
            SettingsManager().save_config(tmp_path, {"NOPE": 1})
        assert not (tmp_path / ".transync").exists()


# ── SyncSettings ─────────────────────────────────────────────────────────────


class TestSyncSettings:
    def test_log_level_normalized(self):
        assert SyncSettings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            SyncSettings(log_level="chatty")

    def test_unknown_merge_strategy(self):
        with pytest.raises(ValidationError):
            SyncSettings(merge_strategy="coin_flip")

    def test_poll_interval_positive(self):
        with pytest.raises(ValidationError):
            SyncSettings(poll_interval=0)

    def test_configure_logging(self):
        logger = logging.getLogger("transync")
        previous = logger.level
        try:
            configure_logging(SyncSettings(log_level="error"))
            assert logger.level == logging.ERROR
        finally:
            logger.setLevel(previous)
