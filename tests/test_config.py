"""Tests for settings loading."""

import pytest

from payback.config import Settings, load_settings
from payback.exceptions import ConfigurationError


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = Settings(database_path=tmp_path / "data" / "payback.db")

        assert settings.reconcile_cooldown_seconds == 300
        assert settings.link_failure_retention_seconds == 3600
        assert settings.max_link_retries == 5
        assert settings.current_user_name == "Me"
        assert settings.convex_url is None

    def test_creates_database_directory(self, tmp_path):
        settings = Settings(database_path=tmp_path / "nested" / "payback.db")

        assert settings.database_path.parent.is_dir()

    def test_reads_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PAYBACK_DATABASE_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("PAYBACK_MAX_LINK_RETRIES", "7")
        monkeypatch.setenv("PAYBACK_CONVEX_URL", "https://example.convex.cloud")

        settings = load_settings()

        assert settings.max_link_retries == 7
        assert settings.convex_url == "https://example.convex.cloud"

    def test_invalid_value_raises_configuration_error(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PAYBACK_DATABASE_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("PAYBACK_MAX_LINK_RETRIES", "many")

        with pytest.raises(ConfigurationError):
            load_settings()
