"""Tests for environment settings and the per-invocation pipeline config."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from dokuforge.config import ForgeSettings
from dokuforge.models.config import PipelineConfig


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Keep stray DOKUFORGE_* variables and .env files out of the tests."""
    monkeypatch.chdir(tmp_path)
    for var in ("ROOT", "CERTIFIER", "VALIDITY", "STRICT", "TOKEN_WARN_AT", "LOG_LEVEL"):
        monkeypatch.delenv(f"DOKUFORGE_{var}", raising=False)


class TestForgeSettings:
    def test_defaults(self):
        settings = ForgeSettings()
        assert settings.root == Path(".dokuforge")
        assert settings.validity == "6m"
        assert settings.strict is False
        assert settings.token_warn_at == 4_000

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DOKUFORGE_ROOT", "/srv/forge")
        monkeypatch.setenv("DOKUFORGE_CERTIFIER", "release-bot")
        monkeypatch.setenv("DOKUFORGE_STRICT", "true")
        monkeypatch.setenv("DOKUFORGE_TOKEN_WARN_AT", "1200")
        settings = ForgeSettings()
        assert settings.root == Path("/srv/forge")
        assert settings.certifier == "release-bot"
        assert settings.strict is True
        assert settings.token_warn_at == 1200

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("DOKUFORGE_VALIDITY=2w\n", encoding="utf-8")
        assert ForgeSettings().validity == "2w"


class TestPipelineConfig:
    def test_from_settings_copies_values(self, monkeypatch):
        monkeypatch.setenv("DOKUFORGE_CERTIFIER", "cora")
        config = PipelineConfig.from_settings(ForgeSettings())
        assert config.certifier == "cora"
        assert config.doctor is False

    def test_none_overrides_fall_through(self, monkeypatch):
        monkeypatch.setenv("DOKUFORGE_VALIDITY", "1y")
        config = PipelineConfig.from_settings(ForgeSettings(), validity=None, doctor=True)
        assert config.validity == "1y"
        assert config.doctor is True

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("DOKUFORGE_STRICT", "false")
        config = PipelineConfig.from_settings(ForgeSettings(), strict=True)
        assert config.strict is True

    def test_config_is_frozen(self):
        config = PipelineConfig()
        with pytest.raises(ValidationError):
            config.strict = True  # type: ignore[misc]
