"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from procurement_bot.config import ConfigError, load_config


@pytest.fixture
def base_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setenv("OPENAI_API_KEY", "key")
    for name in ("OPENAI_MODEL", "CURRENCY", "SUPPLIER_SEED", "ADMIN_USER_IDS"):
        monkeypatch.setenv(name, "")
    return monkeypatch


@pytest.mark.unit
class TestLoadConfig:
    def test_defaults(self, base_env: pytest.MonkeyPatch) -> None:
        config = load_config()

        assert config.openai_model == "gpt-4.1-mini"
        assert config.currency == "₽"
        assert config.supplier_seed is None
        assert config.admin_user_ids == frozenset()

    def test_missing_token(self, base_env: pytest.MonkeyPatch) -> None:
        base_env.setenv("TELEGRAM_BOT_TOKEN", "")

        with pytest.raises(ConfigError, match="TELEGRAM_BOT_TOKEN"):
            load_config()

    def test_seed_and_admins(self, base_env: pytest.MonkeyPatch) -> None:
        base_env.setenv("SUPPLIER_SEED", "42")
        base_env.setenv("ADMIN_USER_IDS", "1, 2;3")

        config = load_config()

        assert config.supplier_seed == 42
        assert config.admin_user_ids == frozenset({1, 2, 3})

    @pytest.mark.parametrize(("name", "value"), [("SUPPLIER_SEED", "abc"), ("ADMIN_USER_IDS", "1,x")])
    def test_bad_integers(self, base_env: pytest.MonkeyPatch, name: str, value: str) -> None:
        base_env.setenv(name, value)

        with pytest.raises(ConfigError):
            load_config()
