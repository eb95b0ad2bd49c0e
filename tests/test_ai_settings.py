"""
Тесты AI настроек владельца
"""
import sqlite3

import pytest

from diaria.config.ai_settings import AISettings, AISettingsStore, KEY_API_KEY, KEY_ENABLED
from diaria.config.app_config import load_app_config
from diaria.errors import ConfigurationMissing


@pytest.fixture
def settings_store(temp_db):
    return AISettingsStore(temp_db)


class TestAISettings:
    """Тесты для AISettings"""

    def test_require_lists_blank_fields(self):
        settings = AISettings(api_key="k", base_url="  ")

        with pytest.raises(ConfigurationMissing) as exc_info:
            settings.require_chat()

        assert exc_info.value.fields == ["base_url", "chat_model"]

    def test_require_embedding_ignores_chat_model(self):
        AISettings(api_key="k", base_url="http://x", embedding_model="e").require_embedding()


class TestAISettingsStore:
    """Тесты для AISettingsStore"""

    @pytest.mark.asyncio
    async def test_defaults_for_new_owner(self, settings_store):
        settings = await settings_store.get_ai_settings("nobody")
        assert settings == AISettings()

    @pytest.mark.asyncio
    async def test_save_and_load(self, settings_store):
        saved = AISettings(
            api_key="sk-1", base_url="http://x", chat_model="c", embedding_model="e", enabled=True
        )
        await settings_store.save_ai_settings("owner-1", saved)

        assert await settings_store.get_ai_settings("owner-1") == saved
        assert await settings_store.get_ai_settings("owner-2") == AISettings()

        raw = settings_store.get_raw("owner-1")
        assert raw[KEY_API_KEY] == "sk-1"
        assert raw[KEY_ENABLED] is True

    @pytest.mark.asyncio
    async def test_enable_requires_all_fields(self, settings_store):
        with pytest.raises(ConfigurationMissing) as exc_info:
            await settings_store.save_ai_settings(
                "owner-1", AISettings(api_key="sk-1", base_url="http://x", enabled=True)
            )

        assert exc_info.value.fields == ["chat_model", "embedding_model"]
        assert settings_store.get_raw("owner-1") == {}

        # Без включения можно сохранять частичные настройки
        await settings_store.save_ai_settings("owner-1", AISettings(api_key="sk-1"))
        assert (await settings_store.get_ai_settings("owner-1")).api_key == "sk-1"

    @pytest.mark.asyncio
    async def test_loosely_typed_values(self, settings_store, temp_db):
        """Значения, записанные без JSON, читаются как есть"""
        with sqlite3.connect(temp_db) as conn:
            conn.execute(
                "INSERT INTO user_settings (owner, key, value) VALUES (?, ?, ?)",
                ("owner-1", KEY_ENABLED, "true")
            )
            conn.execute(
                "INSERT INTO user_settings (owner, key, value) VALUES (?, ?, ?)",
                ("owner-1", KEY_API_KEY, "42")
            )
            conn.commit()

        settings = await settings_store.get_ai_settings("owner-1")
        assert settings.enabled is True
        # Нестроковое значение ключа не принимается
        assert settings.api_key == ""


class TestAppConfig:
    """Тесты конфигурации процесса"""

    def test_env_and_overrides(self, monkeypatch):
        monkeypatch.setenv("EMBED_WORKERS", "8")
        monkeypatch.setenv("BUILD_TIMEOUT_SECONDS", "30")

        config = load_app_config({'db_path': "/tmp/x.db"})

        assert config['embed_workers'] == 8
        assert config['build_timeout_seconds'] == 30.0
        assert config['db_path'] == "/tmp/x.db"
        assert config['chat_history_limit'] == 20
