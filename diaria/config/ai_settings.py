"""
Типизированные AI настройки владельца дневника
"""
import json
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List
from utils.logger import app_logger
from diaria.errors import ConfigurationMissing


KEY_API_KEY = "ai.api_key"
KEY_BASE_URL = "ai.base_url"
KEY_CHAT_MODEL = "ai.chat_model"
KEY_EMBEDDING_MODEL = "ai.embedding_model"
KEY_ENABLED = "ai.enabled"

AI_SETTING_KEYS = (KEY_API_KEY, KEY_BASE_URL, KEY_CHAT_MODEL, KEY_EMBEDDING_MODEL, KEY_ENABLED)

# Ключи, значения которых нельзя писать в логи
ENCRYPTED_KEYS = {KEY_API_KEY}


@dataclass
class AISettings:
    """AI настройки одного владельца"""
    api_key: str = ""
    base_url: str = ""
    chat_model: str = ""
    embedding_model: str = ""
    enabled: bool = False

    def blank_fields(self, *names: str) -> List[str]:
        """Возвращает список пустых полей из перечисленных"""
        return [name for name in names if not str(getattr(self, name) or "").strip()]

    def require(self, *names: str) -> None:
        """
        Проверяет, что перечисленные поля заполнены

        Raises:
            ConfigurationMissing: если хотя бы одно поле пустое
        """
        missing = self.blank_fields(*names)
        if missing:
            raise ConfigurationMissing(missing)

    def require_chat(self) -> None:
        self.require("api_key", "base_url", "chat_model")

    def require_embedding(self) -> None:
        self.require("api_key", "base_url", "embedding_model")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'api_key': self.api_key,
            'base_url': self.base_url,
            'chat_model': self.chat_model,
            'embedding_model': self.embedding_model,
            'enabled': self.enabled,
        }


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


class AISettingsProvider:
    """
    Интерфейс доступа к AI настройкам владельца

    Внедряется в индексатор, поиск и оркестратор чата.
    """

    async def get_ai_settings(self, owner: str) -> AISettings:
        raise NotImplementedError


class StaticAISettingsProvider(AISettingsProvider):
    """Одинаковые настройки для всех владельцев (CLI, тесты)"""

    def __init__(self, settings: AISettings):
        self.settings = settings

    async def get_ai_settings(self, owner: str) -> AISettings:
        return self.settings


class AISettingsStore(AISettingsProvider):
    """
    Хранилище пользовательских настроек в SQLite (key/value на владельца)
    """

    def __init__(self, db_path: str = "data/diaria.db"):
        """
        Инициализация хранилища настроек

        Args:
            db_path: Путь к базе данных SQLite
        """
        self.db_path = db_path

        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_database()

    def _init_database(self):
        """Инициализирует таблицу настроек"""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_settings (
                    owner TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT,
                    encrypted INTEGER DEFAULT 0,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (owner, key)
                )
            """)
            conn.commit()

    def get_raw(self, owner: str) -> Dict[str, Any]:
        """
        Читает все значения настроек владельца

        Args:
            owner: ID владельца

        Returns:
            Словарь key -> значение (декодированный JSON)
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "SELECT key, value FROM user_settings WHERE owner = ?", (owner,)
            )
            rows = cursor.fetchall()

        result = {}
        for key, value in rows:
            try:
                result[key] = json.loads(value) if value is not None else None
            except ValueError:
                # Старые записи могли храниться без JSON-кодирования
                result[key] = value
        return result

    async def get_ai_settings(self, owner: str) -> AISettings:
        raw = self.get_raw(owner)

        def text(key: str) -> str:
            value = raw.get(key)
            return value if isinstance(value, str) else ""

        return AISettings(
            api_key=text(KEY_API_KEY),
            base_url=text(KEY_BASE_URL),
            chat_model=text(KEY_CHAT_MODEL),
            embedding_model=text(KEY_EMBEDDING_MODEL),
            enabled=_parse_bool(raw.get(KEY_ENABLED)),
        )

    async def save_ai_settings(self, owner: str, settings: AISettings) -> None:
        """
        Сохраняет AI настройки одной транзакцией

        Args:
            owner: ID владельца
            settings: Новые настройки

        Raises:
            ConfigurationMissing: если включение AI запрошено при незаполненных полях
        """
        if settings.enabled:
            settings.require("api_key", "base_url", "chat_model", "embedding_model")

        values = {
            KEY_API_KEY: settings.api_key,
            KEY_BASE_URL: settings.base_url,
            KEY_CHAT_MODEL: settings.chat_model,
            KEY_EMBEDDING_MODEL: settings.embedding_model,
            KEY_ENABLED: settings.enabled,
        }
        now = datetime.now().isoformat()

        with sqlite3.connect(self.db_path) as conn:
            conn.executemany("""
                INSERT OR REPLACE INTO user_settings (owner, key, value, encrypted, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, [
                (owner, key, json.dumps(value), int(key in ENCRYPTED_KEYS), now)
                for key, value in values.items()
            ])
            conn.commit()

        app_logger.info(
            f"AI настройки владельца {owner} сохранены "
            f"(base_url={settings.base_url}, chat_model={settings.chat_model}, "
            f"embedding_model={settings.embedding_model}, enabled={settings.enabled})"
        )
