"""
Конфигурация процесса из переменных окружения
"""
import os
from typing import Any, Dict, Optional
from dotenv import load_dotenv

# Загружаем переменные окружения
load_dotenv()


def load_app_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Собирает конфигурацию сервиса

    Args:
        overrides: Параметры, перекрывающие значения из окружения

    Returns:
        Словарь конфигурации
    """
    config = {
        'db_path': os.getenv("DIARIA_DB_PATH", "data/diaria.db"),
        'build_timeout_seconds': float(os.getenv("BUILD_TIMEOUT_SECONDS", "600")),
        'embed_workers': int(os.getenv("EMBED_WORKERS", "4")),
        'chat_context_limit': int(os.getenv("CHAT_CONTEXT_LIMIT", "5")),
        'chat_history_limit': int(os.getenv("CHAT_HISTORY_LIMIT", "20")),
        'provider_timeout_seconds': float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "300")),
        'host': os.getenv("HOST", "0.0.0.0"),
        'port': int(os.getenv("PORT", "8000")),
    }

    if overrides:
        config.update(overrides)

    return config
