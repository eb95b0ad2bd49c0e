#!/usr/bin/env python3
"""
Главный файл запуска AI API дневника
"""
import uvicorn

from utils.logger import app_logger
from diaria.config.app_config import load_app_config


def main():
    """Основная функция запуска"""
    config = load_app_config()

    app_logger.info("🚀 Запуск AI API дневника")
    app_logger.info(f"База данных: {config['db_path']}")
    app_logger.info(
        f"Таймаут построения индекса: {config['build_timeout_seconds']}s, "
        f"воркеров эмбеддингов: {config['embed_workers']}"
    )

    try:
        uvicorn.run(
            "diaria.api.main:app",
            host=config['host'],
            port=config['port'],
            log_level="info"
        )
    except KeyboardInterrupt:
        app_logger.info("Получен сигнал остановки")
    finally:
        app_logger.info("AI API дневника остановлен")


if __name__ == "__main__":
    main()
