"""
Модуль настройки логирования AI-модуля дневника
"""
import os
from loguru import logger
from dotenv import load_dotenv

load_dotenv()

def setup_logger():
    """Настройка системы логирования"""

    # Получаем уровень логирования из переменных окружения
    log_level = os.getenv("LOG_LEVEL", "INFO")
    debug = os.getenv("DEBUG", "False").lower() == "true"
    log_dir = os.getenv("LOG_DIR", "logs")

    # Удаляем стандартный обработчик loguru
    logger.remove()

    # Настраиваем вывод в консоль
    if debug:
        logger.add(
            sink=lambda msg: print(msg, end=""),
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            level=log_level,
            colorize=True
        )
    else:
        logger.add(
            sink=lambda msg: print(msg, end=""),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level=log_level,
            colorize=False
        )

    # Основной лог сервиса
    logger.add(
        os.path.join(log_dir, "diaria.log"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level=log_level,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8"
    )

    # Отдельный файл для ошибок
    logger.add(
        os.path.join(log_dir, "errors.log"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="ERROR",
        rotation="5 MB",
        retention="60 days",
        compression="zip",
        encoding="utf-8"
    )

    # Отдельный файл для диалогов с ассистентом
    logger.add(
        os.path.join(log_dir, "chat.log"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {extra[owner]} | {extra[role]} | {message}",
        filter=lambda record: "chat" in record["extra"],
        rotation="50 MB",
        retention="90 days",
        compression="zip",
        encoding="utf-8"
    )

    logger.info("Система логирования инициализирована")
    return logger

def log_chat(owner: str, role: str, message: str):
    """
    Логирование сообщений диалога с ассистентом

    Args:
        owner: ID владельца дневника
        role: Роль автора (user, assistant)
        message: Текст сообщения
    """
    logger.bind(chat=True, owner=owner, role=role).info(message)

# Создаем экземпляр логгера для использования в других модулях
app_logger = setup_logger()
