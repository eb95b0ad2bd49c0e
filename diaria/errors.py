"""
Исключения AI-модуля дневника (индексация, поиск, чат)
"""
import asyncio
from typing import List, Optional, Sequence


class DiariaError(Exception):
    """Базовое исключение AI-модуля"""
    pass


class ConfigurationMissing(DiariaError):
    """
    Не заполнены обязательные AI настройки владельца

    Raised when:
    - api_key, base_url или модель пустые
    """

    def __init__(self, fields: Sequence[str]):
        self.fields = list(fields)
        super().__init__(f"AI settings not configured: {', '.join(self.fields)}")


class InvalidQuery(DiariaError):
    """Пустой поисковый запрос или некорректный лимит"""
    pass


class BuildInProgress(DiariaError):
    """Для владельца уже выполняется построение индекса"""

    def __init__(self, owner: str):
        self.owner = owner
        super().__init__(f"vector build already in progress for owner {owner}")


class UpstreamUnavailable(DiariaError):
    """Провайдер недоступен (ошибка транспорта, таймаут соединения)"""
    pass


class UpstreamBadStatus(DiariaError):
    """Провайдер вернул не-2xx статус"""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API returned status {status_code}: {body[:500]}")


class DecodeError(DiariaError):
    """Некорректный JSON в ответе провайдера"""
    pass


class StreamInterrupted(DiariaError):
    """
    Чтение потока ответа оборвалось на середине

    Содержит накопленный к моменту обрыва текст, чтобы вызывающий код
    мог решить, сохранять ли частичный ответ.
    """

    def __init__(self, message: str, partial_text: str = "",
                 referenced_entry_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.partial_text = partial_text
        self.referenced_entry_ids = referenced_entry_ids or []


class DeadlineExceeded(DiariaError):
    """Построение индекса не уложилось в отведенное время"""

    def __init__(self, partial):
        self.partial = partial
        super().__init__(f"vector build deadline exceeded: {partial.to_dict()}")


class VectorDimensionMismatch(DiariaError):
    """Размерность вектора отличается от уже сохраненных для этой модели"""

    def __init__(self, model_id: str, expected: int, actual: int):
        self.model_id = model_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"embedding dimension {actual} does not match {expected} for model {model_id}"
        )


class StreamCancelled(asyncio.CancelledError):
    """
    Стриминг чата отменен

    Остается CancelledError, поэтому задача завершается как отмененная,
    но код в той же задаче может забрать частичный ответ.
    """

    def __init__(self, partial_text: str = "",
                 referenced_entry_ids: Optional[List[str]] = None):
        super().__init__("chat stream cancelled")
        self.partial_text = partial_text
        self.referenced_entry_ids = referenced_entry_ids or []
