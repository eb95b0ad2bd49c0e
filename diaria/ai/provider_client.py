"""
Клиент OpenAI-совместимого провайдера: модели, эмбеддинги, стриминг чата
"""
import asyncio
from dataclasses import dataclass, asdict
from typing import AsyncIterator, Dict, List, Optional
import aiohttp
import openai
from utils.logger import app_logger
from diaria.errors import DecodeError, StreamInterrupted, UpstreamBadStatus, UpstreamUnavailable


@dataclass
class ModelInfo:
    """Модель из ответа /v1/models"""
    id: str
    object: str = "model"
    created: Optional[int] = None
    owned_by: Optional[str] = None

    def to_dict(self) -> Dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


class ProviderClient:
    """
    Тонкий адаптер к OpenAI-совместимому API

    Состояния не хранит: адрес, ключ и модель передаются в каждый вызов,
    так как у каждого владельца дневника свои настройки.
    """

    def __init__(self, timeout_seconds: float = 300, max_retries: int = 0):
        """
        Инициализация клиента провайдера

        Args:
            timeout_seconds: Общий таймаут одного запроса (для стрима чата только таймаут соединения)
            max_retries: Повторы запросов эмбеддингов внутри SDK
        """
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries

    @staticmethod
    def normalize_base_url(base_url: str) -> str:
        return base_url.strip().rstrip('/')

    @staticmethod
    def _headers(api_key: str, accept: str = "application/json") -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {api_key}",
            'Content-Type': 'application/json',
            'Accept': accept,
        }

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout_seconds)

    def _stream_timeout(self) -> aiohttp.ClientTimeout:
        # Длительность стрима ограничивает только отмена вызывающей стороной
        return aiohttp.ClientTimeout(total=None, sock_connect=self.timeout_seconds)

    async def list_models(self, base_url: str, api_key: str) -> List[ModelInfo]:
        """
        Получает список моделей провайдера

        Args:
            base_url: Адрес API (без /v1)
            api_key: Ключ API

        Returns:
            Список моделей в порядке ответа провайдера
        """
        url = f"{self.normalize_base_url(base_url)}/v1/models"
        app_logger.debug(f"Запрос списка моделей: {url}")

        try:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.get(url, headers=self._headers(api_key)) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise UpstreamBadStatus(response.status, body)

                    try:
                        payload = await response.json(content_type=None)
                    except ValueError as e:
                        raise DecodeError(f"failed to decode models response: {e}") from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailable(f"failed to send request: {e}") from e

        data = payload.get('data') if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise DecodeError("models response has no data list")

        models = []
        for item in data:
            if not isinstance(item, dict) or not item.get('id'):
                continue
            models.append(ModelInfo(
                id=str(item['id']),
                object=item.get('object') or "model",
                created=item.get('created'),
                owned_by=item.get('owned_by'),
            ))

        app_logger.info(f"Получено {len(models)} моделей от {base_url}")
        return models

    async def embed(self, base_url: str, api_key: str, model: str, text: str) -> List[float]:
        """
        Генерирует эмбеддинг для текста через OpenAI SDK

        Args:
            base_url: Адрес API (без /v1)
            api_key: Ключ API
            model: Модель эмбеддингов
            text: Текст для векторизации

        Returns:
            Вектор эмбеддинга
        """
        client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=f"{self.normalize_base_url(base_url)}/v1",
            timeout=self.timeout_seconds,
            max_retries=self.max_retries,
        )
        try:
            response = await client.embeddings.create(
                model=model,
                input=text.replace('\n', ' '),
                encoding_format="float",
            )
        except openai.APIStatusError as e:
            raise UpstreamBadStatus(e.status_code, e.response.text) from e
        except openai.APIConnectionError as e:
            raise UpstreamUnavailable(f"embedding request failed: {e}") from e
        except (openai.APIResponseValidationError, ValueError) as e:
            raise DecodeError(f"failed to decode embedding response: {e}") from e
        finally:
            await client.close()

        if not response.data or not response.data[0].embedding:
            raise DecodeError("embedding response has no vectors")

        embedding = [float(value) for value in response.data[0].embedding]
        app_logger.debug(f"Сгенерирован эмбеддинг для текста: {text[:50]}...")
        return embedding

    async def chat_stream(self, base_url: str, api_key: str, model: str,
                          messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """
        Открывает стриминг chat completion и отдает строки ответа

        Закрытие или отмена итератора закрывает соединение.

        Args:
            base_url: Адрес API (без /v1)
            api_key: Ключ API
            model: Модель чата
            messages: Список сообщений {role, content}

        Yields:
            Строки SSE потока без перевода строки
        """
        url = f"{self.normalize_base_url(base_url)}/v1/chat/completions"
        payload = {
            'model': model,
            'messages': messages,
            'stream': True,
        }

        try:
            async with aiohttp.ClientSession(timeout=self._stream_timeout()) as session:
                async with session.post(
                    url,
                    json=payload,
                    headers=self._headers(api_key, accept="text/event-stream"),
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise UpstreamBadStatus(response.status, body)

                    try:
                        async for raw_line in response.content:
                            yield raw_line.decode('utf-8', errors='replace').rstrip('\r\n')
                    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                        raise StreamInterrupted(f"error reading stream: {e}") from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailable(f"failed to send request: {e}") from e
