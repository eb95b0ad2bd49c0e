"""
Оркестратор стримингового чата с контекстом из дневника (RAG)
"""
import asyncio
import json
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from utils.logger import app_logger
from diaria.config.ai_settings import AISettingsProvider
from diaria.errors import DiariaError, InvalidQuery, StreamCancelled, StreamInterrupted
from diaria.models import DiarySearchResult
from diaria.rag.similarity_search import SimilaritySearch
from diaria.storage.chat_history_store import ChatHistorySource
from .prompts import build_system_prompt
from .provider_client import ProviderClient
from .token_sink import TokenSink


SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"


@dataclass
class ChatResult:
    """Итог одного ответа ассистента"""
    full_text: str
    referenced_entry_ids: List[str] = field(default_factory=list)
    malformed_chunks: int = 0


class ChatOrchestrator:
    """
    Собирает промпт (персона + записи дневника + история), вызывает
    стриминг провайдера и передает токены в приемник по мере поступления.

    Сохранение сообщений остается на вызывающей стороне.
    """

    def __init__(self,
                 provider: ProviderClient,
                 search: Optional[SimilaritySearch],
                 history_source: ChatHistorySource,
                 settings_provider: AISettingsProvider,
                 context_limit: int = 5,
                 history_limit: int = 20):
        """
        Инициализация оркестратора

        Args:
            provider: Клиент провайдера
            search: Семантический поиск (None - чат без контекста дневника)
            history_source: Источник истории диалога
            settings_provider: Доступ к AI настройкам владельца
            context_limit: Сколько записей дневника подставлять в промпт
            history_limit: Сколько последних сообщений диалога передавать
        """
        self.provider = provider
        self.search = search
        self.history_source = history_source
        self.settings_provider = settings_provider
        self.context_limit = context_limit
        self.history_limit = history_limit

        # Метрики
        self.metrics = {
            'chats_started': 0,
            'chats_completed': 0,
            'chats_interrupted': 0,
            'chats_cancelled': 0,
            'retrieval_failures': 0,
            'malformed_chunks': 0,
        }

        app_logger.info("ChatOrchestrator инициализирован")

    async def stream_chat(self, owner: str, conversation_id: str, message: str,
                          sink: TokenSink) -> ChatResult:
        """
        Стриминговый ответ на сообщение пользователя

        Args:
            owner: ID владельца
            conversation_id: ID диалога (для истории)
            message: Новое сообщение пользователя
            sink: Приемник токенов

        Returns:
            Полный текст ответа и ID использованных записей дневника

        Raises:
            ConfigurationMissing: не заполнены api_key, base_url или chat_model
            UpstreamUnavailable, UpstreamBadStatus: ошибка запроса к провайдеру
            StreamInterrupted: поток оборвался, содержит частичный ответ
            StreamCancelled: задача отменена, содержит частичный ответ
        """
        settings = await self.settings_provider.get_ai_settings(owner)
        settings.require_chat()

        if not message or not message.strip():
            raise InvalidQuery("message is empty")

        app_logger.info(f"Стриминг чата для владельца {owner}, диалог {conversation_id}")
        self.metrics['chats_started'] += 1

        diaries = await self._retrieve_context(owner, message)
        referenced = [diary.entry_id for diary in diaries]

        messages = [{'role': 'system', 'content': build_system_prompt(diaries)}]
        messages.extend(await self._load_history(conversation_id))
        messages.append({'role': 'user', 'content': message})

        buffer: List[str] = []
        malformed = 0

        stream = self.provider.chat_stream(
            settings.base_url, settings.api_key, settings.chat_model, messages
        )
        try:
            async for line in stream:
                if not line.startswith(SSE_DATA_PREFIX):
                    continue

                data = line[len(SSE_DATA_PREFIX):].strip()
                if data == SSE_DONE:
                    break

                try:
                    chunk = json.loads(data)
                except ValueError as e:
                    malformed += 1
                    self.metrics['malformed_chunks'] += 1
                    app_logger.warning(f"Не удалось разобрать чанк стрима: {e}")
                    continue

                content = self._extract_content(chunk)
                if content is None and not isinstance(chunk, dict):
                    malformed += 1
                    self.metrics['malformed_chunks'] += 1
                    continue

                if content:
                    buffer.append(content)
                    await sink.push(content)

        except StreamInterrupted as e:
            self.metrics['chats_interrupted'] += 1
            app_logger.error(f"Поток ответа оборвался (владелец {owner}): {e}")
            raise StreamInterrupted(str(e), "".join(buffer), referenced) from e
        except asyncio.CancelledError as e:
            self.metrics['chats_cancelled'] += 1
            app_logger.info(f"Стриминг чата отменен (владелец {owner}), передано {len(buffer)} токенов")
            raise StreamCancelled("".join(buffer), referenced) from e
        finally:
            await stream.aclose()

        self.metrics['chats_completed'] += 1
        full_text = "".join(buffer)
        app_logger.info(
            f"Ответ для владельца {owner} готов: {len(full_text)} символов, "
            f"{len(referenced)} записей в контексте, {malformed} битых чанков"
        )
        return ChatResult(full_text=full_text, referenced_entry_ids=referenced, malformed_chunks=malformed)

    async def _retrieve_context(self, owner: str, message: str) -> List[DiarySearchResult]:
        """Поиск записей дневника; ошибка поиска не прерывает чат"""
        if self.search is None:
            return []

        try:
            return await self.search.query_similar(owner, message, self.context_limit)
        except (DiariaError, sqlite3.Error) as e:
            self.metrics['retrieval_failures'] += 1
            app_logger.warning(f"Не удалось найти записи дневника для владельца {owner}: {e}")
            return []

    async def _load_history(self, conversation_id: str) -> List[Dict[str, str]]:
        if not conversation_id:
            return []

        try:
            history = await self.history_source.get_history(conversation_id, self.history_limit)
        except (DiariaError, sqlite3.Error) as e:
            app_logger.warning(f"Не удалось загрузить историю диалога {conversation_id}: {e}")
            return []

        return [
            {'role': msg.role, 'content': msg.content}
            for msg in history
            if msg.role in ('user', 'assistant')
        ]

    @staticmethod
    def _extract_content(chunk: Any) -> Optional[str]:
        """Текст из choices[0].delta.content"""
        if not isinstance(chunk, dict):
            return None

        choices = chunk.get('choices')
        if not isinstance(choices, list) or not choices:
            return None

        first = choices[0]
        if not isinstance(first, dict):
            return None

        delta = first.get('delta')
        if not isinstance(delta, dict):
            return None

        content = delta.get('content')
        return content if isinstance(content, str) else None
