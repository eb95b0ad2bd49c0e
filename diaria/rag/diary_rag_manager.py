"""
Основной менеджер RAG системы дневника
"""
from typing import Any, Dict, List, Optional
from utils.logger import app_logger
from diaria.ai.chat_orchestrator import ChatOrchestrator, ChatResult
from diaria.ai.provider_client import ModelInfo, ProviderClient
from diaria.ai.token_sink import TokenSink
from diaria.config.ai_settings import AISettingsProvider, AISettingsStore
from diaria.config.app_config import load_app_config
from diaria.models import BuildResult, DiarySearchResult, IndexStats
from diaria.storage.chat_history_store import ChatHistoryStore
from diaria.storage.journal_store import JournalStore
from .build_locks import OwnerLockRegistry
from .index_manager import EmbeddingIndexManager
from .similarity_search import SimilaritySearch
from .vector_store import VectorStore


class DiaryRAGManager:
    """
    Основной менеджер RAG системы дневника
    Объединяет все компоненты: хранилища, индексацию, поиск, чат
    """

    def __init__(self,
                 config: Optional[Dict] = None,
                 provider: Optional[ProviderClient] = None,
                 settings_provider: Optional[AISettingsProvider] = None):
        """
        Инициализация RAG менеджера

        Args:
            config: Конфигурация системы (опционально, поверх переменных окружения)
            provider: Клиент провайдера (по умолчанию создается из конфигурации)
            settings_provider: Источник AI настроек (по умолчанию хранилище в SQLite)
        """
        self.config = load_app_config(config)
        db_path = self.config['db_path']

        # Хранилища
        self.journal_store = JournalStore(db_path)
        self.history_store = ChatHistoryStore(db_path)
        self.settings_store = AISettingsStore(db_path)
        self.vector_store = VectorStore(db_path)

        self.settings_provider = settings_provider or self.settings_store
        self.provider = provider or ProviderClient(
            timeout_seconds=self.config['provider_timeout_seconds']
        )
        self.build_locks = OwnerLockRegistry()

        # Компоненты
        self.index_manager = EmbeddingIndexManager(
            vector_store=self.vector_store,
            entry_source=self.journal_store,
            provider=self.provider,
            settings_provider=self.settings_provider,
            lock_registry=self.build_locks,
            workers=self.config['embed_workers'],
        )
        self.search = SimilaritySearch(
            vector_store=self.vector_store,
            entry_source=self.journal_store,
            provider=self.provider,
            settings_provider=self.settings_provider,
        )
        self.orchestrator = ChatOrchestrator(
            provider=self.provider,
            search=self.search,
            history_source=self.history_store,
            settings_provider=self.settings_provider,
            context_limit=self.config['chat_context_limit'],
            history_limit=self.config['chat_history_limit'],
        )

        # Метрики
        self.metrics = {
            'builds_completed': 0,
            'builds_failed': 0,
            'entries_embedded': 0,
            'searches_performed': 0,
        }

        app_logger.info("DiaryRAGManager инициализирован")

    async def build_vectors(self, owner: str, incremental: bool = False) -> BuildResult:
        """
        Полное или инкрементальное построение индекса с таймаутом из конфигурации

        Args:
            owner: ID владельца
            incremental: Только новые и измененные записи

        Returns:
            Счетчики построения
        """
        timeout = self.config['build_timeout_seconds']
        try:
            if incremental:
                result = await self.index_manager.build_incremental(owner, timeout=timeout)
            else:
                result = await self.index_manager.build_all(owner, timeout=timeout)
        except Exception:
            self.metrics['builds_failed'] += 1
            raise

        self.metrics['builds_completed'] += 1
        self.metrics['entries_embedded'] += result.processed
        return result

    async def get_stats(self, owner: str) -> IndexStats:
        return await self.index_manager.get_stats(owner)

    async def query_similar(self, owner: str, query: str, limit: int = 5) -> List[DiarySearchResult]:
        results = await self.search.query_similar(owner, query, limit)
        self.metrics['searches_performed'] += 1
        return results

    async def stream_chat(self, owner: str, conversation_id: str, message: str,
                          sink: TokenSink) -> ChatResult:
        return await self.orchestrator.stream_chat(owner, conversation_id, message, sink)

    async def list_models(self, base_url: str, api_key: str) -> List[ModelInfo]:
        return await self.provider.list_models(base_url, api_key)

    def get_system_status(self) -> Dict[str, Any]:
        """
        Статус RAG системы

        Returns:
            Конфигурация, метрики индексации и чата, активные построения
        """
        return {
            'config': {
                key: value for key, value in self.config.items()
                if key not in ('host', 'port')
            },
            'metrics': {**self.metrics, **self.orchestrator.metrics},
            'active_builds': len(self.build_locks),
        }
