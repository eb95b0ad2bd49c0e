"""
Семантический поиск по записям дневника (read-path)
"""
from typing import List
import numpy as np
from sklearn.metrics.pairwise import cosine_similarity
from utils.logger import app_logger
from diaria.ai.provider_client import ProviderClient
from diaria.config.ai_settings import AISettingsProvider
from diaria.errors import InvalidQuery
from diaria.storage.journal_store import JournalEntrySource
from diaria.models import DiarySearchResult
from .vector_store import VectorStore


class SimilaritySearch:
    """
    Ранжирует записи владельца по косинусному сходству с запросом

    Полный перебор векторов владельца, без ANN индекса.
    """

    def __init__(self,
                 vector_store: VectorStore,
                 entry_source: JournalEntrySource,
                 provider: ProviderClient,
                 settings_provider: AISettingsProvider):
        """
        Инициализация поиска

        Args:
            vector_store: Векторное хранилище
            entry_source: Источник записей дневника
            provider: Клиент провайдера эмбеддингов
            settings_provider: Доступ к AI настройкам владельца
        """
        self.vector_store = vector_store
        self.entry_source = entry_source
        self.provider = provider
        self.settings_provider = settings_provider

    async def query_similar(self, owner: str, query_text: str, limit: int) -> List[DiarySearchResult]:
        """
        Находит записи дневника, наиболее похожие на запрос

        Args:
            owner: ID владельца
            query_text: Текст запроса
            limit: Максимальное количество результатов

        Returns:
            Результаты по убыванию сходства, при равенстве сначала более поздние записи
        """
        if not query_text or not query_text.strip():
            raise InvalidQuery("query text is empty")
        if limit < 1:
            raise InvalidQuery(f"limit must be positive, got {limit}")

        settings = await self.settings_provider.get_ai_settings(owner)
        settings.require_embedding()

        # Эмбеддинг запроса
        query_embedding = await self.provider.embed(
            settings.base_url, settings.api_key, settings.embedding_model, query_text
        )

        records = self.vector_store.get_records(owner, settings.embedding_model)
        if not records:
            app_logger.info(f"Индекс владельца {owner} пуст, поиск пропущен")
            return []

        query_vector = np.array(query_embedding, dtype=float).reshape(1, -1)
        records = [record for record in records if record.dimension == query_vector.shape[1]]
        if not records:
            app_logger.warning(
                f"Нет эмбеддингов размерности {query_vector.shape[1]} у владельца {owner}"
            )
            return []

        matrix = np.array([record.vector for record in records], dtype=float)
        scores = cosine_similarity(query_vector, matrix)[0]

        entries = await self.entry_source.get_entries(owner, [record.entry_id for record in records])

        results = []
        for record, score in zip(records, scores):
            entry = entries.get(record.entry_id)
            if entry is None:
                # Запись удалена, эмбеддинг еще не очищен
                continue
            results.append(DiarySearchResult(
                entry_id=entry.id,
                date=entry.date,
                mood=entry.mood,
                weather=entry.weather,
                content=entry.content,
                score=float(score),
            ))

        # Сортировка устойчивая: сначала по дате, затем по сходству
        results.sort(key=lambda x: x.date or "", reverse=True)
        results.sort(key=lambda x: x.score, reverse=True)
        results = results[:limit]

        app_logger.info(f"Семантический поиск владельца {owner}: найдено {len(results)} записей")
        return results
