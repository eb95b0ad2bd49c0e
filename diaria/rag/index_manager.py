"""
Построение и инкрементальное обновление векторного индекса дневника (write-path)
"""
import asyncio
import sqlite3
import time
from typing import Optional, Tuple
from utils.logger import app_logger
from diaria.ai.provider_client import ProviderClient
from diaria.config.ai_settings import AISettings, AISettingsProvider
from diaria.errors import DeadlineExceeded, DiariaError
from diaria.storage.journal_store import JournalEntrySource
from diaria.models import BuildResult, EmbeddingRecord, IndexStats, JournalEntry, compute_content_hash
from .build_locks import OwnerLockRegistry
from .vector_store import VectorStore


class EmbeddingIndexManager:
    """
    Строит эмбеддинги записей дневника владельца и держит их актуальными

    Устаревание определяется только по хешу текста, а не по времени изменения.
    """

    def __init__(self,
                 vector_store: VectorStore,
                 entry_source: JournalEntrySource,
                 provider: ProviderClient,
                 settings_provider: AISettingsProvider,
                 lock_registry: Optional[OwnerLockRegistry] = None,
                 workers: int = 4):
        """
        Инициализация менеджера индекса

        Args:
            vector_store: Векторное хранилище
            entry_source: Источник записей дневника
            provider: Клиент провайдера эмбеддингов
            settings_provider: Доступ к AI настройкам владельца
            lock_registry: Реестр блокировок построения (общий на процесс)
            workers: Сколько эмбеддингов запрашивать параллельно
        """
        self.vector_store = vector_store
        self.entry_source = entry_source
        self.provider = provider
        self.settings_provider = settings_provider
        self.locks = lock_registry if lock_registry is not None else OwnerLockRegistry()
        self.workers = max(1, workers)

        app_logger.info("EmbeddingIndexManager инициализирован")

    async def build_all(self, owner: str, timeout: Optional[float] = None) -> BuildResult:
        """
        Пересчитывает эмбеддинги всех записей владельца

        Args:
            owner: ID владельца
            timeout: Ограничение времени в секундах

        Returns:
            Счетчики processed / failed / skipped
        """
        return await self._run_build(owner, incremental=False, timeout=timeout)

    async def build_incremental(self, owner: str, timeout: Optional[float] = None) -> BuildResult:
        """
        Эмбеддинги только для новых и измененных записей

        Записи с совпадающим хешем не отправляются провайдеру.
        Эмбеддинги удаленных записей очищаются.

        Args:
            owner: ID владельца
            timeout: Ограничение времени в секундах

        Returns:
            Счетчики processed / failed / skipped / unchanged / removed
        """
        return await self._run_build(owner, incremental=True, timeout=timeout)

    async def _run_build(self, owner: str, incremental: bool, timeout: Optional[float]) -> BuildResult:
        settings = await self.settings_provider.get_ai_settings(owner)
        settings.require_embedding()

        mode = "incremental" if incremental else "full"
        result = BuildResult(incremental=incremental)

        with self.locks.hold(owner):
            started = time.monotonic()
            app_logger.info(f"Построение индекса ({mode}) для владельца {owner}")

            try:
                if timeout is not None:
                    await asyncio.wait_for(self._build(owner, settings, result), timeout)
                else:
                    await self._build(owner, settings, result)
            except asyncio.TimeoutError as e:
                app_logger.warning(
                    f"Построение индекса ({mode}) владельца {owner} прервано по таймауту "
                    f"{timeout}s: {result.to_dict()}"
                )
                raise DeadlineExceeded(result) from e
            except asyncio.CancelledError:
                app_logger.warning(f"Построение индекса ({mode}) владельца {owner} отменено")
                raise

            app_logger.info(
                f"Построение индекса ({mode}) владельца {owner} завершено "
                f"за {time.monotonic() - started:.2f}s: {result.to_dict()}"
            )
            return result

    async def _build(self, owner: str, settings: AISettings, result: BuildResult) -> None:
        model_id = settings.embedding_model
        entries = await self.entry_source.list_entries(owner)
        stored_hashes = self.vector_store.get_hashes(owner, model_id) if result.incremental else {}

        queue: asyncio.Queue = asyncio.Queue()
        stale_ids = []

        for entry in entries:
            text = entry.embedding_text
            if not text:
                result.skipped += 1
                if entry.id in stored_hashes:
                    stale_ids.append(entry.id)
                continue

            content_hash = compute_content_hash(text)
            if result.incremental and stored_hashes.get(entry.id) == content_hash:
                result.unchanged += 1
                continue

            queue.put_nowait((entry, text, content_hash))

        if result.incremental:
            current_ids = {entry.id for entry in entries}
            stale_ids.extend(entry_id for entry_id in stored_hashes if entry_id not in current_ids)
            if stale_ids:
                result.removed = self.vector_store.delete(owner, stale_ids, model_id)

        if queue.empty():
            return

        workers = [
            asyncio.ensure_future(self._worker(owner, settings, queue, result))
            for _ in range(min(self.workers, queue.qsize()))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()

    async def _worker(self, owner: str, settings: AISettings, queue: asyncio.Queue,
                      result: BuildResult) -> None:
        while True:
            try:
                item: Tuple[JournalEntry, str, str] = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            entry, text, content_hash = item
            try:
                vector = await self.provider.embed(
                    settings.base_url, settings.api_key, settings.embedding_model, text
                )
                self.vector_store.upsert(EmbeddingRecord(
                    owner=owner,
                    entry_id=entry.id,
                    vector=vector,
                    content_hash=content_hash,
                    model_id=settings.embedding_model,
                ))
                result.processed += 1
            except (DiariaError, sqlite3.Error) as e:
                result.failed += 1
                app_logger.warning(f"Не удалось построить эмбеддинг записи {entry.id} владельца {owner}: {e}")

    async def get_stats(self, owner: str) -> IndexStats:
        """
        Статистика индекса: всего записей, проиндексировано, отсутствует, устарело

        Args:
            owner: ID владельца

        Returns:
            Статистика индекса
        """
        settings = await self.settings_provider.get_ai_settings(owner)
        settings.require("embedding_model")

        entries = await self.entry_source.list_entries(owner)
        stored_hashes = self.vector_store.get_hashes(owner, settings.embedding_model)

        stats = IndexStats(total=len(entries))
        for entry in entries:
            text = entry.embedding_text
            stored_hash = stored_hashes.get(entry.id)

            if stored_hash is None:
                if text:
                    stats.missing += 1
                continue

            stats.indexed += 1
            if not text or stored_hash != compute_content_hash(text):
                stats.outdated += 1

        app_logger.debug(f"Статистика индекса владельца {owner}: {stats.to_dict()}")
        return stats
