"""
Общие фикстуры тестов AI-модуля дневника
"""
import asyncio
import os
import tempfile
from typing import Dict, List

import pytest

from diaria.ai.provider_client import ModelInfo
from diaria.config.ai_settings import AISettings, StaticAISettingsProvider
from diaria.errors import UpstreamBadStatus
from diaria.rag.build_locks import OwnerLockRegistry
from diaria.rag.index_manager import EmbeddingIndexManager
from diaria.rag.similarity_search import SimilaritySearch
from diaria.rag.vector_store import VectorStore
from diaria.storage.chat_history_store import ChatHistoryStore
from diaria.storage.journal_store import JournalStore


VOCABULARY = [
    "beach", "trip", "sea", "hiking", "hills", "work", "cat", "rain",
    "море", "горы", "работа", "кот", "дождь", "книга",
]


def keyword_vector(text: str) -> List[float]:
    """Детерминированный эмбеддинг: мешок слов по словарю + небольшой общий компонент"""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]


def content_line(token: str) -> str:
    return 'data: {"choices":[{"delta":{"content":"%s"}}]}' % token


class FakeProvider:
    """Провайдер без сети: эмбеддинги по словарю, чат по сценарию строк"""

    def __init__(self, chat_lines=None):
        self.chat_lines = list(chat_lines or [])
        self.embed_calls: List[str] = []
        self.chat_calls: List[List[Dict[str, str]]] = []
        self.fail_texts = set()
        self.embed_delay = 0.0
        self.closed_streams = 0

    async def embed(self, base_url, api_key, model, text):
        self.embed_calls.append(text)
        if self.embed_delay:
            await asyncio.sleep(self.embed_delay)
        for marker in self.fail_texts:
            if marker in text:
                raise UpstreamBadStatus(500, "embedding failed")
        return keyword_vector(text)

    async def list_models(self, base_url, api_key):
        return [ModelInfo(id="test-chat"), ModelInfo(id="test-embed")]

    async def chat_stream(self, base_url, api_key, model, messages):
        self.chat_calls.append(messages)
        try:
            for line in self.chat_lines:
                await asyncio.sleep(0)
                if isinstance(line, BaseException):
                    raise line
                yield line
        finally:
            self.closed_streams += 1


class RecordingSink:
    """Приемник токенов, запоминающий все вызовы"""

    def __init__(self):
        self.tokens: List[str] = []
        self.closed = False

    async def push(self, token: str) -> None:
        self.tokens.append(token)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def temp_db():
    """Создает временную базу данных для тестов"""
    with tempfile.NamedTemporaryFile(delete=False, suffix='.db') as tmp_file:
        yield tmp_file.name
    os.unlink(tmp_file.name)


@pytest.fixture
def ai_settings():
    return AISettings(
        api_key="sk-test",
        base_url="http://provider.local",
        chat_model="test-chat",
        embedding_model="test-embed",
        enabled=True,
    )


@pytest.fixture
def settings_provider(ai_settings):
    return StaticAISettingsProvider(ai_settings)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def journal_store(temp_db):
    return JournalStore(temp_db)


@pytest.fixture
def vector_store(temp_db):
    return VectorStore(temp_db)


@pytest.fixture
def history_store(temp_db):
    return ChatHistoryStore(temp_db)


@pytest.fixture
def lock_registry():
    return OwnerLockRegistry()


@pytest.fixture
def index_manager(vector_store, journal_store, provider, settings_provider, lock_registry):
    return EmbeddingIndexManager(
        vector_store=vector_store,
        entry_source=journal_store,
        provider=provider,
        settings_provider=settings_provider,
        lock_registry=lock_registry,
        workers=2,
    )


@pytest.fixture
def similarity_search(vector_store, journal_store, provider, settings_provider):
    return SimilaritySearch(
        vector_store=vector_store,
        entry_source=journal_store,
        provider=provider,
        settings_provider=settings_provider,
    )
