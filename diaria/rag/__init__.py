"""
RAG модуль дневника - Retrieval-Augmented Generation

Компоненты:
- VectorStore: Векторное хранилище эмбеддингов записей
- EmbeddingIndexManager: Построение и обновление индекса (write-path)
- SimilaritySearch: Поиск похожих записей (read-path)
- OwnerLockRegistry: Одно построение индекса на владельца

Менеджер всей системы: diaria.rag.diary_rag_manager.DiaryRAGManager
"""

from .vector_store import VectorStore
from .build_locks import OwnerLockRegistry
from .index_manager import EmbeddingIndexManager
from .similarity_search import SimilaritySearch

__all__ = [
    'VectorStore',
    'OwnerLockRegistry',
    'EmbeddingIndexManager',
    'SimilaritySearch'
]
