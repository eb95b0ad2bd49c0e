"""
Векторное хранилище эмбеддингов записей дневника
"""
import json
import os
import sqlite3
from typing import Dict, Iterable, List, Optional
from utils.logger import app_logger
from diaria.errors import VectorDimensionMismatch
from diaria.models import EmbeddingRecord


class VectorStore:
    """
    Хранит эмбеддинги записей: (owner, entry_id, model_id) -> вектор, хеш, время
    """

    def __init__(self, db_path: str = "data/diaria.db"):
        """
        Инициализация векторного хранилища

        Args:
            db_path: Путь к базе данных SQLite
        """
        self.db_path = db_path

        # Создаем директорию для данных если не существует
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        # Инициализируем базу данных
        self._init_database()

        app_logger.info("VectorStore инициализирован")

    def _init_database(self):
        """Инициализирует таблицы в SQLite базе данных"""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS diary_embeddings (
                    owner TEXT NOT NULL,
                    entry_id TEXT NOT NULL,
                    model_id TEXT NOT NULL,
                    dimension INTEGER NOT NULL,
                    embedding_vector TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (owner, entry_id, model_id)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_diary_embeddings_owner_model
                ON diary_embeddings(owner, model_id)
            """)

            conn.commit()

    @staticmethod
    def _row_to_record(row) -> EmbeddingRecord:
        owner, entry_id, model_id, embedding_json, content_hash, updated_at = row
        return EmbeddingRecord(
            owner=owner,
            entry_id=entry_id,
            vector=json.loads(embedding_json),
            content_hash=content_hash,
            model_id=model_id,
            updated_at=updated_at,
        )

    def upsert(self, record: EmbeddingRecord) -> None:
        """
        Добавляет или заменяет эмбеддинг записи одной транзакцией

        Args:
            record: Эмбеддинг записи

        Raises:
            VectorDimensionMismatch: если размерность отличается от сохраненных для модели
        """
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("""
                SELECT dimension FROM diary_embeddings
                WHERE model_id = ? AND NOT (owner = ? AND entry_id = ?)
                LIMIT 1
            """, (record.model_id, record.owner, record.entry_id)).fetchone()
            if row and row[0] != record.dimension:
                raise VectorDimensionMismatch(record.model_id, row[0], record.dimension)

            conn.execute("""
                INSERT OR REPLACE INTO diary_embeddings
                (owner, entry_id, model_id, dimension, embedding_vector, content_hash, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                record.owner,
                record.entry_id,
                record.model_id,
                record.dimension,
                json.dumps(record.vector),
                record.content_hash,
                record.updated_at,
            ))
            conn.commit()

        app_logger.debug(f"Сохранен эмбеддинг записи {record.entry_id} владельца {record.owner}")

    def get_records(self, owner: str, model_id: str) -> List[EmbeddingRecord]:
        """
        Загружает все эмбеддинги владельца для модели

        Args:
            owner: ID владельца
            model_id: Модель эмбеддингов

        Returns:
            Список эмбеддингов
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("""
                SELECT owner, entry_id, model_id, embedding_vector, content_hash, updated_at
                FROM diary_embeddings WHERE owner = ? AND model_id = ?
            """, (owner, model_id))
            return [self._row_to_record(row) for row in cursor.fetchall()]

    def get_hashes(self, owner: str, model_id: str) -> Dict[str, str]:
        """
        Хеши содержимого по ID записей (без загрузки векторов)

        Returns:
            Словарь entry_id -> content_hash
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("""
                SELECT entry_id, content_hash FROM diary_embeddings
                WHERE owner = ? AND model_id = ?
            """, (owner, model_id))
            return dict(cursor.fetchall())

    def delete(self, owner: str, entry_ids: Iterable[str], model_id: Optional[str] = None) -> int:
        """
        Удаляет эмбеддинги записей

        Args:
            owner: ID владельца
            entry_ids: ID записей
            model_id: Модель (если не указана, удаляются эмбеддинги всех моделей)

        Returns:
            Количество удаленных строк
        """
        ids = list(entry_ids)
        if not ids:
            return 0

        deleted = 0
        with sqlite3.connect(self.db_path) as conn:
            for start in range(0, len(ids), 500):
                batch = ids[start:start + 500]
                placeholders = ','.join(['?' for _ in batch])
                query = f"DELETE FROM diary_embeddings WHERE owner = ? AND entry_id IN ({placeholders})"
                params = [owner, *batch]
                if model_id:
                    query += " AND model_id = ?"
                    params.append(model_id)
                deleted += conn.execute(query, params).rowcount
            conn.commit()

        app_logger.info(f"Удалено {deleted} эмбеддингов владельца {owner}")
        return deleted

