"""
Хранилище записей дневника (источник записей для индексации)
"""
import os
import sqlite3
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from utils.logger import app_logger
from diaria.models import JournalEntry


class JournalEntrySource:
    """
    Интерфейс источника записей дневника

    Индексатор и поиск только читают записи.
    """

    async def list_entries(self, owner: str) -> List[JournalEntry]:
        raise NotImplementedError

    async def get_entries(self, owner: str, entry_ids: Iterable[str]) -> Dict[str, JournalEntry]:
        raise NotImplementedError


class JournalStore(JournalEntrySource):
    """
    SQLite хранилище записей дневника
    """

    def __init__(self, db_path: str = "data/diaria.db"):
        """
        Инициализация хранилища записей

        Args:
            db_path: Путь к базе данных SQLite
        """
        self.db_path = db_path

        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_database()

    def _init_database(self):
        """Инициализирует таблицу записей"""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS diaries (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    content TEXT NOT NULL DEFAULT '',
                    date TEXT NOT NULL,
                    mood TEXT,
                    weather TEXT,
                    updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_diaries_owner ON diaries(owner)")
            conn.commit()

    @staticmethod
    def _row_to_entry(row) -> JournalEntry:
        entry_id, owner, content, date, mood, weather, updated = row
        return JournalEntry(
            id=entry_id,
            owner=owner,
            content=content or "",
            date=date,
            mood=mood or None,
            weather=weather or None,
            updated=updated,
        )

    def save_entry(self, owner: str, content: str, date: str,
                   mood: Optional[str] = None, weather: Optional[str] = None,
                   entry_id: Optional[str] = None) -> JournalEntry:
        """
        Создает или обновляет запись дневника

        Args:
            owner: ID владельца
            content: Содержимое записи
            date: Дата записи (YYYY-MM-DD)
            mood: Настроение (опционально)
            weather: Погода (опционально)
            entry_id: ID записи (генерируется если не указан)

        Returns:
            Сохраненная запись
        """
        entry = JournalEntry(
            id=entry_id or uuid.uuid4().hex[:15],
            owner=owner,
            content=content,
            date=date,
            mood=mood,
            weather=weather,
            updated=datetime.now().isoformat(),
        )

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO diaries (id, owner, content, date, mood, weather, updated)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (entry.id, owner, content, date, mood, weather, entry.updated))
            conn.commit()

        app_logger.debug(f"Сохранена запись дневника {entry.id} владельца {owner}")
        return entry

    def delete_entry(self, owner: str, entry_id: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM diaries WHERE owner = ? AND id = ?", (owner, entry_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    async def list_entries(self, owner: str) -> List[JournalEntry]:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("""
                SELECT id, owner, content, date, mood, weather, updated
                FROM diaries WHERE owner = ? ORDER BY date DESC
            """, (owner,))
            return [self._row_to_entry(row) for row in cursor.fetchall()]

    async def get_entries(self, owner: str, entry_ids: Iterable[str]) -> Dict[str, JournalEntry]:
        ids = list(entry_ids)
        if not ids:
            return {}

        entries = {}
        with sqlite3.connect(self.db_path) as conn:
            # SQLite ограничивает число параметров в запросе
            for start in range(0, len(ids), 500):
                batch = ids[start:start + 500]
                placeholders = ','.join(['?' for _ in batch])
                cursor = conn.execute(f"""
                    SELECT id, owner, content, date, mood, weather, updated
                    FROM diaries WHERE owner = ? AND id IN ({placeholders})
                """, [owner, *batch])
                for row in cursor.fetchall():
                    entry = self._row_to_entry(row)
                    entries[entry.id] = entry
        return entries
