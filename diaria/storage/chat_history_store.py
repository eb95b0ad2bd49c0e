"""
Хранилище диалогов и сообщений AI-чата
"""
import json
import os
import sqlite3
import uuid
from datetime import datetime
from typing import List, Optional
from utils.logger import app_logger
from diaria.models import ChatMessage, Conversation


class ChatHistorySource:
    """Интерфейс чтения истории диалога для оркестратора чата"""

    async def get_history(self, conversation_id: str, limit: int) -> List[ChatMessage]:
        raise NotImplementedError


class ChatHistoryStore(ChatHistorySource):
    """
    SQLite хранилище диалогов (ai_conversations) и сообщений (ai_messages)
    """

    def __init__(self, db_path: str = "data/diaria.db"):
        """
        Инициализация хранилища истории

        Args:
            db_path: Путь к базе данных SQLite
        """
        self.db_path = db_path

        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_database()

    def _init_database(self):
        """Инициализирует таблицы диалогов и сообщений"""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ai_conversations (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    created TEXT NOT NULL,
                    updated TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_conversations_owner ON ai_conversations(owner)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_conversations_updated ON ai_conversations(updated)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS ai_messages (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT UNIQUE NOT NULL,
                    conversation TEXT NOT NULL,
                    role TEXT NOT NULL, -- 'user', 'assistant'
                    content TEXT NOT NULL,
                    referenced_diaries TEXT, -- JSON список ID записей
                    owner TEXT NOT NULL,
                    created TEXT NOT NULL,
                    FOREIGN KEY (conversation) REFERENCES ai_conversations (id) ON DELETE CASCADE
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_messages_conversation ON ai_messages(conversation)")
            conn.commit()

    @staticmethod
    def _now() -> str:
        return datetime.now().isoformat()

    def create_conversation(self, owner: str, title: str = "") -> Conversation:
        """
        Создает новый диалог

        Args:
            owner: ID владельца
            title: Заголовок (обрезается до 200 символов)

        Returns:
            Созданный диалог
        """
        now = self._now()
        conversation = Conversation(
            id=uuid.uuid4().hex[:15],
            owner=owner,
            title=title[:200],
            created=now,
            updated=now,
        )
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO ai_conversations (id, owner, title, created, updated)
                VALUES (?, ?, ?, ?, ?)
            """, (conversation.id, owner, conversation.title, now, now))
            conn.commit()

        app_logger.info(f"Создан диалог {conversation.id} для владельца {owner}")
        return conversation

    def get_conversation(self, owner: str, conversation_id: str) -> Optional[Conversation]:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("""
                SELECT id, owner, title, created, updated FROM ai_conversations
                WHERE id = ? AND owner = ?
            """, (conversation_id, owner)).fetchone()
        return Conversation(*row) if row else None

    def list_conversations(self, owner: str) -> List[Conversation]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("""
                SELECT id, owner, title, created, updated FROM ai_conversations
                WHERE owner = ? ORDER BY updated DESC
            """, (owner,)).fetchall()
        return [Conversation(*row) for row in rows]

    def save_message(self, owner: str, conversation_id: str, role: str, content: str,
                     referenced_diaries: Optional[List[str]] = None) -> ChatMessage:
        """
        Сохраняет сообщение и обновляет время изменения диалога

        Args:
            owner: ID владельца
            conversation_id: ID диалога
            role: 'user' или 'assistant'
            content: Текст сообщения
            referenced_diaries: ID записей дневника, использованных в ответе

        Returns:
            Сохраненное сообщение
        """
        message = ChatMessage(
            id=uuid.uuid4().hex[:15],
            conversation_id=conversation_id,
            role=role,
            content=content,
            owner=owner,
            created=self._now(),
            referenced_diaries=list(referenced_diaries or []),
        )
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO ai_messages (id, conversation, role, content, referenced_diaries, owner, created)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                message.id,
                conversation_id,
                role,
                content,
                json.dumps(message.referenced_diaries) if message.referenced_diaries else None,
                owner,
                message.created,
            ))
            conn.execute(
                "UPDATE ai_conversations SET updated = ? WHERE id = ?",
                (message.created, conversation_id)
            )
            conn.commit()
        return message

    def _fetch_messages(self, conversation_id: str, limit: Optional[int]) -> List[ChatMessage]:
        query = """
            SELECT id, conversation, role, content, owner, created, referenced_diaries
            FROM ai_messages WHERE conversation = ?
            ORDER BY created DESC, seq DESC
        """
        params: list = [conversation_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()

        messages = []
        for row in reversed(rows):
            referenced = json.loads(row[6]) if row[6] else []
            messages.append(ChatMessage(*row[:6], referenced_diaries=referenced))
        return messages

    def list_messages(self, conversation_id: str) -> List[ChatMessage]:
        return self._fetch_messages(conversation_id, None)

    async def get_history(self, conversation_id: str, limit: int) -> List[ChatMessage]:
        """Последние limit сообщений диалога в порядке создания"""
        return self._fetch_messages(conversation_id, limit)
