"""
Модели данных RAG системы дневника
"""
import hashlib
import html
import re
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional


_TAG_PATTERN = re.compile(r'<[^>]+>')
_BLOCK_TAG_PATTERN = re.compile(r'</?(p|div|br|li|h[1-6]|blockquote|pre|tr)\b[^>]*>', re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r'\s+')


def format_entry_text(content: Optional[str]) -> str:
    """
    Готовит текст записи для векторизации

    Редактор сохраняет записи в HTML, поэтому теги удаляются,
    сущности раскодируются, пробелы схлопываются.

    Args:
        content: Содержимое записи

    Returns:
        Текст для эмбеддинга (может быть пустым)
    """
    if not content:
        return ""

    text = _BLOCK_TAG_PATTERN.sub(' ', content)
    text = _TAG_PATTERN.sub('', text)
    text = html.unescape(text)
    return _WHITESPACE_PATTERN.sub(' ', text).strip()


def compute_content_hash(text: str) -> str:
    """SHA-256 текста, по которому строился эмбеддинг"""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


@dataclass
class JournalEntry:
    """Запись дневника (хранится во внешнем хранилище)"""
    id: str
    owner: str
    content: str
    date: str
    mood: Optional[str] = None
    weather: Optional[str] = None
    updated: Optional[str] = None

    @property
    def embedding_text(self) -> str:
        return format_entry_text(self.content)


@dataclass
class EmbeddingRecord:
    """Эмбеддинг записи дневника"""
    owner: str
    entry_id: str
    vector: List[float]
    content_hash: str
    model_id: str
    updated_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass
class IndexStats:
    """Статистика индекса владельца"""
    total: int = 0
    indexed: int = 0
    missing: int = 0
    outdated: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class BuildResult:
    """Счетчики одного прохода построения индекса"""
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    unchanged: int = 0
    removed: int = 0
    incremental: bool = False

    def to_dict(self) -> Dict[str, int]:
        result = {
            'processed': self.processed,
            'failed': self.failed,
            'skipped': self.skipped,
        }
        if self.incremental:
            result['unchanged'] = self.unchanged
            result['removed'] = self.removed
        return result


@dataclass
class DiarySearchResult:
    """Результат семантического поиска по дневнику"""
    entry_id: str
    date: str
    mood: Optional[str]
    weather: Optional[str]
    content: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Conversation:
    """Диалог с ассистентом"""
    id: str
    owner: str
    title: str
    created: str
    updated: str


@dataclass
class ChatMessage:
    """Сообщение диалога"""
    id: str
    conversation_id: str
    role: str
    content: str
    owner: str
    created: str
    referenced_diaries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
