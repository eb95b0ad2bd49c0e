"""
FastAPI приложение AI-функций дневника: настройки, индекс, чат
"""
import asyncio
import json
import os
import time
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict

from utils.logger import app_logger, log_chat
from diaria.ai.token_sink import QueueTokenSink
from diaria.config.ai_settings import AISettings
from diaria.errors import (
    BuildInProgress,
    ConfigurationMissing,
    DeadlineExceeded,
    DecodeError,
    DiariaError,
    InvalidQuery,
    StreamCancelled,
    StreamInterrupted,
    UpstreamBadStatus,
    UpstreamUnavailable,
)
from diaria.rag.diary_rag_manager import DiaryRAGManager

# Создание FastAPI приложения
app = FastAPI(
    title="Diaria AI API",
    description="Семантический поиск по дневнику и чат с ассистентом на основе записей",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "health",
            "description": "Операции проверки здоровья системы",
        },
        {
            "name": "settings",
            "description": "AI настройки владельца и список моделей провайдера",
        },
        {
            "name": "vectors",
            "description": "Построение и статистика векторного индекса",
        },
        {
            "name": "chat",
            "description": "Стриминговый чат с ассистентом дневника",
        },
    ]
)

# Настройка CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_rag_manager: Optional[DiaryRAGManager] = None


def get_rag_manager() -> DiaryRAGManager:
    """Ленивая инициализация RAG менеджера"""
    global _rag_manager
    if _rag_manager is None:
        _rag_manager = DiaryRAGManager()
    return _rag_manager


async def get_owner(x_owner_id: Optional[str] = Header(None)) -> str:
    """ID владельца дневника из заголовка X-Owner-Id"""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="The request requires valid authorization token.")
    return x_owner_id.strip()


class AISettingsRequest(BaseModel):
    """Модель AI настроек владельца"""
    api_key: str = ""
    base_url: str = ""
    chat_model: str = ""
    embedding_model: str = ""
    enabled: bool = False

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "api_key": "sk-...",
            "base_url": "https://api.openai.com",
            "chat_model": "gpt-4o-mini",
            "embedding_model": "text-embedding-3-small",
            "enabled": True
        }
    })


class ModelsRequest(BaseModel):
    """Запрос списка моделей провайдера"""
    api_key: str = ""
    base_url: str = ""


class ChatRequest(BaseModel):
    """Сообщение пользователя в чат"""
    conversation_id: Optional[str] = None
    content: str

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "conversation_id": None,
            "content": "Что я писал про поездку на море?"
        }
    })


def _to_http_exception(error: DiariaError) -> HTTPException:
    """Преобразует ошибку AI-модуля в HTTP ответ"""
    if isinstance(error, (ConfigurationMissing, InvalidQuery)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, BuildInProgress):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, DeadlineExceeded):
        return HTTPException(status_code=504, detail={
            "message": "Vector build deadline exceeded",
            **error.partial.to_dict()
        })
    if isinstance(error, (UpstreamUnavailable, UpstreamBadStatus, DecodeError, StreamInterrupted)):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail="Внутренняя ошибка сервера")


async def _require_enabled(manager: DiaryRAGManager, owner: str) -> AISettings:
    settings = await manager.settings_provider.get_ai_settings(owner)
    if not settings.enabled:
        raise HTTPException(status_code=403, detail="AI features are disabled")
    return settings


@app.get("/health", tags=["health"])
async def health_check(manager: DiaryRAGManager = Depends(get_rag_manager)):
    """Проверка здоровья сервиса"""
    return {
        "status": "healthy",
        "timestamp": int(time.time()),
        "rag": manager.get_system_status(),
    }


@app.get("/api/ai/settings", tags=["settings"])
async def get_ai_settings(owner: str = Depends(get_owner),
                          manager: DiaryRAGManager = Depends(get_rag_manager)):
    """AI настройки владельца"""
    settings = await manager.settings_store.get_ai_settings(owner)
    return settings.to_dict()


@app.put("/api/ai/settings", tags=["settings"])
async def save_ai_settings(body: AISettingsRequest,
                           owner: str = Depends(get_owner),
                           manager: DiaryRAGManager = Depends(get_rag_manager)):
    """
    Сохранение AI настроек

    Включить AI можно только при заполненных ключе, адресе и обеих моделях.
    """
    try:
        await manager.settings_store.save_ai_settings(owner, AISettings(**body.model_dump()))
    except ConfigurationMissing:
        raise HTTPException(
            status_code=400,
            detail="All AI settings must be configured before enabling AI features"
        )
    return {"success": True}


@app.post("/api/ai/models", tags=["settings"])
async def fetch_models(body: ModelsRequest,
                       owner: str = Depends(get_owner),
                       manager: DiaryRAGManager = Depends(get_rag_manager)):
    """Список моделей OpenAI-совместимого провайдера"""
    if not body.api_key.strip() or not body.base_url.strip():
        raise HTTPException(status_code=400, detail="API key and base URL are required")

    try:
        models = await manager.list_models(body.base_url, body.api_key)
    except DiariaError as e:
        app_logger.error(f"[POST /api/ai/models] ошибка получения моделей: {e}")
        raise HTTPException(status_code=400, detail=f"Failed to fetch models: {e}")

    return {"models": [model.to_dict() for model in models]}


@app.post("/api/ai/vectors/build", tags=["vectors"])
async def build_vectors(owner: str = Depends(get_owner),
                        manager: DiaryRAGManager = Depends(get_rag_manager)):
    """Полное построение векторного индекса владельца"""
    await _require_enabled(manager, owner)
    try:
        result = await manager.build_vectors(owner, incremental=False)
    except DiariaError as e:
        app_logger.error(f"[POST /api/ai/vectors/build] ошибка построения индекса: {e}")
        raise _to_http_exception(e)
    return result.to_dict()


@app.post("/api/ai/vectors/build-incremental", tags=["vectors"])
async def build_vectors_incremental(owner: str = Depends(get_owner),
                                    manager: DiaryRAGManager = Depends(get_rag_manager)):
    """Инкрементальное построение: только новые и измененные записи"""
    await _require_enabled(manager, owner)
    try:
        result = await manager.build_vectors(owner, incremental=True)
    except DiariaError as e:
        app_logger.error(f"[POST /api/ai/vectors/build-incremental] ошибка: {e}")
        raise _to_http_exception(e)
    return result.to_dict()


@app.get("/api/ai/vectors/stats", tags=["vectors"])
async def vector_stats(owner: str = Depends(get_owner),
                       manager: DiaryRAGManager = Depends(get_rag_manager)):
    """Статистика векторного индекса владельца"""
    await _require_enabled(manager, owner)
    try:
        stats = await manager.get_stats(owner)
    except DiariaError as e:
        app_logger.error(f"[GET /api/ai/vectors/stats] ошибка получения статистики: {e}")
        raise _to_http_exception(e)
    return stats.to_dict()


@app.get("/api/ai/conversations", tags=["chat"])
async def list_conversations(owner: str = Depends(get_owner),
                             manager: DiaryRAGManager = Depends(get_rag_manager)):
    """Диалоги владельца, последние сверху"""
    conversations = manager.history_store.list_conversations(owner)
    return {"conversations": [asdict(conversation) for conversation in conversations]}


@app.get("/api/ai/conversations/{conversation_id}/messages", tags=["chat"])
async def list_messages(conversation_id: str,
                        owner: str = Depends(get_owner),
                        manager: DiaryRAGManager = Depends(get_rag_manager)):
    """Сообщения диалога в порядке создания"""
    if manager.history_store.get_conversation(owner, conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    messages = manager.history_store.list_messages(conversation_id)
    return {"messages": [message.to_dict() for message in messages]}


def _save_exchange(manager: DiaryRAGManager, owner: str, conversation_id: str,
                   user_message: str, answer: str, referenced: list):
    """Сохраняет вопрос и ответ в историю диалога"""
    manager.history_store.save_message(owner, conversation_id, "user", user_message)
    log_chat(owner, "user", user_message)
    if answer:
        manager.history_store.save_message(owner, conversation_id, "assistant", answer, referenced)
        log_chat(owner, "assistant", answer)


async def _run_chat(manager: DiaryRAGManager, owner: str, conversation_id: str,
                    content: str, sink: QueueTokenSink):
    """Фоновая задача чата: стриминг в очередь, затем сохранение и финальное событие"""
    try:
        result = await manager.stream_chat(owner, conversation_id, content, sink)
        _save_exchange(manager, owner, conversation_id, content,
                       result.full_text, result.referenced_entry_ids)
        await sink.push_event({
            "done": True,
            "conversation_id": conversation_id,
            "referenced_diaries": result.referenced_entry_ids,
        })
    except StreamInterrupted as e:
        app_logger.error(f"Стриминг чата прерван (владелец {owner}): {e}")
        _save_exchange(manager, owner, conversation_id, content,
                       e.partial_text, e.referenced_entry_ids)
        await sink.push_event({"error": str(e), "partial": True})
    except StreamCancelled as e:
        # Клиент отключился: частичный ответ сохраняем, задача остается отмененной
        _save_exchange(manager, owner, conversation_id, content,
                       e.partial_text, e.referenced_entry_ids)
        raise
    except DiariaError as e:
        app_logger.error(f"Ошибка чата (владелец {owner}): {e}")
        await sink.push_event({"error": str(e)})
    except Exception as e:
        app_logger.error(f"Неожиданная ошибка чата (владелец {owner}): {e}")
        await sink.push_event({"error": "Внутренняя ошибка сервера"})
    finally:
        await sink.close()


@app.post("/api/ai/chat", tags=["chat"])
async def chat_endpoint(body: ChatRequest,
                        owner: str = Depends(get_owner),
                        manager: DiaryRAGManager = Depends(get_rag_manager)):
    """
    Стриминговый чат с ассистентом дневника

    Ответ - поток SSE событий data: {"content": ...}, завершается событием
    {"done": true, "conversation_id": ..., "referenced_diaries": [...]}.
    """
    settings = await _require_enabled(manager, owner)
    try:
        settings.require_chat()
    except ConfigurationMissing as e:
        raise _to_http_exception(e)

    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content is required")

    if body.conversation_id:
        conversation = manager.history_store.get_conversation(owner, body.conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
    else:
        conversation = manager.history_store.create_conversation(owner, title=content[:50])

    app_logger.info(f"API чат владельца {owner}, диалог {conversation.id}: {content[:100]}...")

    sink = QueueTokenSink()
    chat_task = asyncio.ensure_future(_run_chat(manager, owner, conversation.id, content, sink))

    async def event_stream():
        try:
            async for event in sink.events():
                yield f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
        finally:
            if not chat_task.done():
                chat_task.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    app_logger.info(f"🚀 Запуск Diaria AI API на {host}:{port}")
    app_logger.info("📋 Доступные endpoints:")
    app_logger.info("   • GET  /health - Проверка здоровья системы")
    app_logger.info("   • GET  /api/ai/settings, PUT /api/ai/settings - AI настройки")
    app_logger.info("   • POST /api/ai/models - Список моделей провайдера")
    app_logger.info("   • POST /api/ai/vectors/build - Полное построение индекса")
    app_logger.info("   • POST /api/ai/vectors/build-incremental - Инкрементальное построение")
    app_logger.info("   • GET  /api/ai/vectors/stats - Статистика индекса")
    app_logger.info("   • POST /api/ai/chat - Стриминговый чат")

    uvicorn.run(
        "diaria.api.main:app",
        host=host,
        port=port,
        reload=os.getenv("DEBUG", "False").lower() == "true",
        log_level="info"
    )
