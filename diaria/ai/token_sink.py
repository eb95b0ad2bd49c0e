"""
Приемники токенов стриминга чата
"""
import asyncio
from typing import Any, AsyncIterator, Dict, Optional


class TokenSink:
    """
    Получатель токенов ответа

    push вызывается на каждый непустой токен в порядке поступления,
    транспорт (SSE, websocket, тесты) остается на стороне реализации.
    """

    async def push(self, token: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


_CLOSED = object()


class QueueTokenSink(TokenSink):
    """
    Очередь событий, которую читает слой HTTP-ответа

    Каждый токен превращается в событие {"content": token}.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def push(self, token: str) -> None:
        await self.push_event({'content': token})

    async def push_event(self, payload: Dict[str, Any]) -> None:
        if self._closed:
            raise RuntimeError("token sink is closed")
        await self._queue.put(payload)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Отдает события до закрытия приемника"""
        while True:
            item: Optional[Any] = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
