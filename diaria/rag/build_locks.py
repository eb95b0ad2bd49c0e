"""
Реестр блокировок построения индекса по владельцам
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator
from diaria.errors import BuildInProgress


class OwnerLockRegistry:
    """
    Не более одного построения индекса на владельца

    Повторная попытка захвата не ждет, а сразу падает с BuildInProgress.
    Запись владельца удаляется из реестра при освобождении, поэтому
    реестр не растет с числом разных владельцев.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._held: Dict[str, int] = {}
        self._generation = 0

    def try_acquire(self, owner: str) -> int:
        """
        Захватывает блокировку владельца

        Returns:
            Токен захвата, который нужно передать в release

        Raises:
            BuildInProgress: если блокировка уже занята
        """
        with self._guard:
            if owner in self._held:
                raise BuildInProgress(owner)
            self._generation += 1
            self._held[owner] = self._generation
            return self._generation

    def release(self, owner: str, token: int) -> None:
        with self._guard:
            if self._held.get(owner) == token:
                del self._held[owner]

    @contextmanager
    def hold(self, owner: str) -> Iterator[None]:
        token = self.try_acquire(owner)
        try:
            yield
        finally:
            self.release(owner, token)

    def is_held(self, owner: str) -> bool:
        with self._guard:
            return owner in self._held

    def __len__(self) -> int:
        with self._guard:
            return len(self._held)
