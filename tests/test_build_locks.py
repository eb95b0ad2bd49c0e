"""
Тесты реестра блокировок построения индекса
"""
import pytest

from diaria.errors import BuildInProgress
from diaria.rag.build_locks import OwnerLockRegistry


class TestOwnerLockRegistry:
    """Тесты для OwnerLockRegistry"""

    def test_second_acquire_fails_fast(self):
        registry = OwnerLockRegistry()
        registry.try_acquire("alice")

        with pytest.raises(BuildInProgress):
            registry.try_acquire("alice")

        # Другой владелец не блокируется
        registry.try_acquire("bob")
        assert len(registry) == 2

    def test_hold_releases_and_evicts(self):
        """После освобождения запись владельца удаляется из реестра"""
        registry = OwnerLockRegistry()

        with registry.hold("alice"):
            assert registry.is_held("alice")

        assert not registry.is_held("alice")
        assert len(registry) == 0

    def test_hold_releases_on_error(self):
        registry = OwnerLockRegistry()

        with pytest.raises(ValueError):
            with registry.hold("alice"):
                raise ValueError("boom")

        assert len(registry) == 0

    def test_stale_token_does_not_release(self):
        registry = OwnerLockRegistry()
        old_token = registry.try_acquire("alice")
        registry.release("alice", old_token)
        registry.try_acquire("alice")

        registry.release("alice", old_token)
        assert registry.is_held("alice")
