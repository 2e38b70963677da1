import time
from typing import Callable, Protocol


class KeyValueStore(Protocol):
    """
    Хранилище состояния сессии (аналог sessionStorage вкладки).

    ttl - время жизни в секундах, None - до явного удаления.
    take() читает и сразу удаляет значение (одноразовые ключи).
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: float | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def take(self, key: str) -> str | None: ...


class MemoryStore:
    """KeyValueStore в памяти процесса, одна сессия оформления."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._items: dict[str, tuple[str, float | None]] = {}

    def get(self, key: str) -> str | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._items[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def take(self, key: str) -> str | None:
        value = self.get(key)
        self.delete(key)
        return value
