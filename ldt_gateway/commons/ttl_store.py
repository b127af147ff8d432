import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple


class TTLStore(Protocol):
    """get/set-with-TTL contract used by the replay cache.

    A persistent implementation (redis, database) only has to honour the same
    four calls; ``add_if_absent`` must be atomic.
    """

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def add_if_absent(self, key: str, value: Any, ttl: float) -> bool: ...

    def delete(self, key: str) -> None: ...


class InMemoryTTLStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, exp) in self._items.items() if exp <= now]
        for k in expired:
            del self._items[k]

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, exp = item
            if exp <= self._clock():
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._items[key] = (value, self._clock() + ttl)

    def add_if_absent(self, key: str, value: Any, ttl: float) -> bool:
        with self._lock:
            now = self._clock()
            self._purge(now)
            if key in self._items:
                return False
            self._items[key] = (value, now + ttl)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._items)
