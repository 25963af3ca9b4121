import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple

from depthbook.types import DepthData


@dataclass(frozen=True)
class CacheKey:
    chain_id: str
    pool: str
    max_levels: int
    precision: float
    dex: Optional[str] = None
    reference_price: Optional[float] = None


class DepthCache(Protocol):
    def get(self, key: CacheKey) -> Optional[DepthData]:
        ...

    def set(self, key: CacheKey, value: DepthData) -> None:
        ...


class TTLDepthCache:
    """In-memory cache of recent books, expired by age and bounded in size."""

    def __init__(self, ttl: float = 2.0, max_entries: int = 100, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, Tuple[DepthData, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[DepthData]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: CacheKey, value: DepthData) -> None:
        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            self._entries[key] = (value, now)
            expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at > self.ttl]
            for k in expired:
                del self._entries[k]
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
