import time
from dataclasses import dataclass
from typing import Any, Callable, Dict


@dataclass
class CacheEntry:
    data: Any = None
    timestamp: float = 0.0
    ttl: float = 0.0


class DataCache:
    """Tiny TTL cache for the simulated data feeds (crypto, news)."""

    def __init__(self, ttls: Dict[str, float], clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {
            key: CacheEntry(ttl=ttl) for key, ttl in ttls.items()
        }

    def get(self, key: str) -> Any:
        """Return cached data for key, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None or entry.data is None:
            return None
        if self._clock() - entry.timestamp >= entry.ttl:
            return None
        return entry.data

    def put(self, key: str, data: Any) -> None:
        entry = self._entries.setdefault(key, CacheEntry())
        entry.data = data
        entry.timestamp = self._clock()

    def age(self, key: str) -> float | None:
        entry = self._entries.get(key)
        if entry is None or entry.data is None:
            return None
        return self._clock() - entry.timestamp

    def status(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: {"cached": entry.data is not None, "age": self.age(key)}
            for key, entry in self._entries.items()
        }
