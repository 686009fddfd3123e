from typing import Dict, Any, Optional, List, Callable, Sequence
import asyncio
import itertools
import time

from conductor.infrastructure.observability.logging import agent_logger
from .memory_entry import MemoryEntry, MemoryTier

# Picks the victim among entries sharing the nearest expiry
TieBreaker = Callable[[Sequence[MemoryEntry]], MemoryEntry]


def oldest_inserted(candidates: Sequence[MemoryEntry]) -> MemoryEntry:
    return min(candidates, key=lambda entry: entry.sequence)


class ShortTermMemory:
    """Bounded in-memory store with TTL support.

    When full, the entry that would expire soonest is evicted, not the
    oldest one. Expired entries are purged lazily on access.
    """

    def __init__(
        self,
        capacity: int = 100,
        default_ttl: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        tie_breaker: TieBreaker = oldest_inserted
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.default_ttl = default_ttl
        self.clock = clock
        self.tie_breaker = tie_breaker
        self.entries: Dict[str, MemoryEntry] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def add(self, key: str, value: Any, ttl: Optional[float] = None) -> MemoryEntry:
        """Set a value with TTL, evicting the nearest expiry if at capacity"""

        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")

        async with self._lock:
            now = self.clock()
            self._purge_expired(now)

            if key not in self.entries and len(self.entries) >= self.capacity:
                self._evict_nearest_expiry()

            entry = MemoryEntry(
                key=key,
                value=value,
                tier=MemoryTier.SHORT_TERM,
                ttl=ttl,
                expires_at=now + ttl,
                sequence=next(self._sequence)
            )
            self.entries[key] = entry

        agent_logger.log_memory_update(MemoryTier.SHORT_TERM.value, "add", key, {"ttl": ttl})
        return entry

    async def get(self, key: str) -> Optional[Any]:
        """Get value if present and not expired"""

        entry = await self.get_entry(key)
        return entry.value if entry else None

    async def get_entry(self, key: str) -> Optional[MemoryEntry]:
        async with self._lock:
            entry = self.entries.get(key)
            if entry is None:
                return None

            if entry.is_expired(self.clock()):
                del self.entries[key]
                return None

            return entry

    async def delete(self, key: str) -> bool:
        """Delete a key"""

        async with self._lock:
            return self.entries.pop(key, None) is not None

    async def clear_expired(self) -> int:
        """Clear expired entries and return count"""

        async with self._lock:
            return self._purge_expired(self.clock())

    async def snapshot(self) -> List[MemoryEntry]:
        """Live entries in insertion order"""

        async with self._lock:
            self._purge_expired(self.clock())
            return sorted(self.entries.values(), key=lambda entry: entry.sequence)

    async def get_stats(self) -> Dict[str, Any]:
        async with self._lock:
            now = self.clock()
            active_count = sum(1 for entry in self.entries.values() if not entry.is_expired(now))

            return {
                "capacity": self.capacity,
                "total_keys": len(self.entries),
                "active_keys": active_count,
                "expired_keys": len(self.entries) - active_count
            }

    def _purge_expired(self, now: float) -> int:
        expired_keys = [key for key, entry in self.entries.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self.entries[key]
        return len(expired_keys)

    def _evict_nearest_expiry(self):
        nearest = min(entry.expires_at for entry in self.entries.values())
        candidates = [entry for entry in self.entries.values() if entry.expires_at == nearest]
        victim = self.tie_breaker(candidates)
        del self.entries[victim.key]

        agent_logger.log_memory_update(MemoryTier.SHORT_TERM.value, "evict", victim.key)
