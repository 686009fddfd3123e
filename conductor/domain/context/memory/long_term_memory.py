from typing import Dict, List, Any, Optional
from collections import OrderedDict
import asyncio
import itertools

from conductor.infrastructure.observability.logging import agent_logger
from ..similarity import SimilarityFunction, keyword_similarity
from .memory_entry import MemoryEntry, MemoryTier, ScoredEntry


class LongTermMemory:
    """Bounded store with similarity search and least-recently-accessed eviction"""

    def __init__(
        self,
        capacity: int = 1000,
        top_k: int = 5,
        similarity: SimilarityFunction = keyword_similarity
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.top_k = top_k
        self.similarity = similarity
        # Ordered from least to most recently accessed
        self.entries: "OrderedDict[str, MemoryEntry]" = OrderedDict()
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def add(self, key: str, value: Any) -> MemoryEntry:
        """Store or update a value; updates keep the original insertion rank"""

        async with self._lock:
            entry = self.entries.get(key)

            if entry is not None:
                entry.value = value
                self.entries.move_to_end(key)
            else:
                if len(self.entries) >= self.capacity:
                    evicted_key, _ = self.entries.popitem(last=False)
                    agent_logger.log_memory_update(MemoryTier.LONG_TERM.value, "evict", evicted_key)

                entry = MemoryEntry(
                    key=key,
                    value=value,
                    tier=MemoryTier.LONG_TERM,
                    sequence=next(self._sequence)
                )
                self.entries[key] = entry

        agent_logger.log_memory_update(MemoryTier.LONG_TERM.value, "add", key)
        return entry

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self.entries.get(key)
            if entry is None:
                return None
            self.entries.move_to_end(key)
            return entry.value

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.entries.pop(key, None) is not None

    async def search(self, query: str, top_k: Optional[int] = None) -> List[ScoredEntry]:
        """Rank entries by similarity to query.

        Ranking is stable: equal scores keep insertion order. At most
        top_k entries (the store default when omitted) are returned.
        """

        limit = self.top_k if top_k is None else top_k
        if limit <= 0:
            return []

        async with self._lock:
            candidates = list(self.entries.values())
            scored = []
            for entry in candidates:
                score = await self.similarity(query, entry.value)
                scored.append(ScoredEntry(entry=entry, score=score))

        scored.sort(key=lambda hit: (-hit.score, hit.entry.sequence))
        return scored[:limit]

    async def get_stats(self) -> Dict[str, Any]:
        async with self._lock:
            return {
                "capacity": self.capacity,
                "total_keys": len(self.entries),
                "top_k": self.top_k
            }
