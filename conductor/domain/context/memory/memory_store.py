from typing import Dict, List, Any, Optional, Callable, AsyncContextManager
import time
import structlog

from conductor.infrastructure.config import MemoryConfig
from ..similarity import SimilarityFunction, keyword_similarity
from .memory_entry import MemoryEntry, MemoryTier, ScoredEntry
from .short_term_memory import ShortTermMemory
from .long_term_memory import LongTermMemory
from .episodic_memory import EpisodicMemory, EpisodeHandle

logger = structlog.get_logger(__name__)


class MemoryStore:
    """Tiered key-value memory shared by agents and teams.

    Each tier is configured independently and guarded by its own lock;
    add/get dispatch on the MemoryTier tag.
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        similarity: SimilarityFunction = keyword_similarity,
        short_term: Optional[ShortTermMemory] = None,
        long_term: Optional[LongTermMemory] = None,
        episodic: Optional[EpisodicMemory] = None
    ):
        config = config or MemoryConfig()
        self.short_term = short_term or ShortTermMemory(
            capacity=config.short_term_capacity,
            default_ttl=config.short_term_ttl,
            clock=clock
        )
        self.long_term = long_term or LongTermMemory(
            capacity=config.long_term_capacity,
            top_k=config.long_term_top_k,
            similarity=similarity
        )
        self.episodic = episodic or EpisodicMemory()
        self.tiers: Dict[MemoryTier, Any] = {
            MemoryTier.SHORT_TERM: self.short_term,
            MemoryTier.LONG_TERM: self.long_term,
            MemoryTier.EPISODIC: self.episodic,
        }

    async def add(
        self,
        key: str,
        value: Any,
        tier: MemoryTier = MemoryTier.SHORT_TERM,
        ttl: Optional[float] = None
    ) -> MemoryEntry:
        if tier == MemoryTier.SHORT_TERM:
            return await self.short_term.add(key, value, ttl=ttl)
        if ttl is not None:
            raise ValueError(f"ttl is only supported by the short-term tier, not {tier.value}")
        return await self.tiers[tier].add(key, value)

    async def get(self, key: str, tier: MemoryTier = MemoryTier.SHORT_TERM) -> Optional[Any]:
        return await self.tiers[tier].get(key)

    async def search(self, query: str, top_k: Optional[int] = None) -> List[ScoredEntry]:
        return await self.long_term.search(query, top_k=top_k)

    async def start_episode(self, episode_id: str) -> EpisodeHandle:
        return await self.episodic.start_episode(episode_id)

    async def end_episode(self, handle: EpisodeHandle) -> List[MemoryEntry]:
        return await self.episodic.end_episode(handle)

    def episode(self, episode_id: str) -> AsyncContextManager[EpisodeHandle]:
        return self.episodic.episode(episode_id)

    async def get_episode_history(self) -> List[MemoryEntry]:
        return await self.episodic.get_episode_history()

    async def recall(self, query: str, limit: Optional[int] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Assemble planning context from all three tiers"""

        recent = await self.short_term.snapshot()
        hits = await self.long_term.search(query, top_k=limit)
        history = await self.episodic.get_episode_history() if self.episodic.is_open else []

        context = {
            "recent": [entry.to_context() for entry in recent],
            # Unrelated long-term entries are noise for the decision capability
            "relevant": [
                {**hit.entry.to_context(), "score": hit.score}
                for hit in hits if hit.score > 0
            ],
            "episode": [entry.to_context() for entry in history],
        }

        logger.debug(
            "Recalled memory context",
            query=query[:50],
            recent=len(context["recent"]),
            relevant=len(context["relevant"]),
            episode=len(context["episode"])
        )
        return context

    async def clear_expired(self) -> int:
        return await self.short_term.clear_expired()

    async def stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            tier.value: await store.get_stats()
            for tier, store in self.tiers.items()
        }
