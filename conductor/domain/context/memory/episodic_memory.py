from typing import Dict, List, Any, Optional, AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
import asyncio
import itertools
import uuid

from conductor.domain.models.agent_state import utcnow
from conductor.domain.models.errors import (
    DuplicateNameError,
    EpisodeAlreadyOpenError,
    EpisodeNotOpenError,
    EpisodeOwnershipError,
)
from conductor.infrastructure.observability.logging import agent_logger
from .memory_entry import MemoryEntry, MemoryTier


@dataclass(frozen=True)
class EpisodeHandle:
    """Proof of ownership returned to the caller that opened an episode"""
    episode_id: str
    token: str


@dataclass
class Episode:
    id: str
    token: str
    entries: List[MemoryEntry]
    started_at: datetime
    ended_at: Optional[datetime] = None

    @property
    def closed(self) -> bool:
        return self.ended_at is not None


class EpisodicMemory:
    """Entries grouped into explicitly opened and closed episodes.

    At most one episode is open per store. Closed episodes are read-only.
    """

    def __init__(self):
        self.episodes: Dict[str, Episode] = {}
        self._current: Optional[Episode] = None
        self._last_closed: Optional[Episode] = None
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._current is not None

    @property
    def current_episode_id(self) -> Optional[str]:
        return self._current.id if self._current else None

    async def start_episode(self, episode_id: str) -> EpisodeHandle:
        """Open an episode; fails rather than queueing if one is already open"""

        async with self._lock:
            if self._current is not None:
                raise EpisodeAlreadyOpenError(
                    f"Episode '{self._current.id}' is still open",
                    {"open_episode": self._current.id, "requested": episode_id}
                )
            if episode_id in self.episodes:
                raise DuplicateNameError(
                    f"Episode '{episode_id}' was already recorded",
                    {"episode_id": episode_id}
                )

            episode = Episode(
                id=episode_id,
                token=uuid.uuid4().hex,
                entries=[],
                started_at=utcnow()
            )
            self.episodes[episode_id] = episode
            self._current = episode

        agent_logger.log_memory_update(MemoryTier.EPISODIC.value, "start", details={"episode_id": episode_id})
        return EpisodeHandle(episode_id=episode_id, token=episode.token)

    async def end_episode(self, handle: EpisodeHandle) -> List[MemoryEntry]:
        """Close the open episode; only its opener may do so"""

        async with self._lock:
            episode = self._current
            if episode is None:
                raise EpisodeNotOpenError("No episode is open")
            if handle.episode_id != episode.id or handle.token != episode.token:
                raise EpisodeOwnershipError(
                    f"Episode '{episode.id}' can only be closed by its opener",
                    {"open_episode": episode.id, "handle": handle.episode_id}
                )

            episode.ended_at = utcnow()
            self._current = None
            self._last_closed = episode

        agent_logger.log_memory_update(
            MemoryTier.EPISODIC.value,
            "end",
            details={"episode_id": episode.id, "entries": len(episode.entries)}
        )
        return list(episode.entries)

    @asynccontextmanager
    async def episode(self, episode_id: str) -> AsyncIterator[EpisodeHandle]:
        handle = await self.start_episode(episode_id)
        try:
            yield handle
        finally:
            await self.end_episode(handle)

    async def add(self, key: str, value: Any) -> MemoryEntry:
        """Append an entry to the open episode"""

        async with self._lock:
            if self._current is None:
                raise EpisodeNotOpenError(
                    f"Cannot add '{key}': no episode is open",
                    {"key": key}
                )

            entry = MemoryEntry(
                key=key,
                value=value,
                tier=MemoryTier.EPISODIC,
                episode_id=self._current.id,
                sequence=next(self._sequence)
            )
            self._current.entries.append(entry)

        agent_logger.log_memory_update(MemoryTier.EPISODIC.value, "add", key, {"episode_id": entry.episode_id})
        return entry

    async def get(self, key: str) -> Optional[Any]:
        """Latest value for key in the open (or most recently closed) episode"""

        async with self._lock:
            episode = self._visible_episode()
            if episode is None:
                return None
            for entry in reversed(episode.entries):
                if entry.key == key:
                    return entry.value
            return None

    async def get_episode_history(self) -> List[MemoryEntry]:
        """Entries of the open or most recently closed episode, in creation order"""

        async with self._lock:
            episode = self._visible_episode()
            return list(episode.entries) if episode else []

    async def get_episode(self, episode_id: str) -> List[MemoryEntry]:
        async with self._lock:
            episode = self.episodes.get(episode_id)
            return list(episode.entries) if episode else []

    async def get_stats(self) -> Dict[str, Any]:
        async with self._lock:
            return {
                "episodes": len(self.episodes),
                "open_episode": self._current.id if self._current else None,
                "total_entries": sum(len(e.entries) for e in self.episodes.values())
            }

    def _visible_episode(self) -> Optional[Episode]:
        return self._current or self._last_closed
