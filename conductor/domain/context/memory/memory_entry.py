from typing import Any, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from conductor.domain.models.agent_state import utcnow


class MemoryTier(str, Enum):
    """Memory tiers, used as the dispatch tag of MemoryStore"""
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"
    EPISODIC = "episodic"


class MemoryEntry(BaseModel):
    """A single stored value"""
    key: str
    value: Any = None
    tier: MemoryTier
    created_at: datetime = Field(default_factory=utcnow)
    ttl: Optional[float] = Field(None, description="Seconds; short-term only")
    episode_id: Optional[str] = Field(None, description="Owning episode; episodic only")
    expires_at: Optional[float] = Field(None, description="Store clock reading at which the entry expires")
    sequence: int = Field(default=0, description="Insertion order within the tier")

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_context(self) -> dict:
        return {"key": self.key, "value": self.value}


class ScoredEntry(BaseModel):
    """A long-term search hit"""
    entry: MemoryEntry
    score: float
