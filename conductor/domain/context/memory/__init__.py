from .memory_entry import MemoryEntry, MemoryTier, ScoredEntry
from .short_term_memory import ShortTermMemory, oldest_inserted
from .long_term_memory import LongTermMemory
from .episodic_memory import EpisodicMemory, EpisodeHandle
from .memory_store import MemoryStore

__all__ = [
    "MemoryEntry",
    "MemoryTier",
    "ScoredEntry",
    "ShortTermMemory",
    "oldest_inserted",
    "LongTermMemory",
    "EpisodicMemory",
    "EpisodeHandle",
    "MemoryStore",
]
