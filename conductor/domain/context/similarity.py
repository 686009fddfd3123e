from typing import Any, Awaitable, Callable, Set
import json
import re

# (query, stored value) -> relevance in [0, 1]
SimilarityFunction = Callable[[str, Any], Awaitable[float]]

PHRASE_BONUS = 0.3

_WORD = re.compile(r"\w+")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(value)


def _words(text: str) -> Set[str]:
    return set(_WORD.findall(text))


async def keyword_similarity(query: str, value: Any) -> float:
    """Share of query words found in the value, plus a bonus for the whole phrase"""

    needle = query.lower()
    haystack = _as_text(value).lower()

    wanted = _words(needle)
    if not wanted:
        return 0.0

    score = len(wanted & _words(haystack)) / len(wanted)
    if needle in haystack:
        score += PHRASE_BONUS

    return min(score, 1.0)
