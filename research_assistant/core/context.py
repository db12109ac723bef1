"""
Conversation context cache: the last search result set and the paper in focus.

Generators read then write this object without locking. Messages from one session
must be processed one at a time by the caller (see session_store).
"""

import logging
from typing import Any

from research_assistant.core.errors import NoContext, ReferenceOutOfRange
from research_assistant.schemas.papers import Paper

logger = logging.getLogger(__name__)


class ConversationContext:
    """Ordered cached papers (provider ranking) plus an optional focused index."""

    def __init__(self, papers: list[Paper] | None = None, focused_index: int | None = None) -> None:
        self._papers: list[Paper] = list(papers or [])
        self._focused_index: int | None = None
        if focused_index is not None:
            self.focus(focused_index)

    @property
    def cached_papers(self) -> list[Paper]:
        """Copy of the cached papers so callers cannot mutate the cache."""
        return list(self._papers)

    @property
    def focused_index(self) -> int | None:
        return self._focused_index

    def __len__(self) -> int:
        return len(self._papers)

    def replace_papers(self, papers: list[Paper]) -> None:
        """Replace the cache wholesale (new search). Focus is cleared."""
        self._papers = list(papers)
        self._focused_index = None
        logger.info("[context:replace_papers] papers=%d", len(self._papers))

    def focus(self, index: int) -> Paper:
        if not 0 <= index < len(self._papers):
            raise ReferenceOutOfRange(index, len(self._papers))
        self._focused_index = index
        logger.info("[context:focus] index=%d id=%s", index, self._papers[index].id)
        return self._papers[index]

    def focused_paper(self) -> Paper | None:
        """Paper in focus, or None when unset or no longer a valid index."""
        idx = self._focused_index
        if idx is None or not 0 <= idx < len(self._papers):
            return None
        return self._papers[idx]

    def paper_at(self, index: int) -> Paper:
        if not 0 <= index < len(self._papers):
            raise ReferenceOutOfRange(index, len(self._papers))
        return self._papers[index]

    def enrich(self, index: int, **fields: Any) -> Paper:
        """Swap in a copy of the paper at index with extra fields (abstract, full_text)."""
        current = self.paper_at(index)
        updates = {k: v for k, v in fields.items() if v}
        if not updates:
            return current
        enriched = current.model_copy(update=updates)
        self._papers[index] = enriched
        logger.info("[context:enrich] index=%d fields=%s", index, sorted(updates))
        return enriched

    def require_papers(self, minimum: int = 1) -> list[Paper]:
        if len(self._papers) < minimum:
            raise NoContext()
        return self.cached_papers

    def clear(self) -> None:
        self._papers = []
        self._focused_index = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cached_papers": [p.model_dump(exclude={"full_text"}) for p in self._papers],
            "focused_index": self._focused_index,
        }
