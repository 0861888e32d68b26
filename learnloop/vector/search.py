"""Similarity-search contract used by context assembly."""

from typing import List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel


class SectionHit(BaseModel):
    """One content section matched by a similarity query."""

    section_id: str
    score: float


@runtime_checkable
class SectionSearch(Protocol):
    """Anything that can rank content sections against a query."""

    async def search(
        self,
        query: str,
        content_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[SectionHit]:
        ...
