"""Context assembly for AI prompts.

Gathers content metadata, concept metadata, RAG sections and recent session
history into one flat prompt context, then trims it to a character budget.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..db.models import ContentSection, Interaction
from ..db.repository import Repository
from ..vector.search import SectionSearch

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTEXT_CHARS = 16000
HISTORY_LIMIT = 5
HISTORY_SNIPPET_CHARS = 200
TRUNCATION_FLOOR = 500
TRUNCATION_MARKER = "... [truncated]"

# Least important first.
TRUNCATABLE_FIELDS = (
    "sessionHistory",
    "previousStruggles",
    "relevantSections",
    "contentSections",
)


def format_sections(sections: Iterable[ContentSection]) -> str:
    return "\n\n---\n\n".join(
        f"### Section {i + 1}: {section.title}\n{section.content_text}"
        for i, section in enumerate(sections)
    )


def format_history(interactions: Iterable[Interaction]) -> str:
    """Render interactions oldest-first as ``[ROLE]: <snippet>...`` blocks."""
    return "\n\n".join(
        f"[{interaction.role}]: {(interaction.ai_response or '')[:HISTORY_SNIPPET_CHARS]}..."
        for interaction in interactions
    )


def _serialized_length(context: Dict[str, Any]) -> int:
    return len(json.dumps(context, ensure_ascii=False, separators=(",", ":"), default=str))


def truncate_context(context: Dict[str, Any], max_chars: int = DEFAULT_MAX_CONTEXT_CHARS) -> Dict[str, Any]:
    """
    Shorten low-priority fields until the serialized context fits `max_chars`.

    Each field is cut to ``max(500, len - excess - len(marker))`` characters
    plus the marker, and only if it is longer than 500. Stops as soon as the context fits or
    every field has been visited. A context already under budget is
    returned unchanged.
    """
    result = dict(context)
    total = _serialized_length(result)

    for field in TRUNCATABLE_FIELDS:
        if total <= max_chars:
            break

        value = result.get(field)
        if isinstance(value, str) and len(value) > TRUNCATION_FLOOR:
            excess = total - max_chars
            new_length = max(TRUNCATION_FLOOR, len(value) - excess - len(TRUNCATION_MARKER))
            result[field] = value[:new_length] + TRUNCATION_MARKER
            total = _serialized_length(result)

    return result


class ContextAssembler:
    """Builds bounded prompt contexts from the store and similarity search."""

    def __init__(
        self,
        repository: Repository,
        search: Optional[SectionSearch] = None,
        max_chars: int = DEFAULT_MAX_CONTEXT_CHARS,
        max_sections: int = 5,
    ):
        self.repository = repository
        self.search = search
        self.max_chars = max_chars
        self.max_sections = max_sections

    async def assemble(
        self,
        content_id: Optional[str] = None,
        concept_id: Optional[str] = None,
        session_id: Optional[str] = None,
        max_sections: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Assemble a prompt context. Every source is optional; a missing id or
        entity just leaves its fields out.
        """
        context: Dict[str, Any] = {}

        if content_id:
            content = await self.repository.get_content(content_id)
            if content:
                context["contentTitle"] = content.title
                context["contentDescription"] = content.description or ""

        if concept_id:
            concept = await self.repository.get_concept(concept_id)
            if concept:
                context["conceptTitle"] = concept.title
                context["conceptDescription"] = concept.description or ""

        if content_id and context.get("conceptTitle"):
            relevant = await self._relevant_sections(
                f"{context['conceptTitle']} {context.get('conceptDescription', '')}",
                content_id,
                max_sections or self.max_sections,
            )
            if relevant:
                context["relevantSections"] = relevant

        if session_id:
            session = await self.repository.get_session(session_id)
            if session:
                context["sessionState"] = session.status

            interactions = await self.repository.recent_interactions(session_id, HISTORY_LIMIT)
            if interactions:
                context["sessionHistory"] = format_history(interactions)

        return truncate_context(context, self.max_chars)

    async def _relevant_sections(self, query: str, content_id: str, limit: int) -> Optional[str]:
        """Best-effort RAG lookup; failures are logged and yield None."""
        if self.search is None:
            return None

        try:
            hits = await self.search.search(query, content_id=content_id, limit=limit)
            if not hits:
                return None
            sections: List[ContentSection] = await self.repository.get_sections_by_ids(
                [hit.section_id for hit in hits]
            )
        except Exception as e:
            logger.warning("RAG search failed for content %s: %s", content_id, e)
            return None

        return format_sections(sections) if sections else None
