"""Planner role: turns a content item's sections into a learning map."""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...core.exceptions import (
    ContentNotFoundError,
    LearningMapNotFoundError,
    MalformedAIOutputError,
    ValidationError,
)
from ...db.repository import Repository
from ..orchestrator import Orchestrator, OrchestrationRequest
from ..parsing import as_number, as_str_list, clamp, parse_ai_json, pick
from ..registry import AIRole

logger = logging.getLogger(__name__)


class LearningMapResult(BaseModel):
    learning_map_id: str
    concept_count: int


class ConceptDetail(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    concept_order: int
    difficulty: int
    estimated_minutes: int
    prerequisites: List[str] = Field(default_factory=list)
    key_points: List[str] = Field(default_factory=list)


class LearningMapDetail(BaseModel):
    id: str
    content_id: str
    overview: Optional[str] = None
    total_concepts: int
    estimated_duration: int
    difficulty_level: str
    concepts: List[ConceptDetail] = Field(default_factory=list)


def difficulty_level(difficulties: List[float]) -> str:
    """Mean concept difficulty: <2 beginner, <3.5 intermediate, else advanced."""
    if not difficulties:
        return "beginner"
    mean = sum(difficulties) / len(difficulties)
    if mean < 2:
        return "beginner"
    if mean < 3.5:
        return "intermediate"
    return "advanced"


def format_plan_sections(sections) -> str:
    return "\n\n---\n\n".join(
        f"## Section {i + 1}: {section.title}\n{section.content_text}"
        for i, section in enumerate(sections)
    )


def _concept_fields(raw: Dict[str, Any], position: int) -> Dict[str, Any]:
    return {
        "title": str(raw.get("title") or f"Concept {position}").strip()[:500],
        "description": str(raw.get("description") or ""),
        "difficulty": int(round(clamp(as_number(raw.get("difficulty"), 1.0), 1, 5))),
        "estimated_minutes": max(0, int(as_number(pick(raw, "estimatedMinutes", "estimated_minutes"), 0.0))),
        "prerequisites": as_str_list(raw.get("prerequisites")),
        "key_points": as_str_list(pick(raw, "keyPoints", "key_points")),
    }


class PlannerService:
    """Generates and reads learning maps."""

    def __init__(self, orchestrator: Orchestrator, repository: Repository):
        self.orchestrator = orchestrator
        self.repository = repository

    async def generate_learning_map(self, user_id: str, content_id: str) -> LearningMapResult:
        """
        Ask the planner for a curriculum and replace the content's map with it.

        Raises:
            ContentNotFoundError: Unknown content
            ValidationError: The content has no sections
            MalformedAIOutputError: The plan could not be decoded or is empty
        """
        content = await self.repository.get_content(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)

        sections = await self.repository.get_sections(content_id)
        if not sections:
            raise ValidationError("Content has no sections to analyze", {"content_id": content_id})

        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.PLANNER,
                content_id=content_id,
                user_message="Generate a learning map for this content.",
                additional_context={
                    "contentTitle": content.title,
                    "contentDescription": content.description or "",
                    "contentSections": format_plan_sections(sections),
                },
            ),
        )

        plan = parse_ai_json(response.content)
        raw_concepts = [c for c in (plan.get("concepts") or []) if isinstance(c, dict)]
        if not raw_concepts:
            raise MalformedAIOutputError("Learning map has no concepts", raw=response.content)

        concepts = [_concept_fields(raw, i + 1) for i, raw in enumerate(raw_concepts)]
        total_minutes = as_number(pick(plan, "totalEstimatedMinutes", "total_estimated_minutes"), 0.0)
        if total_minutes <= 0:
            total_minutes = sum(c["estimated_minutes"] for c in concepts)

        learning_map = await self.repository.replace_learning_map(
            content_id,
            {
                "overview": str(plan.get("overview") or ""),
                "total_concepts": len(concepts),
                "estimated_duration": int(total_minutes),
                "difficulty_level": difficulty_level([c["difficulty"] for c in concepts]),
            },
            concepts,
        )

        logger.info("Learning map %s created with %d concepts", learning_map.id, len(concepts))
        return LearningMapResult(learning_map_id=learning_map.id, concept_count=len(concepts))

    async def get_learning_map(self, content_id: str) -> LearningMapDetail:
        learning_map = await self.repository.get_learning_map(content_id)
        if learning_map is None:
            raise LearningMapNotFoundError(content_id)

        concepts = await self.repository.get_concepts(learning_map.id)
        return LearningMapDetail(
            id=learning_map.id,
            content_id=learning_map.content_id,
            overview=learning_map.overview,
            total_concepts=learning_map.total_concepts,
            estimated_duration=learning_map.estimated_duration,
            difficulty_level=learning_map.difficulty_level,
            concepts=[
                ConceptDetail(
                    id=c.id,
                    title=c.title,
                    description=c.description,
                    concept_order=c.concept_order,
                    difficulty=c.difficulty,
                    estimated_minutes=c.estimated_minutes,
                    prerequisites=list(c.prerequisites or []),
                    key_points=list(c.key_points or []),
                )
                for c in concepts
            ],
        )
