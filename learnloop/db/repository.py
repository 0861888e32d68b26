"""Persistence operations used by the tutoring engine.

The engine only needs simple CRUD and filtered reads; every query it issues
lives here so services never build SQL themselves. All methods run on the
AsyncSession handed in by the caller and commit their own writes.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AI_RESPONSE_MAX_CHARS,
    USER_MESSAGE_MAX_CHARS,
    Concept,
    Content,
    ContentSection,
    Interaction,
    LearningMap,
    LearningSession,
)

logger = logging.getLogger(__name__)


class Repository:
    """Async data access for sessions, learning maps and interactions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Content
    # =========================================================================

    async def get_content(self, content_id: str) -> Optional[Content]:
        return await self.db.get(Content, content_id)

    async def get_sections(self, content_id: str) -> List[ContentSection]:
        result = await self.db.execute(
            select(ContentSection)
            .where(ContentSection.content_id == content_id)
            .order_by(ContentSection.section_order)
        )
        return list(result.scalars().all())

    async def get_sections_by_ids(self, section_ids: Sequence[str]) -> List[ContentSection]:
        """Fetch sections by id, preserving the order of `section_ids`."""
        if not section_ids:
            return []
        result = await self.db.execute(
            select(ContentSection).where(ContentSection.id.in_(list(section_ids)))
        )
        by_id = {s.id: s for s in result.scalars().all()}
        return [by_id[sid] for sid in section_ids if sid in by_id]

    # =========================================================================
    # Learning maps and concepts
    # =========================================================================

    async def get_learning_map(self, content_id: str) -> Optional[LearningMap]:
        result = await self.db.execute(
            select(LearningMap).where(LearningMap.content_id == content_id)
        )
        return result.scalars().first()

    async def get_concepts(self, learning_map_id: str) -> List[Concept]:
        result = await self.db.execute(
            select(Concept)
            .where(Concept.learning_map_id == learning_map_id)
            .order_by(Concept.concept_order)
        )
        return list(result.scalars().all())

    async def get_concept(self, concept_id: str) -> Optional[Concept]:
        return await self.db.get(Concept, concept_id)

    async def first_concept(self, learning_map_id: str) -> Optional[Concept]:
        result = await self.db.execute(
            select(Concept)
            .where(Concept.learning_map_id == learning_map_id)
            .order_by(Concept.concept_order)
            .limit(1)
        )
        return result.scalars().first()

    async def next_concept(self, concept: Concept) -> Optional[Concept]:
        """The concept with the smallest order greater than `concept`'s."""
        result = await self.db.execute(
            select(Concept)
            .where(
                Concept.learning_map_id == concept.learning_map_id,
                Concept.concept_order > concept.concept_order,
            )
            .order_by(Concept.concept_order)
            .limit(1)
        )
        return result.scalars().first()

    async def count_concepts(self, learning_map_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Concept.id)).where(Concept.learning_map_id == learning_map_id)
        )
        return int(result.scalar() or 0)

    async def replace_learning_map(
        self,
        content_id: str,
        map_fields: Dict[str, Any],
        concepts: Iterable[Dict[str, Any]],
    ) -> LearningMap:
        """
        Delete any existing map for the content and create a new one.

        Runs as one transaction: old concepts and map are removed, the new
        map is inserted and its concepts are added with concept_order
        assigned from their position (1-based). Sessions on the content that
        are not completed restart at the new map's first concept.
        """
        try:
            existing = await self.get_learning_map(content_id)
            if existing:
                await self.db.execute(
                    delete(Concept).where(Concept.learning_map_id == existing.id)
                )
                await self.db.execute(
                    delete(LearningMap).where(LearningMap.id == existing.id)
                )
                await self.db.flush()
                logger.info("Deleted existing learning map %s for content %s", existing.id, content_id)

            learning_map = LearningMap(content_id=content_id, **map_fields)
            self.db.add(learning_map)
            await self.db.flush()

            new_concepts = [
                Concept(learning_map_id=learning_map.id, concept_order=index + 1, **fields)
                for index, fields in enumerate(concepts)
            ]
            self.db.add_all(new_concepts)
            await self.db.flush()

            restarted = await self._restart_open_sessions(
                content_id,
                new_concepts[0].id if new_concepts else None,
            )
            if restarted:
                logger.info("Restarted %d open session(s) on content %s", restarted, content_id)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return learning_map

    async def _restart_open_sessions(self, content_id: str, first_concept_id: Optional[str]) -> int:
        """Point ACTIVE and PAUSED sessions of the content at `first_concept_id`; no commit."""
        result = await self.db.execute(
            select(LearningSession).where(
                LearningSession.content_id == content_id,
                LearningSession.status != "COMPLETED",
            )
        )
        sessions = list(result.scalars().all())
        now = datetime.utcnow()
        for session in sessions:
            session.current_concept_id = first_concept_id
            session.progress = 0
            if session.status == "ACTIVE":
                session.state = "init"
            data = dict(session.state_data or {})
            data.pop("last_evaluation", None)
            session.state_data = data
            session.updated_at = now
        return len(sessions)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def get_session(self, session_id: str) -> Optional[LearningSession]:
        return await self.db.get(LearningSession, session_id)

    async def refresh(self, entity: Any) -> None:
        await self.db.refresh(entity)

    async def find_active_session(self, user_id: str, content_id: str) -> Optional[LearningSession]:
        result = await self.db.execute(
            select(LearningSession)
            .where(
                LearningSession.user_id == user_id,
                LearningSession.content_id == content_id,
                LearningSession.status == "ACTIVE",
            )
            .order_by(LearningSession.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def create_session(
        self,
        user_id: str,
        content_id: str,
        current_concept_id: Optional[str] = None,
    ) -> LearningSession:
        now = datetime.utcnow()
        session = LearningSession(
            user_id=user_id,
            content_id=content_id,
            current_concept_id=current_concept_id,
            status="ACTIVE",
            state="init",
            state_data={},
            progress=0,
            total_time_minutes=0,
            last_active_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(session)
        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def update_session(self, session: LearningSession, **updates: Any) -> LearningSession:
        for key, value in updates.items():
            setattr(session, key, value)
        session.last_active_at = datetime.utcnow()
        session.updated_at = session.last_active_at
        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def user_sessions(self, user_id: str) -> List[LearningSession]:
        result = await self.db.execute(
            select(LearningSession)
            .where(LearningSession.user_id == user_id)
            .order_by(LearningSession.updated_at.desc())
        )
        return list(result.scalars().all())

    async def user_sessions_since(self, user_id: str, since: datetime) -> List[LearningSession]:
        result = await self.db.execute(
            select(LearningSession)
            .where(
                LearningSession.user_id == user_id,
                LearningSession.created_at >= since,
            )
            .order_by(LearningSession.created_at)
        )
        return list(result.scalars().all())

    async def user_content_sessions(self, user_id: str, content_id: str) -> List[LearningSession]:
        """A user's sessions on one content item, most recently active first."""
        result = await self.db.execute(
            select(LearningSession)
            .where(
                LearningSession.user_id == user_id,
                LearningSession.content_id == content_id,
            )
            .order_by(LearningSession.last_active_at.desc())
        )
        return list(result.scalars().all())

    # =========================================================================
    # Interactions
    # =========================================================================

    async def create_interaction(
        self,
        session_id: str,
        role: str,
        user_message: str,
        ai_response: str,
        interaction_type: str,
        tokens_used: int = 0,
        concept_id: Optional[str] = None,
        confidence_score: Optional[float] = None,
        prompt_version: Optional[str] = None,
        provider: Optional[str] = None,
        estimated_cost: float = 0.0,
    ) -> Interaction:
        interaction = Interaction(
            session_id=session_id,
            concept_id=concept_id,
            role=role.upper(),
            user_message=(user_message or "")[:USER_MESSAGE_MAX_CHARS],
            ai_response=(ai_response or "")[:AI_RESPONSE_MAX_CHARS],
            interaction_type=interaction_type,
            tokens_used=tokens_used,
            confidence_score=confidence_score,
            prompt_version=prompt_version,
            provider=provider,
            estimated_cost=estimated_cost,
            created_at=datetime.utcnow(),
        )
        self.db.add(interaction)
        await self.db.commit()
        await self.db.refresh(interaction)
        return interaction

    async def recent_interactions(self, session_id: str, limit: int = 5) -> List[Interaction]:
        """The last `limit` interactions of a session, oldest first."""
        result = await self.db.execute(
            select(Interaction)
            .where(Interaction.session_id == session_id)
            .order_by(Interaction.created_at.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def session_interactions(self, session_id: str) -> List[Interaction]:
        result = await self.db.execute(
            select(Interaction)
            .where(Interaction.session_id == session_id)
            .order_by(Interaction.created_at)
        )
        return list(result.scalars().all())

    async def interactions_for_sessions(self, session_ids: Sequence[str]) -> List[Interaction]:
        if not session_ids:
            return []
        result = await self.db.execute(
            select(Interaction)
            .where(Interaction.session_id.in_(list(session_ids)))
            .order_by(Interaction.created_at)
        )
        return list(result.scalars().all())

    async def scored_interactions(self, user_id: str) -> List[Interaction]:
        """A user's interactions with a concept and a confidence score, newest first."""
        result = await self.db.execute(
            select(Interaction)
            .join(LearningSession, Interaction.session_id == LearningSession.id)
            .where(
                LearningSession.user_id == user_id,
                Interaction.concept_id.is_not(None),
                Interaction.confidence_score.is_not(None),
            )
            .order_by(Interaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def user_concept_interactions(self, user_id: str, concept_ids: Sequence[str]) -> List[Interaction]:
        """A user's interactions on any of `concept_ids`, oldest first."""
        if not concept_ids:
            return []
        result = await self.db.execute(
            select(Interaction)
            .join(LearningSession, Interaction.session_id == LearningSession.id)
            .where(
                LearningSession.user_id == user_id,
                Interaction.concept_id.in_(list(concept_ids)),
            )
            .order_by(Interaction.created_at)
        )
        return list(result.scalars().all())

    async def concept_titles(self, concept_ids: Iterable[str]) -> Dict[str, str]:
        ids = list({cid for cid in concept_ids if cid})
        if not ids:
            return {}
        result = await self.db.execute(
            select(Concept.id, Concept.title).where(Concept.id.in_(ids))
        )
        return {row[0]: row[1] for row in result.all()}

    async def content_titles(self, content_ids: Iterable[str]) -> Dict[str, str]:
        ids = list({cid for cid in content_ids if cid})
        if not ids:
            return {}
        result = await self.db.execute(
            select(Content.id, Content.title).where(Content.id.in_(ids))
        )
        return {row[0]: row[1] for row in result.all()}
