"""Learning session service.

Owns the session lifecycle (create, pause, resume, complete), concept
advancement, and the glue between an inbound learner message and the turn
graph. Every mutation of one session runs under that session's lock.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ...core.exceptions import (
    ContentNotFoundError,
    InvalidTransitionError,
    SessionNotFoundError,
    ValidationError,
)
from ...core.locks import SessionLocks
from ...db.models import LearningSession
from ...db.repository import Repository
from ...observability.langsmith import build_trace_config
from ..orchestrator import Orchestrator
from ..roles.coach import CoachAction, CoachDecision, CoachService
from ..roles.examiner import ExaminerEvaluation, ExaminerService
from ..roles.tutor import TutorResponse, TutorService
from .graph import build_turn_graph
from .state import create_turn_state
from .state_machine import SessionAction, SessionState, next_state

logger = logging.getLogger(__name__)

# Gaps longer than this between turns are not counted as study time.
IDLE_CUTOFF_SECONDS = 30 * 60

DECISION_ACTIONS = {
    CoachAction.PROCEED: SessionAction.PROCEED,
    CoachAction.REVIEW: SessionAction.REVIEW,
    CoachAction.PRACTICE: SessionAction.PRACTICE,
    CoachAction.COMPLETE: SessionAction.COMPLETE,
}


class ConceptSummary(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    concept_order: int


class SessionDetail(BaseModel):
    id: str
    user_id: str
    content_id: str
    content_title: Optional[str] = None
    current_concept_id: Optional[str] = None
    current_concept: Optional[ConceptSummary] = None
    status: str
    state: str
    progress: int
    total_time_minutes: int
    last_active_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TurnResult(BaseModel):
    """Outcome of one learner turn."""

    session_id: str
    state: str
    status: str
    progress: int
    current_concept_id: Optional[str] = None
    actions: List[str] = Field(default_factory=list)
    explanation: Optional[TutorResponse] = None
    evaluation: Optional[ExaminerEvaluation] = None
    decision: Optional[CoachDecision] = None
    practice_task: Optional[str] = None


class SessionService:
    """Walks a learner through a content item's learning map."""

    def __init__(
        self,
        repository: Repository,
        orchestrator: Orchestrator,
        locks: Optional[SessionLocks] = None,
    ):
        self.repository = repository
        self.orchestrator = orchestrator
        self.locks = locks if locks is not None else SessionLocks()
        self.tutor = TutorService(orchestrator)
        self.examiner = ExaminerService(orchestrator)
        self.coach = CoachService(orchestrator)

    # =========================================================================
    # Lookup
    # =========================================================================

    async def load(self, session_id: str) -> LearningSession:
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def get_session(self, session_id: str, user_id: str) -> LearningSession:
        """Fetch a session owned by `user_id`; other users' sessions are not found."""
        session = await self.repository.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self, user_id: str) -> List[LearningSession]:
        return await self.repository.user_sessions(user_id)

    async def describe(self, session: LearningSession) -> SessionDetail:
        content = await self.repository.get_content(session.content_id)
        concept = None
        if session.current_concept_id:
            concept = await self.repository.get_concept(session.current_concept_id)

        return SessionDetail(
            id=session.id,
            user_id=session.user_id,
            content_id=session.content_id,
            content_title=content.title if content else None,
            current_concept_id=session.current_concept_id,
            current_concept=ConceptSummary(
                id=concept.id,
                title=concept.title,
                description=concept.description,
                concept_order=concept.concept_order,
            ) if concept else None,
            status=session.status,
            state=session.state,
            progress=session.progress,
            total_time_minutes=session.total_time_minutes,
            last_active_at=session.last_active_at,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_session(self, user_id: str, content_id: str) -> LearningSession:
        """
        Start a session at the first concept of the content's learning map.

        Raises:
            ContentNotFoundError: Unknown content
            ValidationError: The content has no learning map yet
        """
        content = await self.repository.get_content(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)

        learning_map = await self.repository.get_learning_map(content_id)
        if learning_map is None:
            raise ValidationError(
                "Content has no learning map. Please generate one first.",
                {"content_id": content_id},
            )

        first = await self.repository.first_concept(learning_map.id)
        session = await self.repository.create_session(
            user_id=user_id,
            content_id=content_id,
            current_concept_id=first.id if first else None,
        )
        logger.info("Created session %s for user %s on content %s", session.id, user_id, content_id)
        return session

    async def pause_session(self, session_id: str, user_id: str) -> LearningSession:
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            paused_from = session.state
            await self.apply_action(
                session,
                SessionAction.PAUSE,
                status="PAUSED",
                state_data={**(session.state_data or {}), "paused_from": paused_from},
            )
            return session

    async def resume_session(self, session_id: str, user_id: str) -> LearningSession:
        """Resume always re-enters explain; the pre-pause state stays in state_data."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            await self.apply_action(session, SessionAction.RESUME, status="ACTIVE")
            return session

    async def complete_session(self, session_id: str, user_id: str) -> LearningSession:
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            if session.status != "COMPLETED":
                await self._complete(session)
            return session

    async def _complete(self, session: LearningSession) -> None:
        await self.repository.update_session(
            session,
            status="COMPLETED",
            progress=100,
            state=SessionState.COMPLETE.value,
        )
        logger.info("Session %s completed", session.id)

    # =========================================================================
    # State machine and concept advancement
    # =========================================================================

    async def apply_action(self, session: LearningSession, action: SessionAction, **updates: Any) -> SessionState:
        """
        Move the session along the state machine and persist it.

        Raises:
            InvalidTransitionError: No transition for (state, action)
        """
        target = next_state(SessionState(session.state), action)
        if target is None:
            raise InvalidTransitionError(session.state, SessionAction(action).value)

        await self.repository.update_session(session, state=target.value, **updates)
        return target

    async def is_last_concept(self, session: LearningSession) -> bool:
        if not session.current_concept_id:
            return True
        concept = await self.repository.get_concept(session.current_concept_id)
        if concept is None:
            return True
        return await self.repository.next_concept(concept) is None

    async def move_to_next_concept(self, session_id: str) -> bool:
        """
        Advance to the next concept by order.

        Returns:
            True when a next concept exists; False when the session was on
            its last concept (the session is completed) or has none.
        """
        async with self.locks.hold(session_id):
            session = await self.load(session_id)
            return await self._advance(session)

    async def _advance(self, session: LearningSession) -> bool:
        if not session.current_concept_id:
            return False

        current = await self.repository.get_concept(session.current_concept_id)
        if current is None:
            return False

        following = await self.repository.next_concept(current)
        if following is None:
            await self._complete(session)
            return False

        total = await self.repository.count_concepts(current.learning_map_id)
        progress = int(current.concept_order * 100 / total + 0.5)
        await self.repository.update_session(
            session,
            current_concept_id=following.id,
            progress=progress,
        )
        return True

    async def apply_decision(
        self,
        session: LearningSession,
        decision: CoachDecision,
        evaluation: ExaminerEvaluation,
    ) -> Tuple[List[str], Optional[str]]:
        """
        Apply a coach decision from decide_next.

        Returns:
            (actions applied, hint for the next explanation)
        """
        action = DECISION_ACTIONS[decision.next_action]

        if action == SessionAction.COMPLETE:
            await self.apply_action(session, action)
            await self._complete(session)
            return [action.value], None

        await self.apply_action(session, action)

        if action == SessionAction.PROCEED:
            if not await self._advance(session):
                return [action.value, SessionAction.COMPLETE.value], None
            return [action.value], None

        if action == SessionAction.REVIEW:
            focus = decision.concept_to_focus or ", ".join(evaluation.gaps)
            hint = "The learner did not fully understand the previous explanation. Use a different approach."
            if focus:
                hint = f"{hint} Focus on: {focus}"
            return [action.value], hint

        return [action.value], None

    # =========================================================================
    # Side requests
    # =========================================================================

    async def _studying(self, session_id: str, user_id: str, action: str) -> LearningSession:
        session = await self.get_session(session_id, user_id)
        if session.status == "COMPLETED":
            raise InvalidTransitionError(session.state, action)
        if not session.current_concept_id:
            raise ValidationError("Session has no current concept", {"session_id": session_id})
        return session

    async def ask_question(self, session_id: str, user_id: str, question: str) -> TutorResponse:
        """Answer a free-form question about the current concept. The session state is unchanged."""
        async with self.locks.hold(session_id):
            session = await self._studying(session_id, user_id, "ask")
            return await self.tutor.answer_question(
                user_id, session.content_id, session.current_concept_id, question, session.id
            )

    async def simplify_explanation(
        self,
        session_id: str,
        user_id: str,
        previous_explanation: str,
    ) -> TutorResponse:
        async with self.locks.hold(session_id):
            session = await self._studying(session_id, user_id, "simplify")
            return await self.tutor.simplify_explanation(
                user_id, session.content_id, session.current_concept_id, previous_explanation, session.id
            )

    async def probe_question(self, session_id: str, user_id: str) -> str:
        """
        One follow-up question targeting the gaps of the last evaluation.

        Raises:
            ValidationError: The session has not been evaluated yet
        """
        async with self.locks.hold(session_id):
            session = await self._studying(session_id, user_id, "probe")
            evaluation_data = (session.state_data or {}).get("last_evaluation")
            if not evaluation_data:
                raise ValidationError("No evaluation available for this session", {"session_id": session_id})
            return await self.examiner.generate_probe_question(
                user_id,
                session.content_id,
                session.current_concept_id,
                ExaminerEvaluation.model_validate(evaluation_data),
                session.id,
            )

    # =========================================================================
    # Turns
    # =========================================================================

    async def _track_activity(self, session: LearningSession) -> None:
        now = datetime.utcnow()
        data: Dict[str, Any] = dict(session.state_data or {})
        if session.last_active_at:
            elapsed = (now - session.last_active_at).total_seconds()
            if 0 < elapsed <= IDLE_CUTOFF_SECONDS:
                data["active_seconds"] = data.get("active_seconds", 0) + elapsed
        await self.repository.update_session(
            session,
            state_data=data,
            total_time_minutes=int(data.get("active_seconds", 0) // 60),
        )

    async def process_interaction(self, session_id: str, user_id: str, message: str) -> TurnResult:
        """
        Run one learner turn through the turn graph.

        Raises:
            SessionNotFoundError: Unknown session or not owned by `user_id`
            InvalidTransitionError: The session is paused or complete
            ValidationError: The session has no current concept
            ProviderError: An AI call failed; the session keeps the state of
                the last completed step
        """
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)

            if session.status == "COMPLETED" or session.state == SessionState.COMPLETE.value:
                raise InvalidTransitionError(session.state, "interact")
            if session.status == "PAUSED" or session.state == SessionState.PAUSED.value:
                raise InvalidTransitionError(session.state, "interact")
            if not session.current_concept_id:
                raise ValidationError("Session has no current concept", {"session_id": session_id})

            await self._track_activity(session)

            turn = create_turn_state(
                session_id=session.id,
                user_id=user_id,
                content_id=session.content_id,
                message=message,
                state=session.state,
            )
            if session.state in (SessionState.INIT.value, SessionState.EXPLAIN.value) and message.strip():
                turn["explain_hint"] = message

            config = build_trace_config(
                thread_id=session.id,
                tags=["tutor", "turn"],
                metadata={
                    "session_id": session.id,
                    "user_id": user_id,
                    "content_id": session.content_id,
                    "entry_state": session.state,
                },
            )
            result = await build_turn_graph(self).invoke(turn, config=config)

            await self.repository.refresh(session)
            return TurnResult(
                session_id=session.id,
                state=session.state,
                status=session.status,
                progress=session.progress,
                current_concept_id=session.current_concept_id,
                actions=result.get("actions", []),
                explanation=result.get("explanation"),
                evaluation=result.get("evaluation"),
                decision=result.get("decision"),
                practice_task=result.get("practice_task"),
            )
