"""Nodes for the tutoring turn graph.

Each node performs one step of the tutoring protocol for the current session,
applies the matching state machine action and persists the new state before
returning, so a failure mid-turn leaves the session at the last completed
step.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict

from ...core.exceptions import ValidationError
from ..roles.examiner import ExaminerEvaluation
from .state import TurnState
from .state_machine import SessionAction, SessionState

if TYPE_CHECKING:
    from .session import SessionService

logger = logging.getLogger(__name__)


# Persisted state -> first node of the turn.
ENTRY_NODES = {
    SessionState.INIT.value: "start",
    SessionState.EXPLAIN.value: "explain",
    SessionState.USER_EXPLAIN.value: "receive",
    SessionState.EVALUATE.value: "evaluate",
    SessionState.DECIDE_NEXT.value: "decide",
}


class TurnNodes:
    """Graph nodes bound to one SessionService (and so one DB session)."""

    def __init__(self, service: "SessionService"):
        self.service = service

    # =========================================================================
    # ROUTING
    # =========================================================================

    @staticmethod
    def route_entry(state: TurnState) -> str:
        return ENTRY_NODES[state["state"]]

    @staticmethod
    def route_after_decide(state: TurnState) -> str:
        """Chain into a fresh explanation when the decision re-enters explain."""
        if state["state"] == SessionState.EXPLAIN.value:
            return "explain"
        return "end"

    # =========================================================================
    # NODES
    # =========================================================================

    async def start_node(self, state: TurnState) -> Dict[str, Any]:
        session = await self.service.load(state["session_id"])
        await self.service.apply_action(session, SessionAction.START)
        return {"state": session.state, "actions": [SessionAction.START.value]}

    async def explain_node(self, state: TurnState) -> Dict[str, Any]:
        """Tutor explains the current concept, then waits for the learner."""
        logger.info("Explain node for session %s", state["session_id"])
        session = await self.service.load(state["session_id"])

        explanation = await self.service.tutor.explain_concept(
            user_id=state["user_id"],
            content_id=state["content_id"],
            concept_id=session.current_concept_id,
            session_id=session.id,
            additional_context=state.get("explain_hint"),
        )

        await self.service.apply_action(session, SessionAction.EXPLAIN_COMPLETE)
        return {
            "state": session.state,
            "actions": [SessionAction.EXPLAIN_COMPLETE.value],
            "explanation": explanation.model_dump(),
        }

    async def receive_node(self, state: TurnState) -> Dict[str, Any]:
        session = await self.service.load(state["session_id"])
        await self.service.apply_action(session, SessionAction.USER_RESPONDED)
        return {"state": session.state, "actions": [SessionAction.USER_RESPONDED.value]}

    async def evaluate_node(self, state: TurnState) -> Dict[str, Any]:
        """Examiner scores the learner's explanation."""
        logger.info("Evaluate node for session %s", state["session_id"])
        session = await self.service.load(state["session_id"])

        evaluation = await self.service.examiner.evaluate_explanation(
            user_id=state["user_id"],
            content_id=state["content_id"],
            concept_id=session.current_concept_id,
            explanation=state["message"],
            session_id=session.id,
        )

        evaluation_data = evaluation.model_dump()
        await self.service.apply_action(
            session,
            SessionAction.EVALUATION_COMPLETE,
            state_data={**(session.state_data or {}), "last_evaluation": evaluation_data},
        )
        return {
            "state": session.state,
            "actions": [SessionAction.EVALUATION_COMPLETE.value],
            "evaluation": evaluation_data,
        }

    async def decide_node(self, state: TurnState) -> Dict[str, Any]:
        """Coach picks the next step and the session applies it."""
        logger.info("Decide node for session %s", state["session_id"])
        session = await self.service.load(state["session_id"])

        evaluation_data = state.get("evaluation") or (session.state_data or {}).get("last_evaluation")
        if not evaluation_data:
            raise ValidationError("No evaluation available for this session", {"session_id": session.id})
        evaluation = ExaminerEvaluation.model_validate(evaluation_data)

        concept_id = session.current_concept_id
        is_last = await self.service.is_last_concept(session)
        decision = await self.service.coach.decide_next_action(
            user_id=state["user_id"],
            content_id=state["content_id"],
            concept_id=concept_id,
            evaluation=evaluation,
            session_id=session.id,
            is_last_concept=is_last,
        )

        actions, hint = await self.service.apply_decision(session, decision, evaluation)

        practice_task = None
        if session.state == SessionState.USER_EXPLAIN.value:
            practice_task = await self.service.coach.generate_practice_task(
                user_id=state["user_id"],
                content_id=state["content_id"],
                concept_id=concept_id,
                session_id=session.id,
            )

        return {
            "state": session.state,
            "actions": actions,
            "decision": decision.model_dump(),
            "explain_hint": hint,
            "practice_task": practice_task,
        }
