"""Coach role: decides what the learner does next after an evaluation."""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...core.exceptions import MalformedAIOutputError
from ..orchestrator import Orchestrator, OrchestrationRequest
from ..parsing import as_str_list, parse_ai_json, pick
from ..registry import AIRole
from .examiner import ExaminerEvaluation

logger = logging.getLogger(__name__)


class CoachAction(str, Enum):
    PROCEED = "proceed"
    REVIEW = "review"
    PRACTICE = "practice"
    COMPLETE = "complete"


ADVANCE_ALIASES = {"advance", "continue", "next"}
REVIEW_ALIASES = {"revisit", "re-explain"}
PRACTICE_ALIASES = {"evaluate", "try_again", "tryagain"}


class CoachDecision(BaseModel):
    next_action: CoachAction
    reason: str
    message: str
    concept_to_focus: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)
    encouragement: str
    interaction_id: str = ""


def _advance(is_last_concept: bool) -> CoachAction:
    return CoachAction.COMPLETE if is_last_concept else CoachAction.PROCEED


def normalize_action(raw: Any, evaluation: ExaminerEvaluation, is_last_concept: bool) -> CoachAction:
    """Map loose action names onto the canonical set; unknown names fall back by score."""
    action = str(raw or "").strip().lower()

    if action in ADVANCE_ALIASES:
        return _advance(is_last_concept)
    if action in REVIEW_ALIASES:
        return CoachAction.REVIEW
    if action in PRACTICE_ALIASES:
        return CoachAction.PRACTICE

    try:
        return CoachAction(action)
    except ValueError:
        if evaluation.overall_score >= 70:
            return _advance(is_last_concept)
        return CoachAction.REVIEW


def default_reason(action: CoachAction, evaluation: ExaminerEvaluation) -> str:
    score = round(evaluation.overall_score)
    if action == CoachAction.PROCEED:
        return f"Strong understanding ({score}%)"
    if action == CoachAction.REVIEW:
        return f"Needs more explanation ({score}%)"
    if action == CoachAction.PRACTICE:
        return f"Would benefit from practice ({score}%)"
    return "All concepts mastered"


def default_message(action: CoachAction) -> str:
    if action == CoachAction.PROCEED:
        return "Great job! Let's move to the next concept."
    if action == CoachAction.REVIEW:
        return "Let's revisit this concept to strengthen understanding."
    if action == CoachAction.PRACTICE:
        return "Let's practice with some application exercises."
    return "Congratulations! You've completed this learning session."


def default_encouragement(evaluation: ExaminerEvaluation) -> str:
    if evaluation.overall_score >= 80:
        return "Excellent work! Keep it up!"
    if evaluation.overall_score >= 60:
        return "You're making good progress!"
    return "Every step forward is progress. Keep going!"


def normalize_decision(
    raw: Dict[str, Any],
    evaluation: ExaminerEvaluation,
    is_last_concept: bool,
) -> CoachDecision:
    action = normalize_action(pick(raw, "nextAction", "next_action"), evaluation, is_last_concept)
    focus = pick(raw, "conceptToFocus", "concept_to_focus")

    return CoachDecision(
        next_action=action,
        reason=str(raw.get("reason") or default_reason(action, evaluation)),
        message=str(raw.get("message") or default_message(action)),
        concept_to_focus=str(focus) if focus else None,
        suggestions=as_str_list(raw.get("suggestions")),
        encouragement=str(raw.get("encouragement") or default_encouragement(evaluation)),
    )


def default_decision(evaluation: ExaminerEvaluation, is_last_concept: bool) -> CoachDecision:
    """Decision from score bands alone: >=85 excellent, >=70 good, >=50 practice, else review."""
    score = evaluation.overall_score

    if score >= 85:
        return CoachDecision(
            next_action=_advance(is_last_concept),
            reason="Excellent understanding demonstrated",
            message=(
                "Congratulations! You've mastered all concepts in this content."
                if is_last_concept
                else "Great work! You're ready to move on to the next concept."
            ),
            suggestions=(
                ["Review your notes", "Apply what you learned"]
                if is_last_concept
                else ["Keep up the momentum"]
            ),
            encouragement="You're doing exceptionally well!",
        )

    if score >= 70:
        return CoachDecision(
            next_action=_advance(is_last_concept),
            reason="Good understanding with minor gaps",
            message="You have a solid grasp of this concept. Let's continue forward.",
            suggestions=["Review the areas mentioned in feedback later"],
            encouragement="Good progress! You're on the right track.",
        )

    if score >= 50:
        return CoachDecision(
            next_action=CoachAction.PRACTICE,
            reason="Understanding needs more practice",
            message="Let's practice a bit more to strengthen your understanding.",
            suggestions=list(evaluation.gaps),
            encouragement="You're making progress. A little more practice will help solidify these concepts.",
        )

    return CoachDecision(
        next_action=CoachAction.REVIEW,
        reason="Concept needs re-explanation",
        message="Let's revisit this concept with a different approach.",
        suggestions=["Focus on the core ideas first", *evaluation.gaps],
        encouragement="Learning takes time. Let's try again with a clearer explanation.",
    )


def build_coach_message(evaluation: ExaminerEvaluation, is_last_concept: bool) -> str:
    lines = [
        "Student evaluation results:",
        f"- Overall Score: {round(evaluation.overall_score)}%",
        f"- Confidence: {evaluation.confidence}",
        f"- Strengths: {', '.join(evaluation.strengths)}",
        f"- Gaps: {', '.join(evaluation.gaps)}",
        f"- Feedback: {evaluation.feedback}",
    ]
    if is_last_concept:
        lines.append("- This is the final concept in the learning map.")
    lines.extend(["", "Decide the next step for this student."])
    return "\n".join(lines)


class CoachService:
    """Turns evaluations into next-step decisions and practice tasks."""

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator

    async def decide_next_action(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        evaluation: ExaminerEvaluation,
        session_id: Optional[str] = None,
        is_last_concept: bool = False,
    ) -> CoachDecision:
        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.COACH,
                content_id=content_id,
                concept_id=concept_id,
                session_id=session_id,
                user_message=build_coach_message(evaluation, is_last_concept),
                additional_context={
                    "recentEvaluation": evaluation.feedback,
                    "currentConceptStatus": "final" if is_last_concept else "in_progress",
                },
            ),
        )

        try:
            decision = normalize_decision(parse_ai_json(response.content), evaluation, is_last_concept)
        except MalformedAIOutputError as e:
            logger.warning("Coach output could not be decoded, using score-based decision: %s", e.message)
            decision = default_decision(evaluation, is_last_concept)

        decision.interaction_id = response.interaction_id
        return decision

    async def generate_practice_task(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        session_id: Optional[str] = None,
    ) -> str:
        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.COACH,
                content_id=content_id,
                concept_id=concept_id,
                session_id=session_id,
                user_message="Generate a practical application task for this concept that the student can work on.",
                interaction_type="PRACTICE_TASK",
            ),
        )

        # The coach answers in JSON mode; surface the task text when it is wrapped.
        try:
            data = parse_ai_json(response.content)
        except MalformedAIOutputError:
            return response.content
        task = pick(data, "task", "practiceTask", "message")
        return str(task) if task else response.content
