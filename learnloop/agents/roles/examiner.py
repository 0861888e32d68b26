"""Examiner role: scores a learner's explanation of a concept."""

import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...core.exceptions import MalformedAIOutputError
from ..orchestrator import Orchestrator, OrchestrationRequest
from ..parsing import as_number, as_str_list, clamp, parse_ai_json, pick
from ..registry import AIRole

logger = logging.getLogger(__name__)

READY_THRESHOLD = 70
EXAMPLE_LANGUAGE_PATTERN = re.compile(r"for example|such as|like|instance", re.IGNORECASE)
QUESTION_PATTERN = re.compile(r"[^.!?]*\?")

DEFAULT_FEEDBACK = "Thank you for your explanation."
DEFAULT_FOLLOW_UP = "Can you elaborate on any specific aspect?"
HEURISTIC_FOLLOW_UP = "Can you provide a specific example of how this applies?"


class ScoreBreakdown(BaseModel):
    accuracy: float = 50
    completeness: float = 50
    understanding: float = 50
    application: float = 50


class ExaminerEvaluation(BaseModel):
    overall_score: float
    confidence: float
    scores: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    strengths: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)
    feedback: str = DEFAULT_FEEDBACK
    suggested_follow_up: str = DEFAULT_FOLLOW_UP
    ready_to_advance: bool = False
    # True when the scores come from the text heuristic instead of the model.
    heuristic: bool = False
    interaction_id: str = ""


def _score(value: Any) -> float:
    return clamp(as_number(value, 50.0) or 50.0, 0, 100)


def normalize_evaluation(raw: Dict[str, Any]) -> ExaminerEvaluation:
    """Clamp scores to range and fill missing fields with defaults."""
    overall = clamp(as_number(pick(raw, "overallScore", "overall_score"), 0.0), 0, 100)
    scores = raw.get("scores") if isinstance(raw.get("scores"), dict) else {}

    return ExaminerEvaluation(
        overall_score=overall,
        confidence=overall / 100,
        scores=ScoreBreakdown(
            accuracy=_score(scores.get("accuracy")),
            completeness=_score(scores.get("completeness")),
            understanding=_score(scores.get("understanding")),
            application=_score(scores.get("application")),
        ),
        strengths=as_str_list(raw.get("strengths")),
        gaps=as_str_list(raw.get("gaps")),
        feedback=str(raw.get("feedback") or DEFAULT_FEEDBACK),
        suggested_follow_up=str(pick(raw, "suggestedFollowUp", "suggested_follow_up") or DEFAULT_FOLLOW_UP),
        ready_to_advance=overall >= READY_THRESHOLD,
    )


def heuristic_evaluation(explanation: str) -> ExaminerEvaluation:
    """
    Score an explanation from its shape alone.

    Base 50; +10 over 30 words; +10 over 100 words; +15 for example
    language; +10 when multi-line or over 50 words.
    """
    word_count = len(explanation.split())
    has_examples = bool(EXAMPLE_LANGUAGE_PATTERN.search(explanation))
    has_structure = "\n" in explanation or word_count > 50

    score = 50
    if word_count > 30:
        score += 10
    if word_count > 100:
        score += 10
    if has_examples:
        score += 15
    if has_structure:
        score += 10
    score = clamp(score, 0, 100)

    return ExaminerEvaluation(
        overall_score=score,
        confidence=score / 100,
        scores=ScoreBreakdown(
            accuracy=score,
            completeness=clamp(score - 5, 0, 100),
            understanding=clamp(score + 5, 0, 100),
            application=clamp(score + 10 if has_examples else score - 10, 0, 100),
        ),
        strengths=["Detailed explanation"] if word_count > 50 else ["Attempted explanation"],
        gaps=["Could provide more detail"] if word_count < 30 else [],
        feedback=(
            "Good explanation! You demonstrate understanding of the key concepts."
            if score >= READY_THRESHOLD
            else "Your explanation shows some understanding, but could be more detailed."
        ),
        suggested_follow_up=HEURISTIC_FOLLOW_UP,
        ready_to_advance=score >= READY_THRESHOLD,
        heuristic=True,
    )


def evaluation_from_content(content: str, explanation: str) -> ExaminerEvaluation:
    """Decode the model's evaluation, or fall back to the heuristic."""
    try:
        return normalize_evaluation(parse_ai_json(content))
    except MalformedAIOutputError as e:
        logger.warning("Examiner output could not be decoded, using heuristic evaluation: %s", e.message)
        return heuristic_evaluation(explanation)


class ExaminerService:
    """Evaluates explanations and probes knowledge gaps."""

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator

    async def evaluate_explanation(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        explanation: str,
        session_id: Optional[str] = None,
    ) -> ExaminerEvaluation:
        evaluated: Dict[str, ExaminerEvaluation] = {}

        def score(content: str) -> float:
            evaluated["result"] = evaluation_from_content(content, explanation)
            return evaluated["result"].confidence

        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.EXAMINER,
                content_id=content_id,
                concept_id=concept_id,
                session_id=session_id,
                user_message=explanation,
                confidence_scorer=score,
            ),
        )

        evaluation = evaluated.get("result") or evaluation_from_content(response.content, explanation)
        evaluation.interaction_id = response.interaction_id
        return evaluation

    async def generate_probe_question(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        previous: ExaminerEvaluation,
        session_id: Optional[str] = None,
    ) -> str:
        """One targeted question about the gaps of a previous evaluation."""
        gaps = ", ".join(previous.gaps)
        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.EXAMINER,
                content_id=content_id,
                concept_id=concept_id,
                session_id=session_id,
                user_message=(
                    f"Based on these knowledge gaps: {gaps}. "
                    "Generate one specific question to probe the user's understanding."
                ),
                interaction_type="PROBE_QUESTION",
            ),
        )

        text = response.content
        try:
            data = parse_ai_json(text)
            text = str(pick(data, "question", "probeQuestion", "suggestedFollowUp", default=""))
        except MalformedAIOutputError:
            pass

        match = QUESTION_PATTERN.search(text)
        if match and match.group(0).strip():
            return match.group(0).strip()
        return previous.suggested_follow_up
