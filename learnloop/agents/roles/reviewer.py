"""Reviewer role: session summaries, weekly reports and review scheduling.

Each report combines deterministic statistics computed from the interaction
log with qualitative text from the model. The statistics never depend on the
model output: when it cannot be decoded, the first 500 characters of the raw
text become the only qualitative entry.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from ...core.exceptions import MalformedAIOutputError, SessionNotFoundError
from ...db.models import Interaction
from ...db.repository import Repository
from ..orchestrator import Orchestrator, OrchestrationRequest
from ..parsing import as_number, as_str_list, clamp, parse_ai_json, pick
from ..registry import AIRole

logger = logging.getLogger(__name__)

SUMMARY_LOG_LIMIT = 20
REPORT_WINDOW_DAYS = 7
RAW_PREVIEW_CHARS = 500
TREND_MIN_SCORES = 4
TREND_THRESHOLD = 0.1

Trend = Literal["improving", "stable", "declining"]
Priority = Literal["high", "medium", "low"]
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


class ConceptConfidence(BaseModel):
    concept: str
    confidence: int


class SessionSummary(BaseModel):
    session_id: str
    content_title: str
    concepts_covered: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    weak_points: List[str] = Field(default_factory=list)
    key_takeaways: List[str] = Field(default_factory=list)
    confidence_overview: List[ConceptConfidence] = Field(default_factory=list)
    suggested_next_steps: List[str] = Field(default_factory=list)
    overall_score: int = 0
    time_spent_minutes: int = 0


class WeeklyReport(BaseModel):
    week_starting: str
    total_sessions: int
    total_time_minutes: int
    concepts_learned: int
    average_confidence: int
    top_strengths: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    progress_trend: Trend = "stable"


class ReviewScheduleItem(BaseModel):
    concept_id: str
    concept_title: str
    last_reviewed: str
    confidence: int
    review_due_date: str
    priority: Priority


# =============================================================================
# Deterministic statistics
# =============================================================================

def review_interval_days(confidence: float) -> int:
    """Spaced-repetition interval; each bucket's lower bound is inclusive."""
    if confidence >= 0.9:
        return 30
    if confidence >= 0.8:
        return 14
    if confidence >= 0.7:
        return 7
    if confidence >= 0.5:
        return 3
    return 1


def progress_trend(scores: Sequence[float]) -> Trend:
    """Compare the mean of the second half of `scores` with the first half."""
    if len(scores) < TREND_MIN_SCORES:
        return "stable"

    half = len(scores) // 2
    first = sum(scores[:half]) / half
    second = sum(scores[half:]) / (len(scores) - half)
    if second - first > TREND_THRESHOLD:
        return "improving"
    if second - first < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def review_priority(confidence: int, due: datetime, now: datetime) -> Priority:
    if confidence < 50 or now >= due:
        return "high"
    if confidence < 70:
        return "medium"
    return "low"


def confidence_overview(
    interactions: Iterable[Interaction],
    concept_titles: Dict[str, str],
) -> List[ConceptConfidence]:
    """Latest confidence (0-100) per concept, in first-seen order."""
    latest: Dict[str, int] = {}
    for interaction in interactions:
        title = concept_titles.get(interaction.concept_id or "")
        if title and interaction.confidence_score is not None:
            latest[title] = round(interaction.confidence_score * 100)
    return [ConceptConfidence(concept=title, confidence=value) for title, value in latest.items()]


def _format_log_line(interaction: Interaction) -> str:
    score = interaction.confidence_score if interaction.confidence_score is not None else "N/A"
    return (
        f"[{interaction.role}] {interaction.interaction_type}: "
        f"{(interaction.user_message or '')[:200]} → score: {score}"
    )


# =============================================================================
# Service
# =============================================================================

class ReviewerService:
    """Builds learner-facing summaries over the interaction log."""

    def __init__(self, orchestrator: Orchestrator, repository: Repository):
        self.orchestrator = orchestrator
        self.repository = repository

    async def generate_session_summary(self, session_id: str, user_id: str) -> SessionSummary:
        session = await self.repository.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFoundError(session_id)

        content = await self.repository.get_content(session.content_id)
        content_title = content.title if content else ""

        interactions = await self.repository.session_interactions(session_id)
        titles = await self.repository.concept_titles(i.concept_id for i in interactions)

        concepts_covered: List[str] = []
        for interaction in interactions:
            title = titles.get(interaction.concept_id or "")
            if title and title not in concepts_covered:
                concepts_covered.append(title)

        log = "\n".join(_format_log_line(i) for i in interactions[-SUMMARY_LOG_LIMIT:])

        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.REVIEWER,
                content_id=session.content_id,
                session_id=session_id,
                user_message=(
                    "Generate a session summary. Here is the interaction data:\n\n"
                    f"Content: {content_title}\n"
                    f"Concepts covered: {', '.join(concepts_covered)}\n"
                    f"Total interactions: {len(interactions)}\n"
                    f"Time spent: {session.total_time_minutes} minutes\n\n"
                    f"Interaction log:\n{log}"
                ),
                additional_context={
                    "sessionState": session.status,
                    "timeSpent": session.total_time_minutes,
                },
            ),
        )

        summary = SessionSummary(
            session_id=session_id,
            content_title=content_title,
            concepts_covered=concepts_covered,
            confidence_overview=confidence_overview(interactions, titles),
            time_spent_minutes=session.total_time_minutes,
        )

        try:
            data = parse_ai_json(response.content)
        except MalformedAIOutputError as e:
            logger.warning("Reviewer summary could not be decoded: %s", e.message)
            summary.key_takeaways = [response.content[:RAW_PREVIEW_CHARS]]
            return summary

        summary.strengths = as_str_list(data.get("strengths"))
        summary.weak_points = as_str_list(pick(data, "weakPoints", "weak_points"))
        summary.key_takeaways = as_str_list(pick(data, "keyTakeaways", "key_takeaways"))
        summary.suggested_next_steps = as_str_list(pick(data, "suggestedNextSteps", "suggested_next_steps"))
        summary.overall_score = int(clamp(as_number(pick(data, "overallScore", "overall_score"), 0.0), 0, 100))
        return summary

    async def generate_weekly_report(self, user_id: str, now: Optional[datetime] = None) -> WeeklyReport:
        now = now or datetime.utcnow()
        week_start = now - timedelta(days=REPORT_WINDOW_DAYS)

        sessions = await self.repository.user_sessions_since(user_id, week_start)
        interactions = await self.repository.interactions_for_sessions([s.id for s in sessions])
        titles = await self.repository.concept_titles(i.concept_id for i in interactions)
        content_titles = await self.repository.content_titles(s.content_id for s in sessions)

        concepts = {titles[i.concept_id] for i in interactions if i.concept_id in titles}
        scores = [i.confidence_score for i in interactions if i.confidence_score is not None]
        average_confidence = round(sum(scores) / len(scores) * 100) if scores else 0
        trend = progress_trend(scores)
        total_time = sum(s.total_time_minutes for s in sessions)

        counts: Dict[str, int] = {}
        for interaction in interactions:
            counts[interaction.session_id] = counts.get(interaction.session_id, 0) + 1

        session_lines = "\n".join(
            f"- {content_titles.get(s.content_id, 'Untitled')}: {counts.get(s.id, 0)} interactions, "
            f"{s.total_time_minutes} min, status: {s.status}"
            for s in sessions[:10]
        )

        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.REVIEWER,
                user_message=(
                    "Generate a weekly learning report.\n\n"
                    "Stats:\n"
                    f"- Sessions: {len(sessions)}\n"
                    f"- Total time: {total_time} minutes\n"
                    f"- Concepts covered: {len(concepts)}\n"
                    f"- Average confidence: {average_confidence}%\n"
                    f"- Trend: {trend}\n\n"
                    f"Sessions this week:\n{session_lines}"
                ),
            ),
        )

        report = WeeklyReport(
            week_starting=week_start.date().isoformat(),
            total_sessions=len(sessions),
            total_time_minutes=total_time,
            concepts_learned=len(concepts),
            average_confidence=average_confidence,
            progress_trend=trend,
        )

        try:
            data = parse_ai_json(response.content)
        except MalformedAIOutputError as e:
            logger.warning("Reviewer weekly report could not be decoded: %s", e.message)
            report.recommendations = [response.content[:RAW_PREVIEW_CHARS]]
            return report

        report.top_strengths = as_str_list(pick(data, "topStrengths", "top_strengths"))
        report.areas_for_improvement = as_str_list(pick(data, "areasForImprovement", "areas_for_improvement"))
        report.recommendations = as_str_list(data.get("recommendations"))
        return report

    async def suggest_review_schedule(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> List[ReviewScheduleItem]:
        """
        One entry per concept the user has a score for, based on the latest
        score. High priority first, then earliest due date.
        """
        now = now or datetime.utcnow()
        interactions = await self.repository.scored_interactions(user_id)
        titles = await self.repository.concept_titles(i.concept_id for i in interactions)

        schedule: List[ReviewScheduleItem] = []
        seen = set()
        for interaction in interactions:
            concept_id = interaction.concept_id
            if concept_id in seen or concept_id not in titles:
                continue
            seen.add(concept_id)

            confidence = round(interaction.confidence_score * 100)
            due = interaction.created_at + timedelta(days=review_interval_days(confidence / 100))
            schedule.append(ReviewScheduleItem(
                concept_id=concept_id,
                concept_title=titles[concept_id],
                last_reviewed=interaction.created_at.date().isoformat(),
                confidence=confidence,
                review_due_date=due.date().isoformat(),
                priority=review_priority(confidence, due, now),
            ))

        schedule.sort(key=lambda item: (PRIORITY_ORDER[item.priority], item.review_due_date))
        return schedule
