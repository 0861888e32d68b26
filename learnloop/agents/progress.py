"""Learner progress and adaptation analytics.

Everything here is computed from the interaction log and the session rows;
no model is called. Confidence scores are stored as 0-1 and reported as
whole percentages.

A concept's current confidence is its latest *scored* interaction. Tutor and
coach exchanges carry no score and do not reset it.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from ..core.exceptions import ConceptNotFoundError, ContentNotFoundError, MalformedAIOutputError
from ..db.models import Concept, Content, Interaction
from ..db.repository import Repository
from .parsing import as_str_list, parse_ai_json
from .roles.reviewer import Trend, progress_trend, review_interval_days

logger = logging.getLogger(__name__)

# Rough study time credited per logged exchange.
MINUTES_PER_INTERACTION = 2
COMPLETED_CONFIDENCE = 70
MASTERED_CONFIDENCE = 80
WEAK_CONFIDENCE = 60
MISTAKE_SCORE = 0.5
MAX_GAPS = 10
GAP_KEYS = ("gaps", "weakPoints", "weak_points", "missingConcepts")

Pace = Literal["slow", "normal", "fast"]


class ConfidencePoint(BaseModel):
    score: int
    date: datetime


class ConceptProgress(BaseModel):
    concept_id: str
    title: str
    description: Optional[str] = None
    difficulty: int
    started: bool
    completed: bool
    confidence_score: int
    confidence_history: List[ConfidencePoint] = Field(default_factory=list)
    time_spent_minutes: int
    interaction_count: int
    gaps: List[str] = Field(default_factory=list)
    last_interaction_at: Optional[datetime] = None


class ConceptScore(BaseModel):
    concept_id: str
    title: str
    confidence: int


class ContentProgress(BaseModel):
    content_id: str
    content_title: str
    total_concepts: int = 0
    completed_concepts: int = 0
    progress_percent: int = 0
    average_confidence: int = 0
    total_time_minutes: int = 0
    weak_areas: List[ConceptScore] = Field(default_factory=list)
    mastered_areas: List[ConceptScore] = Field(default_factory=list)
    last_session_at: Optional[datetime] = None


class UserProgressSummary(BaseModel):
    total_contents: int
    completed_contents: int
    total_concepts: int
    completed_concepts: int
    average_confidence: int
    total_time_minutes: int
    current_streak: int
    longest_streak: int
    content_progress: List[ContentProgress] = Field(default_factory=list)


class ConfidenceDataPoint(BaseModel):
    date: datetime
    confidence: int
    concept_title: str


class RepeatedMistake(BaseModel):
    concept_id: str
    title: str
    count: int


class PatternAnalysis(BaseModel):
    repeated_mistakes: List[RepeatedMistake] = Field(default_factory=list)
    avg_time_per_concept: int = 0
    quality_trend: Trend = "stable"
    total_interactions: int = 0
    low_confidence_concepts: List[ConceptScore] = Field(default_factory=list)


class Adaptation(BaseModel):
    """How the next explanation of a concept should be pitched."""

    pace: Pace
    extra_examples: bool
    skip_suggested: bool
    review_due: bool
    next_review_date: Optional[str] = None
    reasoning: str


class WeakArea(ConceptScore):
    review_due: bool


# =============================================================================
# Pure computations
# =============================================================================

def percent(score: float) -> int:
    return round(score * 100)


def extract_gaps(interactions: Iterable[Interaction]) -> List[str]:
    """Knowledge gaps named in structured AI responses, deduplicated, at most 10."""
    gaps: List[str] = []
    for interaction in interactions:
        if not interaction.ai_response or "{" not in interaction.ai_response:
            continue
        try:
            data = parse_ai_json(interaction.ai_response)
        except MalformedAIOutputError:
            continue
        for key in GAP_KEYS:
            for gap in as_str_list(data.get(key)):
                if gap not in gaps:
                    gaps.append(gap)
    return gaps[:MAX_GAPS]


def latest_scores(interactions: Iterable[Interaction]) -> Dict[str, float]:
    """Latest confidence per concept id. `interactions` must be oldest first."""
    latest: Dict[str, float] = {}
    for interaction in interactions:
        if interaction.concept_id and interaction.confidence_score is not None:
            latest[interaction.concept_id] = interaction.confidence_score
    return latest


def activity_streaks(days: Iterable[date], today: date) -> Tuple[int, int]:
    """
    (current, longest) runs of consecutive active days.

    The current run may end today or yesterday, so a learner who has not
    studied yet today keeps yesterday's streak.
    """
    active = set(days)
    if not active:
        return 0, 0

    current = 0
    day = today if today in active else today - timedelta(days=1)
    while day in active:
        current += 1
        day -= timedelta(days=1)

    longest = streak = 0
    previous: Optional[date] = None
    for day in sorted(active):
        streak = streak + 1 if previous and (day - previous).days == 1 else 1
        longest = max(longest, streak)
        previous = day

    return current, longest


def adapt(scores: Sequence[Tuple[float, datetime]], now: datetime) -> Adaptation:
    """
    Pace and review decisions for one concept.

    Args:
        scores: (confidence 0-1, scored at), newest first
        now: Reference time for the review due date
    """
    latest = scores[0][0] if scores else 0.0
    average = sum(score for score, _ in scores) / len(scores) if scores else 0.0

    pace: Pace = "normal"
    if latest < 0.4 or (len(scores) > 2 and average < 0.5):
        pace = "slow"
    elif latest > 0.85 and average > 0.75:
        pace = "fast"

    extra_examples = latest < 0.5 or (len(scores) > 1 and average < 0.6)
    skip_suggested = latest > 0.9 and len(scores) >= 2

    review_due = False
    next_review_date = None
    if scores:
        due = scores[0][1] + timedelta(days=review_interval_days(latest))
        review_due = now >= due
        next_review_date = due.date().isoformat()

    reasons = []
    if pace == "slow":
        reasons.append("Low confidence detected, slowing down with more detail")
    if pace == "fast":
        reasons.append("High mastery, can move faster")
    if extra_examples:
        reasons.append("Additional examples needed for clarity")
    if skip_suggested:
        reasons.append("Content already mastered, skip available")
    if review_due:
        reasons.append("Spaced repetition review due")
    if not reasons:
        reasons.append("Progressing normally")

    return Adaptation(
        pace=pace,
        extra_examples=extra_examples,
        skip_suggested=skip_suggested,
        review_due=review_due,
        next_review_date=next_review_date,
        reasoning=". ".join(reasons) + ".",
    )


# =============================================================================
# Service
# =============================================================================

class ProgressService:
    """Per-user progress reports over concepts, content items and overall."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def _content(self, content_id: str) -> Content:
        content = await self.repository.get_content(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)
        return content

    async def _map_concepts(self, content_id: str) -> List[Concept]:
        learning_map = await self.repository.get_learning_map(content_id)
        if learning_map is None:
            return []
        return await self.repository.get_concepts(learning_map.id)

    async def _concept(self, concept_id: str) -> Concept:
        concept = await self.repository.get_concept(concept_id)
        if concept is None:
            raise ConceptNotFoundError(concept_id)
        return concept

    # =========================================================================
    # Progress
    # =========================================================================

    async def get_concept_progress(self, user_id: str, concept_id: str) -> ConceptProgress:
        concept = await self._concept(concept_id)
        interactions = await self.repository.user_concept_interactions(user_id, [concept_id])

        history = [
            ConfidencePoint(score=percent(i.confidence_score), date=i.created_at)
            for i in interactions
            if i.confidence_score is not None
        ]
        confidence = history[-1].score if history else 0

        return ConceptProgress(
            concept_id=concept.id,
            title=concept.title,
            description=concept.description,
            difficulty=concept.difficulty,
            started=bool(interactions),
            completed=confidence >= COMPLETED_CONFIDENCE,
            confidence_score=confidence,
            confidence_history=history,
            time_spent_minutes=len(interactions) * MINUTES_PER_INTERACTION,
            interaction_count=len(interactions),
            gaps=extract_gaps(interactions),
            last_interaction_at=interactions[-1].created_at if interactions else None,
        )

    async def get_content_progress(self, user_id: str, content_id: str) -> ContentProgress:
        content = await self._content(content_id)
        return await self._content_progress(user_id, content)

    async def _content_progress(self, user_id: str, content: Content) -> ContentProgress:
        progress = ContentProgress(content_id=content.id, content_title=content.title)

        sessions = await self.repository.user_content_sessions(user_id, content.id)
        progress.total_time_minutes = sum(s.total_time_minutes for s in sessions)
        if sessions:
            progress.last_session_at = sessions[0].last_active_at

        concepts = await self._map_concepts(content.id)
        if not concepts:
            return progress

        interactions = await self.repository.user_concept_interactions(user_id, [c.id for c in concepts])
        touched = {i.concept_id for i in interactions}
        latest = latest_scores(interactions)

        scores = [
            ConceptScore(concept_id=c.id, title=c.title, confidence=percent(latest.get(c.id, 0.0)))
            for c in concepts
        ]
        started = [s for s in scores if s.concept_id in touched]

        progress.total_concepts = len(concepts)
        progress.completed_concepts = sum(1 for s in scores if s.confidence >= COMPLETED_CONFIDENCE)
        progress.progress_percent = round(progress.completed_concepts / len(concepts) * 100)
        if started:
            progress.average_confidence = round(sum(s.confidence for s in started) / len(started))
        progress.weak_areas = sorted(
            (s for s in started if s.confidence < WEAK_CONFIDENCE),
            key=lambda s: s.confidence,
        )
        progress.mastered_areas = sorted(
            (s for s in scores if s.confidence >= MASTERED_CONFIDENCE),
            key=lambda s: -s.confidence,
        )
        return progress

    async def get_user_summary(self, user_id: str, now: Optional[datetime] = None) -> UserProgressSummary:
        """Progress across every content item the user has a session on."""
        now = now or datetime.utcnow()
        sessions = await self.repository.user_sessions(user_id)

        content_ids: List[str] = []
        for session in sessions:
            if session.content_id not in content_ids:
                content_ids.append(session.content_id)

        content_progress: List[ContentProgress] = []
        for content_id in content_ids:
            content = await self.repository.get_content(content_id)
            if content is not None:
                content_progress.append(await self._content_progress(user_id, content))

        with_confidence = [c.average_confidence for c in content_progress if c.average_confidence > 0]
        current, longest = activity_streaks(
            ((s.last_active_at or s.created_at).date() for s in sessions),
            now.date(),
        )

        return UserProgressSummary(
            total_contents=len(content_ids),
            completed_contents=sum(1 for c in content_progress if c.progress_percent == 100),
            total_concepts=sum(c.total_concepts for c in content_progress),
            completed_concepts=sum(c.completed_concepts for c in content_progress),
            average_confidence=round(sum(with_confidence) / len(with_confidence)) if with_confidence else 0,
            total_time_minutes=sum(c.total_time_minutes for c in content_progress),
            current_streak=current,
            longest_streak=longest,
            content_progress=content_progress,
        )

    async def get_confidence_history(self, user_id: str, content_id: str) -> List[ConfidenceDataPoint]:
        """Every scored interaction on the content's current map, oldest first."""
        await self._content(content_id)
        concepts = await self._map_concepts(content_id)
        titles = {c.id: c.title for c in concepts}

        interactions = await self.repository.user_concept_interactions(user_id, list(titles))
        return [
            ConfidenceDataPoint(
                date=i.created_at,
                confidence=percent(i.confidence_score),
                concept_title=titles[i.concept_id],
            )
            for i in interactions
            if i.confidence_score is not None
        ]

    # =========================================================================
    # Adaptation
    # =========================================================================

    async def analyze_patterns(self, user_id: str, content_id: str) -> PatternAnalysis:
        await self._content(content_id)
        concepts = await self._map_concepts(content_id)
        titles = {c.id: c.title for c in concepts}

        interactions = await self.repository.user_concept_interactions(user_id, list(titles))
        if not interactions:
            return PatternAnalysis()

        mistakes: Dict[str, int] = {}
        for interaction in interactions:
            if interaction.confidence_score is not None and interaction.confidence_score < MISTAKE_SCORE:
                mistakes[interaction.concept_id] = mistakes.get(interaction.concept_id, 0) + 1

        touched = {i.concept_id for i in interactions}
        latest = latest_scores(interactions)

        return PatternAnalysis(
            repeated_mistakes=sorted(
                (
                    RepeatedMistake(concept_id=cid, title=titles[cid], count=count)
                    for cid, count in mistakes.items()
                    if count > 1
                ),
                key=lambda m: -m.count,
            ),
            avg_time_per_concept=round(len(interactions) * MINUTES_PER_INTERACTION / len(touched)),
            quality_trend=progress_trend(
                [i.confidence_score for i in interactions if i.confidence_score is not None]
            ),
            total_interactions=len(interactions),
            low_confidence_concepts=sorted(
                (
                    ConceptScore(concept_id=cid, title=titles[cid], confidence=percent(score))
                    for cid, score in latest.items()
                    if percent(score) < WEAK_CONFIDENCE
                ),
                key=lambda s: s.confidence,
            ),
        )

    async def get_adaptation(
        self,
        user_id: str,
        concept_id: str,
        now: Optional[datetime] = None,
    ) -> Adaptation:
        await self._concept(concept_id)
        interactions = await self.repository.user_concept_interactions(user_id, [concept_id])
        scores = [
            (i.confidence_score, i.created_at)
            for i in reversed(interactions)
            if i.confidence_score is not None
        ]
        return adapt(scores, now or datetime.utcnow())

    async def get_weak_areas(
        self,
        user_id: str,
        content_id: str,
        now: Optional[datetime] = None,
    ) -> List[WeakArea]:
        """Concepts whose latest score is under 60%, weakest first."""
        now = now or datetime.utcnow()
        await self._content(content_id)
        concepts = await self._map_concepts(content_id)
        titles = {c.id: c.title for c in concepts}

        interactions = await self.repository.user_concept_interactions(user_id, list(titles))
        last_scored: Dict[str, Interaction] = {}
        for interaction in interactions:
            if interaction.confidence_score is not None:
                last_scored[interaction.concept_id] = interaction

        weak = []
        for concept_id, interaction in last_scored.items():
            confidence = percent(interaction.confidence_score)
            if confidence >= WEAK_CONFIDENCE:
                continue
            days_since = (now - interaction.created_at).days
            weak.append(WeakArea(
                concept_id=concept_id,
                title=titles[concept_id],
                confidence=confidence,
                review_due=days_since >= review_interval_days(interaction.confidence_score),
            ))

        weak.sort(key=lambda w: w.confidence)
        return weak
