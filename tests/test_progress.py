"""
Test progress reports and adaptation decisions.
"""

import json
from datetime import date, datetime, timedelta

import pytest

from learnloop.agents.progress import ProgressService, activity_streaks, adapt, extract_gaps
from learnloop.core.exceptions import ConceptNotFoundError, ContentNotFoundError
from learnloop.db.models import Content, Interaction

from .conftest import OTHER_USER_ID, TEST_USER_ID

API = "/api/v1"
NOW = datetime(2024, 3, 10, 12, 0)


async def _logged(repository, session_id, concept_id, score, when, role="EXAMINER", response="{}"):
    interaction = await repository.create_interaction(
        session_id=session_id,
        role=role,
        user_message="answer",
        ai_response=response,
        interaction_type="EVALUATION" if score is not None else "EXPLANATION",
        concept_id=concept_id,
        confidence_score=score,
    )
    interaction.created_at = when
    await repository.db.commit()
    return interaction


# ==============================================================================
# Pure computations
# ==============================================================================

class TestGapExtraction:

    def test_gaps_from_structured_responses(self):
        interactions = [
            Interaction(ai_response=json.dumps({"gaps": ["Types", "Scope"]})),
            Interaction(ai_response="A variable stores a value."),
            Interaction(ai_response=json.dumps({"weakPoints": ["Scope", "Naming"]})),
            Interaction(ai_response="{not json"),
        ]
        assert extract_gaps(interactions) == ["Types", "Scope", "Naming"]

    def test_at_most_ten(self):
        interactions = [Interaction(ai_response=json.dumps({"gaps": [f"gap {i}" for i in range(15)]}))]
        assert len(extract_gaps(interactions)) == 10


class TestActivityStreaks:

    def test_runs(self):
        days = [date(2024, 1, d) for d in (10, 9, 8, 5, 4, 3, 2)]
        assert activity_streaks(days, date(2024, 1, 10)) == (3, 4)

    def test_yesterday_keeps_the_streak(self):
        days = [date(2024, 1, 9), date(2024, 1, 8)]
        assert activity_streaks(days, date(2024, 1, 10)) == (2, 2)

    def test_gap_breaks_the_streak(self):
        assert activity_streaks([date(2024, 1, 7)], date(2024, 1, 10)) == (0, 1)

    def test_no_activity(self):
        assert activity_streaks([], date(2024, 1, 10)) == (0, 0)


class TestAdapt:

    def test_no_scores(self):
        adaptation = adapt([], NOW)
        assert adaptation.pace == "slow"
        assert adaptation.extra_examples
        assert not adaptation.review_due
        assert adaptation.next_review_date is None

    def test_mastered(self):
        adaptation = adapt([(0.95, NOW - timedelta(days=1)), (0.9, NOW - timedelta(days=2))], NOW)
        assert adaptation.pace == "fast"
        assert adaptation.skip_suggested
        assert not adaptation.extra_examples
        assert not adaptation.review_due
        assert adaptation.next_review_date == "2024-04-08"
        assert adaptation.reasoning == "High mastery, can move faster. Content already mastered, skip available."

    def test_review_due(self):
        adaptation = adapt([(0.6, NOW - timedelta(days=5))], NOW)
        assert adaptation.pace == "normal"
        assert not adaptation.extra_examples
        assert adaptation.review_due
        assert adaptation.reasoning == "Spaced repetition review due."

    def test_low_average_slows_down(self):
        scores = [(0.55, NOW), (0.45, NOW - timedelta(hours=1)), (0.4, NOW - timedelta(hours=2))]
        adaptation = adapt(scores, NOW)
        assert adaptation.pace == "slow"
        assert adaptation.extra_examples


# ==============================================================================
# Service
# ==============================================================================

@pytest.mark.asyncio
class TestConceptProgress:

    async def test_history_and_gaps(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concept = (await repository.get_concepts(learning_map.id))[0]
        await _logged(repository, session.id, concept.id, 0.4, NOW - timedelta(hours=3))
        await _logged(
            repository, session.id, concept.id, 0.8, NOW - timedelta(hours=2),
            response=json.dumps({"overallScore": 80, "gaps": ["Types"]}),
        )
        await _logged(
            repository, session.id, concept.id, None, NOW - timedelta(hours=1),
            role="COACH", response="Let's move on.",
        )

        progress = await ProgressService(repository).get_concept_progress(TEST_USER_ID, concept.id)

        assert progress.title == "Variables"
        assert progress.started
        assert progress.completed
        assert progress.confidence_score == 80
        assert [point.score for point in progress.confidence_history] == [40, 80]
        assert progress.interaction_count == 3
        assert progress.time_spent_minutes == 6
        assert progress.gaps == ["Types"]
        assert progress.last_interaction_at == NOW - timedelta(hours=1)

    async def test_other_users_work_is_excluded(self, repository, content, learning_map):
        session = await repository.create_session(OTHER_USER_ID, content.id)
        concept = (await repository.get_concepts(learning_map.id))[0]
        await _logged(repository, session.id, concept.id, 0.9, NOW)

        progress = await ProgressService(repository).get_concept_progress(TEST_USER_ID, concept.id)

        assert not progress.started
        assert progress.confidence_score == 0

    async def test_unknown_concept(self, repository):
        with pytest.raises(ConceptNotFoundError):
            await ProgressService(repository).get_concept_progress(TEST_USER_ID, "missing")


@pytest.mark.asyncio
class TestContentProgress:

    async def test_rollup(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        session = await repository.update_session(session, total_time_minutes=12)
        concepts = await repository.get_concepts(learning_map.id)
        await _logged(repository, session.id, concepts[0].id, 0.9, NOW - timedelta(hours=2))
        await _logged(repository, session.id, concepts[1].id, 0.5, NOW - timedelta(hours=1))

        progress = await ProgressService(repository).get_content_progress(TEST_USER_ID, content.id)

        assert progress.content_title == "Intro to Programming"
        assert progress.total_concepts == 3
        assert progress.completed_concepts == 1
        assert progress.progress_percent == 33
        assert progress.average_confidence == 70
        assert progress.total_time_minutes == 12
        assert progress.last_session_at == session.last_active_at
        assert [(a.title, a.confidence) for a in progress.weak_areas] == [("Loops", 50)]
        assert [(a.title, a.confidence) for a in progress.mastered_areas] == [("Variables", 90)]

    async def test_without_learning_map(self, db, repository):
        content = Content(user_id=TEST_USER_ID, title="Unplanned")
        db.add(content)
        await db.commit()

        progress = await ProgressService(repository).get_content_progress(TEST_USER_ID, content.id)

        assert progress.total_concepts == 0
        assert progress.progress_percent == 0
        assert progress.weak_areas == []

    async def test_regenerated_map_starts_over(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concept = (await repository.get_concepts(learning_map.id))[0]
        await _logged(repository, session.id, concept.id, 0.9, NOW)

        await repository.replace_learning_map(
            content.id,
            {"overview": "Again", "total_concepts": 1, "estimated_duration": 10, "difficulty_level": "beginner"},
            [{"title": "Basics", "description": "Start here", "difficulty": 1, "estimated_minutes": 10}],
        )
        progress = await ProgressService(repository).get_content_progress(TEST_USER_ID, content.id)

        assert progress.total_concepts == 1
        assert progress.completed_concepts == 0
        assert progress.average_confidence == 0

    async def test_unknown_content(self, repository):
        with pytest.raises(ContentNotFoundError):
            await ProgressService(repository).get_content_progress(TEST_USER_ID, "missing")


@pytest.mark.asyncio
class TestUserSummary:

    async def test_summary(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concept = (await repository.get_concepts(learning_map.id))[0]
        await _logged(repository, session.id, concept.id, 0.9, NOW)

        summary = await ProgressService(repository).get_user_summary(TEST_USER_ID, now=session.last_active_at)

        assert summary.total_contents == 1
        assert summary.completed_contents == 0
        assert summary.total_concepts == 3
        assert summary.completed_concepts == 1
        assert summary.average_confidence == 90
        assert summary.current_streak == 1
        assert summary.longest_streak == 1
        assert [c.content_id for c in summary.content_progress] == [content.id]

    async def test_new_user(self, repository):
        summary = await ProgressService(repository).get_user_summary(TEST_USER_ID, now=NOW)
        assert summary.total_contents == 0
        assert summary.current_streak == 0
        assert summary.content_progress == []


@pytest.mark.asyncio
class TestPatternsAndAdaptation:

    async def test_confidence_history(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concepts = await repository.get_concepts(learning_map.id)
        await _logged(repository, session.id, concepts[1].id, 0.5, NOW - timedelta(hours=2))
        await _logged(repository, session.id, concepts[0].id, None, NOW - timedelta(hours=1), role="TUTOR")
        await _logged(repository, session.id, concepts[0].id, 0.75, NOW)

        history = await ProgressService(repository).get_confidence_history(TEST_USER_ID, content.id)

        assert [(p.concept_title, p.confidence) for p in history] == [("Loops", 50), ("Variables", 75)]

    async def test_patterns(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concepts = await repository.get_concepts(learning_map.id)
        await _logged(repository, session.id, concepts[1].id, 0.3, NOW - timedelta(hours=4))
        await _logged(repository, session.id, concepts[1].id, 0.4, NOW - timedelta(hours=3))
        await _logged(repository, session.id, concepts[0].id, 0.9, NOW - timedelta(hours=2))
        await _logged(repository, session.id, concepts[1].id, 0.45, NOW - timedelta(hours=1))

        patterns = await ProgressService(repository).analyze_patterns(TEST_USER_ID, content.id)

        assert [(m.title, m.count) for m in patterns.repeated_mistakes] == [("Loops", 3)]
        assert patterns.total_interactions == 4
        assert patterns.avg_time_per_concept == 4
        assert patterns.quality_trend == "improving"
        assert [(c.title, c.confidence) for c in patterns.low_confidence_concepts] == [("Loops", 45)]

    async def test_patterns_without_activity(self, repository, content, learning_map):
        patterns = await ProgressService(repository).analyze_patterns(TEST_USER_ID, content.id)
        assert patterns.total_interactions == 0
        assert patterns.quality_trend == "stable"

    async def test_adaptation(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concept = (await repository.get_concepts(learning_map.id))[0]
        await _logged(repository, session.id, concept.id, 0.9, NOW - timedelta(days=4))
        await _logged(repository, session.id, concept.id, 0.3, NOW - timedelta(days=3))

        adaptation = await ProgressService(repository).get_adaptation(TEST_USER_ID, concept.id, now=NOW)

        assert adaptation.pace == "slow"
        assert adaptation.extra_examples
        assert adaptation.review_due
        assert adaptation.next_review_date == "2024-03-08"

    async def test_weak_areas(self, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concepts = await repository.get_concepts(learning_map.id)
        await _logged(repository, session.id, concepts[0].id, 0.4, NOW - timedelta(days=2))
        await _logged(repository, session.id, concepts[1].id, 0.55, NOW)
        await _logged(repository, session.id, concepts[2].id, 0.9, NOW)

        weak = await ProgressService(repository).get_weak_areas(TEST_USER_ID, content.id, now=NOW)

        assert [(w.title, w.confidence, w.review_due) for w in weak] == [
            ("Variables", 40, True),
            ("Loops", 55, False),
        ]


@pytest.mark.asyncio
class TestProgressEndpoints:

    async def test_summary(self, async_client, auth_headers):
        response = await async_client.get(f"{API}/progress/summary", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total_contents"] == 0

    async def test_content_routes(self, async_client, auth_headers, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concept = (await repository.get_concepts(learning_map.id))[0]
        await _logged(repository, session.id, concept.id, 0.45, NOW)

        response = await async_client.get(f"{API}/progress/{content.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["weak_areas"][0]["title"] == "Variables"

        response = await async_client.get(f"{API}/progress/{content.id}/confidence-history", headers=auth_headers)
        assert [p["confidence"] for p in response.json()] == [45]

        response = await async_client.get(f"{API}/progress/{content.id}/patterns", headers=auth_headers)
        assert response.json()["total_interactions"] == 1

        response = await async_client.get(f"{API}/progress/{content.id}/weak-areas", headers=auth_headers)
        assert [w["confidence"] for w in response.json()] == [45]

    async def test_concept_routes(self, async_client, auth_headers, repository, content, learning_map):
        concept = (await repository.get_concepts(learning_map.id))[0]

        response = await async_client.get(f"{API}/progress/concept/{concept.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["started"] is False

        response = await async_client.get(f"{API}/progress/concept/{concept.id}/adaptation", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["pace"] == "slow"

    async def test_missing_content(self, async_client, auth_headers):
        response = await async_client.get(f"{API}/progress/missing", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "ContentNotFoundError"

    async def test_requires_auth(self, async_client):
        response = await async_client.get(f"{API}/progress/summary")
        assert response.status_code == 401
