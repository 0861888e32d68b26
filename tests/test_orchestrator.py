"""
Test the orchestrator: prompt building, routing, persistence and sessions.
"""

import pytest

from learnloop.agents.orchestrator import OrchestrationRequest
from learnloop.agents.registry import AIRole, ProviderName
from learnloop.core.exceptions import ProviderError, SessionNotFoundError

from .conftest import OTHER_USER_ID, TEST_USER_ID


@pytest.mark.asyncio
class TestOrchestrate:
    """Test one end-to-end AI exchange."""

    async def test_persists_interaction(self, orchestrator, repository, content, learning_map):
        session = await repository.create_session(TEST_USER_ID, content.id)
        concept = await repository.first_concept(learning_map.id)

        response = await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.TUTOR,
            user_message="Explain variables",
            content_id=content.id,
            concept_id=concept.id,
            session_id=session.id,
        ))

        assert response.provider == ProviderName.DEEPSEEK
        assert response.prompt_version == "v1"
        assert response.usage.total_tokens == 150
        assert response.usage.estimated_cost > 0
        assert response.interaction_id

        interactions = await repository.session_interactions(session.id)
        assert len(interactions) == 1
        stored = interactions[0]
        assert stored.id == response.interaction_id
        assert stored.role == "TUTOR"
        assert stored.interaction_type == "EXPLANATION"
        assert stored.concept_id == concept.id
        assert stored.user_message == "Explain variables"
        assert stored.provider == "deepseek"
        assert stored.prompt_version == "v1"
        assert stored.tokens_used == 150
        assert stored.confidence_score is None

    async def test_user_message_is_never_overwritten(self, orchestrator, fake_router, content, learning_map):
        concept_id = (await orchestrator.repository.first_concept(learning_map.id)).id

        await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.TUTOR,
            user_message="the real question",
            content_id=content.id,
            concept_id=concept_id,
            additional_context={"userMessage": "injected", "previousStruggles": "loops"},
        ))

        prompt = fake_router.calls[0]["system_prompt"]
        assert "the real question" in prompt
        assert "injected" not in prompt
        assert "Intro to Programming" in prompt
        assert "Variables" in prompt
        assert "{{" not in prompt

    async def test_assembled_context_wins_over_additional_context(self, orchestrator, fake_router, content):
        await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.REVIEWER,
            user_message="summarise",
            content_id=content.id,
            additional_context={"contentTitle": "caller title", "timeSpent": 42},
        ))

        prompt = fake_router.calls[0]["system_prompt"]
        assert "Document: Intro to Programming" in prompt
        assert "Time spent (minutes): 42" in prompt

    async def test_creates_and_reuses_active_session(self, orchestrator, repository, content, learning_map):
        first = await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.TUTOR,
            user_message="hi",
            content_id=content.id,
        ))
        second = await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.TUTOR,
            user_message="again",
            content_id=content.id,
        ))

        sessions = await repository.user_sessions(TEST_USER_ID)
        assert len(sessions) == 1
        session = sessions[0]
        assert session.status == "ACTIVE"
        assert session.state == "init"
        assert session.current_concept_id == (await repository.first_concept(learning_map.id)).id

        interactions = await repository.session_interactions(session.id)
        assert [i.id for i in interactions] == [first.interaction_id, second.interaction_id]

    async def test_no_session_without_content(self, orchestrator, repository):
        response = await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.TUTOR,
            user_message="general question",
        ))
        assert response.interaction_id == ""
        assert await repository.user_sessions(TEST_USER_ID) == []

    async def test_foreign_session_is_not_found(self, orchestrator, fake_router, repository, content):
        session = await repository.create_session(TEST_USER_ID, content.id)

        with pytest.raises(SessionNotFoundError):
            await orchestrator.orchestrate(OTHER_USER_ID, OrchestrationRequest(
                role=AIRole.TUTOR,
                user_message="intruder",
                content_id=content.id,
                session_id=session.id,
            ))

        assert fake_router.calls == []
        assert await repository.session_interactions(session.id) == []

    async def test_unknown_session_is_not_found(self, orchestrator):
        with pytest.raises(SessionNotFoundError):
            await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
                role=AIRole.COACH,
                user_message="hi",
                session_id="missing",
            ))

    async def test_provider_failure_persists_nothing(self, orchestrator, fake_router, repository, content):
        session = await repository.create_session(TEST_USER_ID, content.id)
        fake_router.fail(AIRole.TUTOR, ProviderError("down", provider="deepseek"))

        with pytest.raises(ProviderError):
            await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
                role=AIRole.TUTOR,
                user_message="hi",
                content_id=content.id,
                session_id=session.id,
            ))

        assert await repository.session_interactions(session.id) == []

    async def test_confidence_scorer_sets_score(self, orchestrator, repository, content):
        session = await repository.create_session(TEST_USER_ID, content.id)

        response = await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.EXAMINER,
            user_message="my explanation",
            content_id=content.id,
            session_id=session.id,
            confidence_scorer=lambda text: 0.42,
        ))

        interactions = await repository.session_interactions(session.id)
        assert interactions[0].confidence_score == pytest.approx(0.42)
        assert interactions[0].interaction_type == "EVALUATION"
        assert response.provider == ProviderName.OPENAI

    async def test_unknown_prompt_version_falls_back(self, orchestrator, content):
        response = await orchestrator.orchestrate(TEST_USER_ID, OrchestrationRequest(
            role=AIRole.COACH,
            user_message="hi",
            prompt_version="v99",
        ))
        assert response.prompt_version == "v1"
