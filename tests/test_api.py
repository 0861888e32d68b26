"""
Test the HTTP API end to end against the scripted provider router.
"""

import pytest

from learnloop.agents.registry import AIRole
from learnloop.core.exceptions import ProviderError, ProviderUnavailableError

API = "/api/v1"


@pytest.mark.asyncio
class TestPublicEndpoints:

    async def test_health(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_roles(self, async_client):
        response = await async_client.get(f"{API}/ai/roles")
        assert response.status_code == 200
        roles = {r["id"]: r for r in response.json()["roles"]}
        assert set(roles) == {"planner", "tutor", "examiner", "coach", "reviewer"}
        assert roles["tutor"]["provider"] == "deepseek"
        assert roles["examiner"]["output_format"] == "json"
        assert "v1" in roles["planner"]["versions"]

    async def test_providers(self, async_client):
        response = await async_client.get(f"{API}/ai/providers")
        assert response.json() == {"providers": {"openai": True, "deepseek": True}}


@pytest.mark.asyncio
class TestAuthentication:
    """Test bearer token handling."""

    async def test_missing_token(self, async_client):
        response = await async_client.get(f"{API}/sessions")
        assert response.status_code == 401

    async def test_invalid_token(self, async_client):
        response = await async_client.get(
            f"{API}/sessions", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401


@pytest.mark.asyncio
class TestSessionEndpoints:
    """Test the session lifecycle over HTTP."""

    async def test_create_for_missing_content(self, async_client, auth_headers):
        response = await async_client.post(
            f"{API}/sessions", json={"content_id": "missing"}, headers=auth_headers
        )
        assert response.status_code == 404
        assert response.json()["error"] == "ContentNotFoundError"

    async def test_create_without_learning_map(self, async_client, auth_headers, content):
        response = await async_client.post(
            f"{API}/sessions", json={"content_id": content.id}, headers=auth_headers
        )
        assert response.status_code == 400
        assert "learning map" in response.json()["detail"]

    async def test_full_flow(self, async_client, auth_headers, content, learning_map):
        response = await async_client.post(
            f"{API}/sessions", json={"content_id": content.id}, headers=auth_headers
        )
        assert response.status_code == 201
        session = response.json()
        assert session["state"] == "init"
        assert session["current_concept"]["title"] == "Variables"
        session_id = session["id"]

        response = await async_client.post(
            f"{API}/sessions/{session_id}/interact", json={"message": ""}, headers=auth_headers
        )
        assert response.status_code == 200
        turn = response.json()
        assert turn["actions"] == ["start", "explain_complete"]
        assert turn["explanation"]["examples"]

        response = await async_client.post(
            f"{API}/sessions/{session_id}/interact",
            json={"message": "A variable stores a value under a name."},
            headers=auth_headers,
        )
        turn = response.json()
        assert turn["decision"]["next_action"] == "proceed"
        assert turn["evaluation"]["overall_score"] == 80
        assert turn["progress"] == 33

        response = await async_client.post(f"{API}/sessions/{session_id}/pause", headers=auth_headers)
        assert response.json()["status"] == "PAUSED"

        response = await async_client.post(
            f"{API}/sessions/{session_id}/interact", json={"message": "hi"}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidTransitionError"

        response = await async_client.post(f"{API}/sessions/{session_id}/resume", headers=auth_headers)
        assert response.json()["state"] == "explain"

        response = await async_client.post(f"{API}/sessions/{session_id}/complete", headers=auth_headers)
        assert response.json()["status"] == "COMPLETED"
        assert response.json()["progress"] == 100

        response = await async_client.get(f"{API}/sessions/{session_id}/summary", headers=auth_headers)
        assert response.status_code == 200
        summary = response.json()
        assert summary["content_title"] == "Intro to Programming"
        assert summary["concepts_covered"][0] == "Variables"

        response = await async_client.get(f"{API}/sessions", headers=auth_headers)
        assert [s["id"] for s in response.json()] == [session_id]

    async def test_side_requests(self, async_client, auth_headers, content, learning_map):
        response = await async_client.post(f"{API}/sessions", json={"content_id": content.id}, headers=auth_headers)
        session_id = response.json()["id"]

        response = await async_client.post(
            f"{API}/sessions/{session_id}/ask", json={"question": "What is a name?"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["follow_up_question"].endswith("?")

        response = await async_client.post(
            f"{API}/sessions/{session_id}/simplify",
            json={"previous_explanation": "A variable binds a name."},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["examples"]

        response = await async_client.post(f"{API}/sessions/{session_id}/probe", headers=auth_headers)
        assert response.status_code == 400

        response = await async_client.post(f"{API}/sessions/{session_id}/ask", json={"question": ""}, headers=auth_headers)
        assert response.status_code == 422

    async def test_other_user_gets_404(self, async_client, auth_headers, other_auth_headers, content, learning_map):
        response = await async_client.post(
            f"{API}/sessions", json={"content_id": content.id}, headers=auth_headers
        )
        session_id = response.json()["id"]

        response = await async_client.get(f"{API}/sessions/{session_id}", headers=other_auth_headers)
        assert response.status_code == 404

        response = await async_client.post(
            f"{API}/sessions/{session_id}/interact", json={"message": "hi"}, headers=other_auth_headers
        )
        assert response.status_code == 404

    async def test_provider_failure_is_502(self, async_client, auth_headers, fake_router, content, learning_map):
        response = await async_client.post(
            f"{API}/sessions", json={"content_id": content.id}, headers=auth_headers
        )
        fake_router.fail(AIRole.TUTOR, ProviderError("AI service unavailable", provider="deepseek"))

        response = await async_client.post(
            f"{API}/sessions/{response.json()['id']}/interact", json={"message": ""}, headers=auth_headers
        )
        assert response.status_code == 502
        assert response.json()["error"] == "ProviderError"


@pytest.mark.asyncio
class TestContentEndpoints:

    async def test_generate_and_get_learning_map(self, async_client, auth_headers, content):
        response = await async_client.post(
            f"{API}/content/{content.id}/learning-map", headers=auth_headers
        )
        assert response.status_code == 201
        assert response.json()["concept_count"] == 3

        response = await async_client.get(
            f"{API}/content/{content.id}/learning-map", headers=auth_headers
        )
        assert response.status_code == 200
        learning_map = response.json()
        assert [c["title"] for c in learning_map["concepts"]] == ["Variables", "Loops", "Functions"]

    async def test_missing_learning_map(self, async_client, auth_headers, content):
        response = await async_client.get(
            f"{API}/content/{content.id}/learning-map", headers=auth_headers
        )
        assert response.status_code == 404

    async def test_index_runs_in_background(self, async_client, auth_headers, container, fake_vector_store, content):
        response = await async_client.post(f"{API}/content/{content.id}/index", headers=auth_headers)
        assert response.status_code == 202
        task_id = response.json()["task_id"]

        await container.background.get(task_id).wait()

        response = await async_client.get(f"{API}/tasks/{task_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "succeeded"
        assert response.json()["result"] == 3
        assert fake_vector_store.indexed == {content.id: 3}

    async def test_index_missing_content(self, async_client, auth_headers):
        response = await async_client.post(f"{API}/content/missing/index", headers=auth_headers)
        assert response.status_code == 404

    async def test_unknown_task(self, async_client, auth_headers):
        response = await async_client.get(f"{API}/tasks/nope", headers=auth_headers)
        assert response.status_code == 404


@pytest.mark.asyncio
class TestAIEndpoints:

    async def test_chat(self, async_client, auth_headers, content):
        response = await async_client.post(
            f"{API}/ai/chat",
            json={"role": "tutor", "message": "What is a loop?", "content_id": content.id},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "deepseek"
        assert body["prompt_version"] == "v1"
        assert body["interaction_id"]

    async def test_chat_into_another_users_session(
        self, async_client, auth_headers, other_auth_headers, fake_router, repository, content, learning_map
    ):
        response = await async_client.post(f"{API}/sessions", json={"content_id": content.id}, headers=auth_headers)
        session_id = response.json()["id"]

        response = await async_client.post(
            f"{API}/ai/chat",
            json={"role": "tutor", "message": "intruder", "content_id": content.id, "session_id": session_id},
            headers=other_auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"] == "SessionNotFoundError"
        assert fake_router.calls == []
        assert await repository.session_interactions(session_id) == []

    async def test_chat_provider_error(self, async_client, auth_headers, fake_router):
        fake_router.fail(AIRole.EXAMINER, ProviderError("AI service unavailable", provider="openai"))
        response = await async_client.post(
            f"{API}/ai/chat", json={"role": "examiner", "message": "hi"}, headers=auth_headers
        )
        assert response.status_code == 502

    async def test_chat_without_providers(self, async_client, auth_headers, fake_router):
        fake_router.fail(AIRole.COACH, ProviderUnavailableError("No AI provider configured"))
        response = await async_client.post(
            f"{API}/ai/chat", json={"role": "coach", "message": "hi"}, headers=auth_headers
        )
        assert response.status_code == 503

    async def test_chat_rejects_unknown_role(self, async_client, auth_headers):
        response = await async_client.post(
            f"{API}/ai/chat", json={"role": "oracle", "message": "hi"}, headers=auth_headers
        )
        assert response.status_code == 422


@pytest.mark.asyncio
class TestReviewEndpoints:

    async def test_weekly_report(self, async_client, auth_headers):
        response = await async_client.get(f"{API}/review/weekly", headers=auth_headers)
        assert response.status_code == 200
        report = response.json()
        assert report["total_sessions"] == 0
        assert report["progress_trend"] == "stable"
        assert report["recommendations"] == ["Review functions"]

    async def test_schedule_empty(self, async_client, auth_headers):
        response = await async_client.get(f"{API}/review/schedule", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == []
