"""
Pytest configuration and fixtures.

Tests run against an in-memory SQLite database (aiosqlite) and a scripted
provider router, so no network or MySQL server is needed.
"""

import json
from collections import defaultdict
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from learnloop.agents.context import ContextAssembler
from learnloop.agents.orchestrator import Orchestrator
from learnloop.agents.prompt_store import PromptStore
from learnloop.agents.providers import LLMOptions, LLMResponse, TokenUsage
from learnloop.agents.registry import AIRole, provider_for_role
from learnloop.agents.tutor.session import SessionService
from learnloop.api.deps import Container
from learnloop.core.config import PACKAGE_DIR, Settings
from learnloop.core.locks import SessionLocks
from learnloop.core.security import create_access_token
from learnloop.db.base import create_session_maker, init_database
from learnloop.db.models import Content, ContentSection
from learnloop.db.repository import Repository
from learnloop.main import create_app
from learnloop.vector.search import SectionHit


TEST_USER_ID = "user-1"
OTHER_USER_ID = "user-2"

TUTOR_TEXT = (
    "A variable is a named place to store a value.\n"
    "- count = 3 stores a number\n"
    "- name = 'Ada' stores text\n"
    "Can you explain what a variable is in your own words?"
)

DEFAULT_RESPONSES: Dict[AIRole, str] = {
    AIRole.TUTOR: TUTOR_TEXT,
    AIRole.EXAMINER: json.dumps({
        "overallScore": 80,
        "scores": {"accuracy": 85, "completeness": 75, "understanding": 80, "application": 70},
        "strengths": ["Clear definition"],
        "gaps": ["No mention of types"],
        "feedback": "Good explanation.",
        "suggestedFollowUp": "What happens when you reassign a variable?",
    }),
    AIRole.COACH: json.dumps({
        "nextAction": "proceed",
        "reason": "Solid understanding",
        "message": "Let's move on.",
        "suggestions": ["Keep going"],
        "encouragement": "Nice work!",
    }),
    AIRole.PLANNER: json.dumps({
        "overview": "Learn the basics of programming.",
        "totalEstimatedMinutes": 45,
        "concepts": [
            {"title": "Variables", "description": "Storing values", "difficulty": 1, "estimatedMinutes": 15},
            {"title": "Loops", "description": "Repeating work", "difficulty": 2, "estimatedMinutes": 15,
             "prerequisites": ["Variables"]},
            {"title": "Functions", "description": "Reusable code", "difficulty": 3, "estimatedMinutes": 15,
             "keyPoints": ["Parameters", "Return values"]},
        ],
    }),
    AIRole.REVIEWER: json.dumps({
        "strengths": ["Consistent practice"],
        "weakPoints": ["Loops"],
        "keyTakeaways": ["Variables hold values"],
        "suggestedNextSteps": ["Practice loops"],
        "overallScore": 75,
        "topStrengths": ["Variables"],
        "areasForImprovement": ["Functions"],
        "recommendations": ["Review functions"],
    }),
}


class FakeRouter:
    """Scripted stand-in for ProviderRouter."""

    def __init__(self):
        self.queued: Dict[AIRole, List[str]] = defaultdict(list)
        self.failures: Dict[AIRole, Exception] = {}
        self.calls: List[dict] = []

    def queue(self, role: AIRole, *contents: str) -> None:
        self.queued[role].extend(contents)

    def fail(self, role: AIRole, error: Exception) -> None:
        self.failures[role] = error

    def calls_for(self, role: AIRole) -> List[dict]:
        return [c for c in self.calls if c["role"] == role]

    def available_providers(self) -> Dict[str, bool]:
        return {"openai": True, "deepseek": True}

    async def route(
        self,
        role: AIRole,
        system_prompt: str,
        user_message: str,
        options: Optional[LLMOptions] = None,
    ) -> LLMResponse:
        role = AIRole(role)
        self.calls.append({"role": role, "system_prompt": system_prompt, "user_message": user_message})
        if role in self.failures:
            raise self.failures[role]

        queue = self.queued[role]
        content = queue.pop(0) if queue else DEFAULT_RESPONSES[role]
        return LLMResponse(
            content=content,
            usage=TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
            model="fake-model",
            provider=provider_for_role(role),
        )


class FakeSearch:
    """Section search returning preset hits (or raising)."""

    def __init__(self):
        self.hits: List[SectionHit] = []
        self.error: Optional[Exception] = None
        self.queries: List[str] = []

    async def search(self, query: str, content_id: Optional[str] = None, limit: int = 5) -> List[SectionHit]:
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.hits[:limit]


class FakeVectorStore:
    """Records indexing calls."""

    def __init__(self):
        self.indexed: Dict[str, int] = {}

    async def index_sections(self, content_id: str, sections) -> int:
        self.indexed[content_id] = len(sections)
        return len(sections)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        SECRET_KEY="test-secret-key-for-jwt-signing-0123456789",
        DATABASE_URL="sqlite+aiosqlite://",
        OPENAI_API_KEY="",
        DEEPSEEK_API_KEY="",
        PROMPTS_DIR=str(PACKAGE_DIR / "prompts"),
        VECTOR_DB_PATH=str(tmp_path / "vector_db"),
        LANGSMITH_TRACING=False,
        DEBUG=True,
    )


@pytest.fixture
async def engine():
    """One in-memory database shared by every connection of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def repository(db) -> Repository:
    return Repository(db)


@pytest.fixture
def fake_router() -> FakeRouter:
    return FakeRouter()


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def prompt_store() -> PromptStore:
    return PromptStore(PACKAGE_DIR / "prompts")


@pytest.fixture
def orchestrator(repository, fake_router, prompt_store, fake_search) -> Orchestrator:
    return Orchestrator(
        repository,
        fake_router,
        prompt_store,
        ContextAssembler(repository, search=fake_search),
    )


@pytest.fixture
def session_service(repository, orchestrator) -> SessionService:
    return SessionService(repository, orchestrator, SessionLocks())


@pytest.fixture
async def content(db) -> Content:
    """A content item with three sections."""
    content = Content(user_id=TEST_USER_ID, title="Intro to Programming", description="First steps")
    db.add(content)
    await db.flush()
    for order, (title, text) in enumerate([
        ("Variables", "Variables store values."),
        ("Loops", "Loops repeat work."),
        ("Functions", "Functions package reusable code."),
    ]):
        db.add(ContentSection(content_id=content.id, section_order=order, title=title, content_text=text))
    await db.commit()
    return content


@pytest.fixture
async def learning_map(repository, content):
    """A three-concept learning map for `content`."""
    return await repository.replace_learning_map(
        content.id,
        {
            "overview": "Programming basics",
            "total_concepts": 3,
            "estimated_duration": 45,
            "difficulty_level": "beginner",
        },
        [
            {"title": "Variables", "description": "Storing values", "difficulty": 1, "estimated_minutes": 15},
            {"title": "Loops", "description": "Repeating work", "difficulty": 2, "estimated_minutes": 15},
            {"title": "Functions", "description": "Reusable code", "difficulty": 2, "estimated_minutes": 15},
        ],
    )


@pytest.fixture
def fake_vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def container(settings, fake_router, prompt_store, session_maker, fake_search, fake_vector_store) -> Container:
    return Container(
        settings=settings,
        router=fake_router,
        prompt_store=prompt_store,
        session_maker=session_maker,
        search=fake_search,
        vector_store=fake_vector_store,
    )


@pytest.fixture
async def async_client(settings, container) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    app = create_app(settings, container)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client


@pytest.fixture
def auth_headers(settings) -> dict:
    """Return headers with a bearer token for TEST_USER_ID."""
    token = create_access_token({"sub": TEST_USER_ID}, settings=settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(settings) -> dict:
    token = create_access_token({"sub": OTHER_USER_ID}, settings=settings)
    return {"Authorization": f"Bearer {token}"}
