"""Service container and FastAPI dependencies.

The container is built once in the application lifespan and stored on
``app.state``. Everything bound to a database session (repository,
orchestrator, role and session services) is built per request from it.
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..agents.context import ContextAssembler
from ..agents.orchestrator import Orchestrator
from ..agents.progress import ProgressService
from ..agents.prompt_store import PromptStore
from ..agents.providers import ProviderRouter
from ..agents.roles import PlannerService, ReviewerService
from ..agents.tutor.session import SessionService
from ..core.background import BackgroundTaskRunner
from ..core.config import Settings
from ..core.locks import SessionLocks
from ..db.base import get_session_maker
from ..db.repository import Repository
from ..vector.content_store import ContentVectorStore
from ..vector.search import SectionSearch

logger = logging.getLogger(__name__)


class Container:
    """Process-wide collaborators shared by every request."""

    def __init__(
        self,
        settings: Settings,
        router: ProviderRouter,
        prompt_store: PromptStore,
        session_maker: async_sessionmaker[AsyncSession],
        search: Optional[SectionSearch] = None,
        vector_store: Optional[ContentVectorStore] = None,
        locks: Optional[SessionLocks] = None,
        background: Optional[BackgroundTaskRunner] = None,
    ):
        self.settings = settings
        self.router = router
        self.prompt_store = prompt_store
        self.session_maker = session_maker
        self.vector_store = vector_store
        self.search = search if search is not None else vector_store
        self.locks = locks if locks is not None else SessionLocks()
        self.background = background if background is not None else BackgroundTaskRunner()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Container":
        vector_store = ContentVectorStore(settings)
        return cls(
            settings=settings,
            router=ProviderRouter.from_settings(settings),
            prompt_store=PromptStore(settings.PROMPTS_DIR),
            session_maker=get_session_maker(),
            vector_store=vector_store,
        )

    # =========================================================================
    # Per-request services
    # =========================================================================

    def repository(self, db: AsyncSession) -> Repository:
        return Repository(db)

    def orchestrator(self, db: AsyncSession) -> Orchestrator:
        repository = self.repository(db)
        assembler = ContextAssembler(
            repository,
            search=self.search,
            max_chars=self.settings.context_max_chars,
            max_sections=self.settings.CONTEXT_MAX_SECTIONS,
        )
        return Orchestrator(repository, self.router, self.prompt_store, assembler)

    def session_service(self, db: AsyncSession) -> SessionService:
        return SessionService(self.repository(db), self.orchestrator(db), self.locks)

    def planner(self, db: AsyncSession) -> PlannerService:
        return PlannerService(self.orchestrator(db), self.repository(db))

    def reviewer(self, db: AsyncSession) -> ReviewerService:
        return ReviewerService(self.orchestrator(db), self.repository(db))

    def progress(self, db: AsyncSession) -> ProgressService:
        return ProgressService(self.repository(db))


# =============================================================================
# Dependencies
# =============================================================================

def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_db(container: Container = Depends(get_container)) -> AsyncIterator[AsyncSession]:
    """One AsyncSession per request."""
    async with container.session_maker() as session:
        yield session


def get_session_service(
    container: Container = Depends(get_container),
    db: AsyncSession = Depends(get_db),
) -> SessionService:
    return container.session_service(db)


def get_planner(
    container: Container = Depends(get_container),
    db: AsyncSession = Depends(get_db),
) -> PlannerService:
    return container.planner(db)


def get_reviewer(
    container: Container = Depends(get_container),
    db: AsyncSession = Depends(get_db),
) -> ReviewerService:
    return container.reviewer(db)


def get_progress(
    container: Container = Depends(get_container),
    db: AsyncSession = Depends(get_db),
) -> ProgressService:
    return container.progress(db)


def get_orchestrator(
    container: Container = Depends(get_container),
    db: AsyncSession = Depends(get_db),
) -> Orchestrator:
    return container.orchestrator(db)
