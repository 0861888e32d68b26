"""Content endpoints: learning maps and section indexing."""

import logging

from fastapi import APIRouter, Depends, status

from ..agents.roles import LearningMapDetail, LearningMapResult, PlannerService
from ..core.exceptions import ContentNotFoundError, NotFoundError, ProviderUnavailableError
from ..db.repository import Repository
from ..vector.content_store import index_content
from .auth import get_current_user_id
from .deps import Container, get_container, get_planner

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Content"])


@router.post(
    "/content/{content_id}/learning-map",
    response_model=LearningMapResult,
    status_code=status.HTTP_201_CREATED,
)
async def generate_learning_map(
    content_id: str,
    user_id: str = Depends(get_current_user_id),
    planner: PlannerService = Depends(get_planner),
):
    """Generate (or regenerate) the learning map of a content item."""
    return await planner.generate_learning_map(user_id, content_id)


@router.get("/content/{content_id}/learning-map", response_model=LearningMapDetail)
async def get_learning_map(
    content_id: str,
    user_id: str = Depends(get_current_user_id),
    planner: PlannerService = Depends(get_planner),
):
    return await planner.get_learning_map(content_id)


@router.post("/content/{content_id}/index", status_code=status.HTTP_202_ACCEPTED)
async def index_content_sections(
    content_id: str,
    user_id: str = Depends(get_current_user_id),
    container: Container = Depends(get_container),
):
    """
    Embed the content's sections in the background.

    The task gets its own database session since it outlives the request.
    """
    async with container.session_maker() as db:
        if await Repository(db).get_content(content_id) is None:
            raise ContentNotFoundError(content_id)

    if container.vector_store is None:
        raise ProviderUnavailableError("Vector store not configured", provider="chroma")

    async def run() -> int:
        async with container.session_maker() as db:
            return await index_content(Repository(db), container.vector_store, content_id)

    handle = container.background.submit(f"index:{content_id}", run)
    return handle.to_dict()


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    container: Container = Depends(get_container),
):
    handle = container.background.get(task_id)
    if handle is None:
        raise NotFoundError("Task not found", {"task_id": task_id})
    return {**handle.to_dict(), "result": handle.result}
