"""Direct access to the AI roles."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..agents.orchestrator import AIResponse, OrchestrationRequest, Orchestrator
from ..agents.registry import AIRole, list_roles
from .auth import get_current_user_id
from .deps import Container, get_container, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])


class ChatRequest(BaseModel):
    """One raw role request."""
    role: AIRole
    message: str = Field(min_length=1, max_length=10000)
    content_id: Optional[str] = None
    concept_id: Optional[str] = None
    session_id: Optional[str] = None
    additional_context: Dict[str, Any] = Field(default_factory=dict)
    prompt_version: Optional[str] = None


@router.get("/roles")
async def get_roles(container: Container = Depends(get_container)):
    """Registered roles with their provider, output format and prompt versions."""
    return {"roles": list_roles(container.prompt_store)}


@router.get("/providers")
async def get_providers(container: Container = Depends(get_container)):
    return {"providers": container.router.available_providers()}


@router.post("/chat", response_model=AIResponse)
async def chat(
    body: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    return await orchestrator.orchestrate(
        user_id,
        OrchestrationRequest(
            role=body.role,
            user_message=body.message,
            content_id=body.content_id,
            concept_id=body.concept_id,
            session_id=body.session_id,
            additional_context=body.additional_context,
            prompt_version=body.prompt_version,
        ),
    )
