"""Learning session endpoints."""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..agents.roles import ReviewerService, SessionSummary, TutorResponse
from ..agents.tutor.session import SessionDetail, SessionService, TurnResult
from .auth import get_current_user_id
from .deps import get_reviewer, get_session_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


# ==============================================================================
# Pydantic Models
# ==============================================================================

class SessionCreate(BaseModel):
    """Start a learning session."""
    content_id: str = Field(min_length=1)


class InteractionRequest(BaseModel):
    """Learner message for one turn."""
    message: str = Field(default="", max_length=10000)


class QuestionRequest(BaseModel):
    """Free-form question about the current concept."""
    question: str = Field(min_length=1, max_length=10000)


class SimplifyRequest(BaseModel):
    previous_explanation: str = Field(min_length=1, max_length=20000)


class ProbeQuestion(BaseModel):
    question: str


# ==============================================================================
# Endpoints
# ==============================================================================

@router.post("", response_model=SessionDetail, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    session = await service.create_session(user_id, body.content_id)
    return await service.describe(session)


@router.get("", response_model=List[SessionDetail])
async def list_sessions(
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    sessions = await service.list_sessions(user_id)
    return [await service.describe(s) for s in sessions]


@router.get("/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    session = await service.get_session(session_id, user_id)
    return await service.describe(session)


@router.post("/{session_id}/interact", response_model=TurnResult)
async def interact(
    session_id: str,
    body: InteractionRequest,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Run one tutoring turn for the learner's message."""
    return await service.process_interaction(session_id, user_id, body.message)


@router.post("/{session_id}/pause", response_model=SessionDetail)
async def pause_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    session = await service.pause_session(session_id, user_id)
    return await service.describe(session)


@router.post("/{session_id}/resume", response_model=SessionDetail)
async def resume_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    session = await service.resume_session(session_id, user_id)
    return await service.describe(session)


@router.post("/{session_id}/complete", response_model=SessionDetail)
async def complete_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    session = await service.complete_session(session_id, user_id)
    return await service.describe(session)


@router.get("/{session_id}/summary", response_model=SessionSummary)
async def session_summary(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    reviewer: ReviewerService = Depends(get_reviewer),
):
    return await reviewer.generate_session_summary(session_id, user_id)


@router.post("/{session_id}/ask", response_model=TutorResponse)
async def ask_question(
    session_id: str,
    body: QuestionRequest,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Ask the tutor about the current concept without advancing the session."""
    return await service.ask_question(session_id, user_id, body.question)


@router.post("/{session_id}/simplify", response_model=TutorResponse)
async def simplify_explanation(
    session_id: str,
    body: SimplifyRequest,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    return await service.simplify_explanation(session_id, user_id, body.previous_explanation)


@router.post("/{session_id}/probe", response_model=ProbeQuestion)
async def probe_question(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    return ProbeQuestion(question=await service.probe_question(session_id, user_id))
