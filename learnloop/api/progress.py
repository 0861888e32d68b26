"""Learner progress and adaptation endpoints."""

from typing import List

from fastapi import APIRouter, Depends

from ..agents.progress import (
    Adaptation,
    ConceptProgress,
    ConfidenceDataPoint,
    ContentProgress,
    PatternAnalysis,
    ProgressService,
    UserProgressSummary,
    WeakArea,
)
from .auth import get_current_user_id
from .deps import get_progress

router = APIRouter(prefix="/progress", tags=["Progress"])


# Fixed paths come before /{content_id}.

@router.get("/summary", response_model=UserProgressSummary)
async def progress_summary(
    user_id: str = Depends(get_current_user_id),
    progress: ProgressService = Depends(get_progress),
):
    return await progress.get_user_summary(user_id)


@router.get("/concept/{concept_id}", response_model=ConceptProgress)
async def concept_progress(
    concept_id: str,
    user_id: str = Depends(get_current_user_id),
    progress: ProgressService = Depends(get_progress),
):
    return await progress.get_concept_progress(user_id, concept_id)


@router.get("/concept/{concept_id}/adaptation", response_model=Adaptation)
async def concept_adaptation(
    concept_id: str,
    user_id: str = Depends(get_current_user_id),
    progress: ProgressService = Depends(get_progress),
):
    return await progress.get_adaptation(user_id, concept_id)


@router.get("/{content_id}", response_model=ContentProgress)
async def content_progress(
    content_id: str,
    user_id: str = Depends(get_current_user_id),
    progress: ProgressService = Depends(get_progress),
):
    return await progress.get_content_progress(user_id, content_id)


@router.get("/{content_id}/confidence-history", response_model=List[ConfidenceDataPoint])
async def confidence_history(
    content_id: str,
    user_id: str = Depends(get_current_user_id),
    progress: ProgressService = Depends(get_progress),
):
    return await progress.get_confidence_history(user_id, content_id)


@router.get("/{content_id}/patterns", response_model=PatternAnalysis)
async def learning_patterns(
    content_id: str,
    user_id: str = Depends(get_current_user_id),
    progress: ProgressService = Depends(get_progress),
):
    return await progress.analyze_patterns(user_id, content_id)


@router.get("/{content_id}/weak-areas", response_model=List[WeakArea])
async def weak_areas(
    content_id: str,
    user_id: str = Depends(get_current_user_id),
    progress: ProgressService = Depends(get_progress),
):
    return await progress.get_weak_areas(user_id, content_id)
