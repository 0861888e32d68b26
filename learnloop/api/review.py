"""Progress review endpoints."""

from typing import List

from fastapi import APIRouter, Depends

from ..agents.roles import ReviewerService, ReviewScheduleItem, WeeklyReport
from .auth import get_current_user_id
from .deps import get_reviewer

router = APIRouter(prefix="/review", tags=["Review"])


@router.get("/weekly", response_model=WeeklyReport)
async def weekly_report(
    user_id: str = Depends(get_current_user_id),
    reviewer: ReviewerService = Depends(get_reviewer),
):
    return await reviewer.generate_weekly_report(user_id)


@router.get("/schedule", response_model=List[ReviewScheduleItem])
async def review_schedule(
    user_id: str = Depends(get_current_user_id),
    reviewer: ReviewerService = Depends(get_reviewer),
):
    return await reviewer.suggest_review_schedule(user_id)
