"""Per-role services built on the orchestrator."""

from .coach import CoachAction, CoachDecision, CoachService
from .examiner import ExaminerEvaluation, ExaminerService
from .planner import LearningMapDetail, LearningMapResult, PlannerService
from .reviewer import ReviewerService, ReviewScheduleItem, SessionSummary, WeeklyReport
from .tutor import TutorResponse, TutorService

__all__ = [
    "CoachAction",
    "CoachDecision",
    "CoachService",
    "ExaminerEvaluation",
    "ExaminerService",
    "LearningMapDetail",
    "LearningMapResult",
    "PlannerService",
    "ReviewerService",
    "ReviewScheduleItem",
    "SessionSummary",
    "WeeklyReport",
    "TutorResponse",
    "TutorService",
]
