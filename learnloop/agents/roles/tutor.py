"""Tutor role: explains concepts in free text."""

import re
from typing import List, Optional

from pydantic import BaseModel

from ..orchestrator import Orchestrator, OrchestrationRequest
from ..registry import AIRole

EXAMPLE_LINE_PATTERN = re.compile(r"^[-*]\s+.+$", re.MULTILINE)
EXAMPLE_PREFIX_PATTERN = re.compile(r"^[-*]\s+")
SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?])\s+|\n+")

DEFAULT_EXAMPLES = ["See the explanation above for examples."]
DEFAULT_FOLLOW_UP = "Can you explain this concept in your own words?"


class TutorResponse(BaseModel):
    explanation: str
    examples: List[str]
    follow_up_question: str
    interaction_id: str = ""


def parse_tutor_response(content: str) -> TutorResponse:
    """
    Split tutor text into explanation, bullet examples and a follow-up question.

    Examples are lines starting with ``-`` or ``*``. The follow-up is the last
    sentence ending in ``?`` and is removed from the explanation. Both fall
    back to fixed text when nothing matches.
    """
    examples = [
        EXAMPLE_PREFIX_PATTERN.sub("", line).strip()
        for line in EXAMPLE_LINE_PATTERN.findall(content)
    ]

    questions = [
        sentence.strip()
        for sentence in SENTENCE_SPLIT_PATTERN.split(content)
        if sentence.strip().endswith("?")
    ]

    explanation = content
    if questions:
        follow_up = questions[-1]
        index = content.rfind(follow_up)
        if index != -1:
            explanation = (content[:index] + content[index + len(follow_up):]).strip()
    else:
        follow_up = DEFAULT_FOLLOW_UP

    return TutorResponse(
        explanation=explanation,
        examples=examples or list(DEFAULT_EXAMPLES),
        follow_up_question=follow_up,
    )


class TutorService:
    """Explains concepts, answers questions and re-explains more simply."""

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator

    async def _ask(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        message: str,
        session_id: Optional[str],
        interaction_type: Optional[str] = None,
    ) -> TutorResponse:
        response = await self.orchestrator.orchestrate(
            user_id,
            OrchestrationRequest(
                role=AIRole.TUTOR,
                content_id=content_id,
                concept_id=concept_id,
                session_id=session_id,
                user_message=message,
                interaction_type=interaction_type,
            ),
        )
        parsed = parse_tutor_response(response.content)
        parsed.interaction_id = response.interaction_id
        return parsed

    async def explain_concept(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        session_id: Optional[str] = None,
        additional_context: Optional[str] = None,
    ) -> TutorResponse:
        if additional_context:
            message = f"Please explain this concept. Additional context: {additional_context}"
        else:
            message = "Please explain this concept to me."
        return await self._ask(user_id, content_id, concept_id, message, session_id)

    async def answer_question(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        question: str,
        session_id: Optional[str] = None,
    ) -> TutorResponse:
        return await self._ask(user_id, content_id, concept_id, question, session_id, "QUESTION")

    async def simplify_explanation(
        self,
        user_id: str,
        content_id: str,
        concept_id: Optional[str],
        previous_explanation: str,
        session_id: Optional[str] = None,
    ) -> TutorResponse:
        message = (
            "I didn't quite understand the previous explanation. "
            "Can you explain it more simply?\n"
            f"Previous explanation: {previous_explanation[:500]}..."
        )
        return await self._ask(user_id, content_id, concept_id, message, session_id, "SIMPLIFICATION")
