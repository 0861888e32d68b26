"""State definitions for the tutoring turn graph.

One graph run handles one inbound learner message. The durable session state
lives in the database; this TypedDict only carries what the nodes of a
single turn hand to each other.
"""

import operator
from typing import Annotated, Any, Dict, List, Optional

from typing_extensions import TypedDict


class TurnState(TypedDict):
    """Working state of one tutoring turn."""

    # Identification
    session_id: str
    user_id: str
    content_id: str

    # Learner input for this turn
    message: str

    # Session state machine position, updated by each node
    state: str

    # Actions applied during the turn, in order
    actions: Annotated[List[str], operator.add]

    # Extra instruction for the tutor's next explanation
    explain_hint: Optional[str]

    # Role outputs (model_dump of the role service results)
    explanation: Optional[Dict[str, Any]]
    evaluation: Optional[Dict[str, Any]]
    decision: Optional[Dict[str, Any]]
    practice_task: Optional[str]


def create_turn_state(
    session_id: str,
    user_id: str,
    content_id: str,
    message: str,
    state: str,
) -> TurnState:
    """Create the input state for one turn."""
    return TurnState(
        session_id=session_id,
        user_id=user_id,
        content_id=content_id,
        message=message,
        state=state,
        actions=[],
        explain_hint=None,
        explanation=None,
        evaluation=None,
        decision=None,
        practice_task=None,
    )
