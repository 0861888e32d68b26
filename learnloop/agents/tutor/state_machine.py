"""Tutoring protocol state machine.

A pure transition table. Sessions move
init -> explain -> user_explain -> evaluate -> decide_next and loop back to
explain or user_explain until the coach completes them. Any active state can
be paused; resume always re-enters explain.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from ..registry import AIRole


class SessionState(str, Enum):
    INIT = "init"
    EXPLAIN = "explain"
    USER_EXPLAIN = "user_explain"
    EVALUATE = "evaluate"
    DECIDE_NEXT = "decide_next"
    COMPLETE = "complete"
    PAUSED = "paused"


class SessionAction(str, Enum):
    START = "start"
    EXPLAIN_COMPLETE = "explain_complete"
    USER_RESPONDED = "user_responded"
    EVALUATION_COMPLETE = "evaluation_complete"
    PROCEED = "proceed"
    REVIEW = "review"
    PRACTICE = "practice"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"


PAUSEABLE_STATES: FrozenSet[SessionState] = frozenset({
    SessionState.EXPLAIN,
    SessionState.USER_EXPLAIN,
    SessionState.EVALUATE,
    SessionState.DECIDE_NEXT,
})

TRANSITIONS: Dict[Tuple[SessionState, SessionAction], SessionState] = {
    (SessionState.INIT, SessionAction.START): SessionState.EXPLAIN,
    (SessionState.EXPLAIN, SessionAction.EXPLAIN_COMPLETE): SessionState.USER_EXPLAIN,
    (SessionState.USER_EXPLAIN, SessionAction.USER_RESPONDED): SessionState.EVALUATE,
    (SessionState.EVALUATE, SessionAction.EVALUATION_COMPLETE): SessionState.DECIDE_NEXT,
    (SessionState.DECIDE_NEXT, SessionAction.PROCEED): SessionState.EXPLAIN,
    (SessionState.DECIDE_NEXT, SessionAction.REVIEW): SessionState.EXPLAIN,
    (SessionState.DECIDE_NEXT, SessionAction.PRACTICE): SessionState.USER_EXPLAIN,
    (SessionState.DECIDE_NEXT, SessionAction.COMPLETE): SessionState.COMPLETE,
    (SessionState.PAUSED, SessionAction.RESUME): SessionState.EXPLAIN,
    **{(state, SessionAction.PAUSE): SessionState.PAUSED for state in PAUSEABLE_STATES},
}

RESPONSIBLE_ROLES: Dict[SessionState, Optional[AIRole]] = {
    SessionState.INIT: AIRole.TUTOR,
    SessionState.EXPLAIN: AIRole.TUTOR,
    SessionState.USER_EXPLAIN: None,
    SessionState.EVALUATE: AIRole.EXAMINER,
    SessionState.DECIDE_NEXT: AIRole.COACH,
    SessionState.COMPLETE: None,
    SessionState.PAUSED: None,
}


def next_state(state: SessionState, action: SessionAction) -> Optional[SessionState]:
    """Destination of (state, action), or None when no transition exists."""
    return TRANSITIONS.get((SessionState(state), SessionAction(action)))


def is_valid_transition(state: SessionState, action: SessionAction) -> bool:
    return next_state(state, action) is not None


def valid_actions(state: SessionState) -> FrozenSet[SessionAction]:
    state = SessionState(state)
    return frozenset(action for (source, action) in TRANSITIONS if source == state)


def responsible_role(state: SessionState) -> Optional[AIRole]:
    """The AI role that drives `state`, if any."""
    return RESPONSIBLE_ROLES[SessionState(state)]


def is_terminal_state(state: SessionState) -> bool:
    return SessionState(state) == SessionState.COMPLETE


def is_pauseable_state(state: SessionState) -> bool:
    return SessionState(state) in PAUSEABLE_STATES
