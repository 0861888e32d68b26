"""Tutoring sessions.

A session walks one learner through the concepts of a content item's
learning map. Each inbound message runs one pass of the turn graph, which
calls the tutor, examiner and coach roles and moves the session along the
state machine in `state_machine`.
"""

from .graph import TurnGraph, build_turn_graph
from .session import SessionDetail, SessionService, TurnResult
from .state import TurnState, create_turn_state
from .state_machine import (
    SessionAction,
    SessionState,
    is_pauseable_state,
    is_terminal_state,
    is_valid_transition,
    next_state,
    responsible_role,
    valid_actions,
)

__all__ = [
    # Graph
    "TurnGraph",
    "build_turn_graph",
    "TurnState",
    "create_turn_state",
    # Sessions
    "SessionService",
    "SessionDetail",
    "TurnResult",
    # State machine
    "SessionAction",
    "SessionState",
    "is_pauseable_state",
    "is_terminal_state",
    "is_valid_transition",
    "next_state",
    "responsible_role",
    "valid_actions",
]
