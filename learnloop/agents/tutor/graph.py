"""Tutoring turn graph.

This module defines the LangGraph that runs one learner turn:

    init ──start──▶ explain ──▶ END
    user_explain ──receive──▶ evaluate ──▶ decide ──▶ explain | END

The entry node is chosen from the session's persisted state.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from langgraph.graph import END, START, StateGraph

from .nodes import ENTRY_NODES, TurnNodes
from .state import TurnState

if TYPE_CHECKING:
    from .session import SessionService

logger = logging.getLogger(__name__)


class TurnGraph:
    """
    Wrapper around the compiled turn graph.

    The graph is stateless between turns: the session row is the checkpoint.
    """

    def __init__(self, service: "SessionService"):
        self.nodes = TurnNodes(service)
        self.graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(TurnState)

        graph.add_node("start", self.nodes.start_node)
        graph.add_node("explain", self.nodes.explain_node)
        graph.add_node("receive", self.nodes.receive_node)
        graph.add_node("evaluate", self.nodes.evaluate_node)
        graph.add_node("decide", self.nodes.decide_node)

        graph.add_conditional_edges(
            START,
            self.nodes.route_entry,
            {node: node for node in set(ENTRY_NODES.values())},
        )

        graph.add_edge("start", "explain")
        graph.add_edge("explain", END)
        graph.add_edge("receive", "evaluate")
        graph.add_edge("evaluate", "decide")

        graph.add_conditional_edges(
            "decide",
            self.nodes.route_after_decide,
            {
                "explain": "explain",
                "end": END,
            },
        )

        return graph.compile()

    async def invoke(self, state: TurnState, config: Optional[Dict[str, Any]] = None) -> TurnState:
        return await self.graph.ainvoke(state, config=config)

    def draw_mermaid(self) -> str:
        """Mermaid source of the compiled graph, for docs and debugging."""
        return self.graph.get_graph().draw_mermaid()


def build_turn_graph(service: "SessionService") -> TurnGraph:
    return TurnGraph(service)
