"""Assemble and compile the conversation StateGraph.

One invocation handles one inbound event:

  START →(session state)→ initial ────────────────────────→ END
                        → awaiting_category    ─┐
                        → awaiting_subcategory  │
                        → collecting_items      ├→(cond)→ END
                        → completed             │        → initial
                        → restart               │
                        → recover (bad state)  ─┘
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from langgraph.graph import END, START, StateGraph

from loanbot.flow.edges import (
    AWAITING_CATEGORY,
    AWAITING_SUBCATEGORY,
    COLLECTING_ITEMS,
    COMPLETED,
    INITIAL,
    RECOVER,
    RESTART,
    route_after_handler,
    route_by_state,
)
from loanbot.flow.state import TurnState

if TYPE_CHECKING:
    from loanbot.flow.machine import ConversationMachine


def build_graph(machine: "ConversationMachine"):
    """Build and compile the graph with *machine*'s handlers as nodes."""
    builder = StateGraph(TurnState)

    # ── Nodes ────────────────────────────────────────────────────
    builder.add_node(INITIAL, machine.initial_node)
    builder.add_node(AWAITING_CATEGORY, machine.awaiting_category_node)
    builder.add_node(AWAITING_SUBCATEGORY, machine.awaiting_subcategory_node)
    builder.add_node(COLLECTING_ITEMS, machine.collecting_items_node)
    builder.add_node(COMPLETED, machine.completed_node)
    builder.add_node(RESTART, machine.restart_node)
    builder.add_node(RECOVER, machine.recover_node)

    # ── Edges ────────────────────────────────────────────────────
    builder.add_conditional_edges(START, route_by_state)
    for node in (
        AWAITING_CATEGORY,
        AWAITING_SUBCATEGORY,
        COLLECTING_ITEMS,
        COMPLETED,
        RESTART,
        RECOVER,
    ):
        builder.add_conditional_edges(node, route_after_handler)
    builder.add_edge(INITIAL, END)

    return builder.compile()
