"""Conditional edge routing functions."""
from __future__ import annotations

from typing import Literal

from langgraph.graph import END

from loanbot.flow.commands import is_restart
from loanbot.models import EventKind, SessionState

INITIAL = "initial"
AWAITING_CATEGORY = "awaiting_category"
AWAITING_SUBCATEGORY = "awaiting_subcategory"
COLLECTING_ITEMS = "collecting_items"
COMPLETED = "completed"
RESTART = "restart"
RECOVER = "recover"

_NODE_FOR_STATE: dict[str, str] = {
    SessionState.INITIAL.value: INITIAL,
    SessionState.AWAITING_CATEGORY.value: AWAITING_CATEGORY,
    SessionState.AWAITING_SUBCATEGORY.value: AWAITING_SUBCATEGORY,
    SessionState.COLLECTING_ITEMS.value: COLLECTING_ITEMS,
    SessionState.COMPLETED.value: COMPLETED,
}


def route_by_state(
    state: dict,
) -> Literal[
    "initial",
    "awaiting_category",
    "awaiting_subcategory",
    "collecting_items",
    "completed",
    "restart",
    "recover",
]:
    node = _NODE_FOR_STATE.get(state.get("state", ""))
    if node is None:
        return RECOVER
    event = state.get("event")
    if (
        node != INITIAL
        and event is not None
        and event.kind != EventKind.ATTACHMENT
        and is_restart(event.text)
    ):
        return RESTART
    return node


def route_after_handler(state: dict) -> Literal["initial", "__end__"]:
    if state.get("route") == INITIAL:
        return INITIAL
    return END
