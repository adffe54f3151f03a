"""LangGraph state for one inbound event's trip through the conversation."""
from __future__ import annotations

from typing_extensions import TypedDict

from loanbot.models import InboundEvent


class TurnState(TypedDict, total=False):
    session_id: str
    event: InboundEvent
    # Session state the turn was routed on
    state: str
    # Where a handler wants to go next: "initial" to re-enter, else END
    route: str
