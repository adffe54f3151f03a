"""Recognition of the user's typed commands."""
from __future__ import annotations

import enum
from typing import Optional


class Command(str, enum.Enum):
    SKIP = "skip"
    STATUS = "status"
    RESTART = "restart"
    NEW_APPLICATION = "new_application"


# Exact words accepted while documents are being collected
_COLLECTING_COMMANDS: tuple[tuple[tuple[str, ...], Command], ...] = (
    (("skip", "next"), Command.SKIP),
    (("status", "progress"), Command.STATUS),
    (("restart", "reset"), Command.RESTART),
)

# Substrings looked for once the application is completed, in this order
_COMPLETED_RULES: tuple[tuple[tuple[str, ...], Command], ...] = (
    (("new", "start", "another"), Command.NEW_APPLICATION),
    (("status", "progress"), Command.STATUS),
)


def parse_command(text: Optional[str]) -> Optional[Command]:
    if not text:
        return None
    word = text.strip().lower()
    for words, command in _COLLECTING_COMMANDS:
        if word in words:
            return command
    return None


def parse_completed_reply(text: Optional[str]) -> Optional[Command]:
    if not text:
        return None
    lowered = text.strip().lower()
    for words, command in _COMPLETED_RULES:
        if any(w in lowered for w in words):
            return command
    return None


def is_restart(text: Optional[str]) -> bool:
    return parse_command(text) is Command.RESTART
