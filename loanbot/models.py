from __future__ import annotations

import enum
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


# ── Enums ──────────────────────────────────────────────────────────────

class SessionState(str, enum.Enum):
    INITIAL = "INITIAL"
    AWAITING_CATEGORY = "AWAITING_CATEGORY"
    AWAITING_SUBCATEGORY = "AWAITING_SUBCATEGORY"
    COLLECTING_ITEMS = "COLLECTING_ITEMS"
    COMPLETED = "COMPLETED"


class EventKind(str, enum.Enum):
    SELECTION_REPLY = "selection_reply"
    TEXT = "text"
    ATTACHMENT = "attachment"


# ── Catalog ────────────────────────────────────────────────────────────

class CatalogOption(BaseModel):
    key: str
    display_name: str
    description: str = ""


# ── Uploads ────────────────────────────────────────────────────────────

class UploadRecord(BaseModel):
    item_name: str
    source_file_name: str
    media_kind: str  # "document" | "image"
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0
    uploaded_at: datetime = Field(default_factory=datetime.now)
    stored_path: str = ""


# ── Conversation session ──────────────────────────────────────────────

class Session(BaseModel):
    id: str
    # Kept as a plain string: a corrupt value must survive until the
    # machine routes on it and recovers.
    state: str = SessionState.INITIAL.value
    category: Optional[str] = None
    sub_category: Optional[str] = None
    required_items: tuple[str, ...] = ()
    uploaded_items: list[UploadRecord] = Field(default_factory=list)
    cursor: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    last_activity_at: datetime = Field(default_factory=datetime.now)


class SessionStats(BaseModel):
    total_sessions: int = 0
    active_last_hour: int = 0
    by_state: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)


# ── Inbound events ─────────────────────────────────────────────────────

class AttachmentRef(BaseModel):
    ref: str
    kind: str = "document"  # "document" | "image"
    file_name: str = ""
    mime_type: str = ""


class InboundEvent(BaseModel):
    sender_id: str
    kind: EventKind
    text: Optional[str] = None
    attachment: Optional[AttachmentRef] = None
    message_id: str = ""


# ── Collaborator payloads ─────────────────────────────────────────────

class FetchedAttachment(BaseModel):
    data: bytes
    mime_type: str = "application/octet-stream"
    suggested_name: str = ""


class ArchiveHandle(BaseModel):
    path: str
    size_bytes: int
    item_count: int


class PackageSummary(BaseModel):
    session_id: str
    category: str
    sub_category: str
    item_count: int
    items: list[UploadRecord] = Field(default_factory=list)
    submitted_at: datetime = Field(default_factory=datetime.now)


class ForwardResult(BaseModel):
    delivered: bool
    channel: Literal["direct", "simulated"]
    message_id: str = ""
    recipient: str = ""
