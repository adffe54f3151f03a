"""Interfaces the conversation core calls, and the errors they raise.

The state machine only ever talks to these Protocols; the WhatsApp client,
the on-disk storage and the e-mail forwarder are the production
implementations.
"""
from __future__ import annotations

from typing import Protocol, Sequence

from loanbot.models import (
    ArchiveHandle,
    CatalogOption,
    FetchedAttachment,
    ForwardResult,
    PackageSummary,
    UploadRecord,
)


# ── Errors ─────────────────────────────────────────────────────────────

class IntakeError(Exception):
    """Base class for collaborator failures the core knows how to handle."""


class GatewayError(IntakeError):
    """Sending a message or fetching an attachment failed."""


class StorageError(IntakeError):
    """Saving an upload or building the archive failed."""


class NoContentError(StorageError):
    """Packaging was asked to archive zero uploads."""


class ForwardingError(IntakeError):
    """The document package could not be delivered."""


# ── Protocols ──────────────────────────────────────────────────────────

class OutboundGateway(Protocol):
    async def send_text(self, recipient: str, text: str) -> dict: ...

    async def send_choice_prompt(
        self, recipient: str, body: str, options: Sequence[CatalogOption]
    ) -> dict: ...

    async def fetch_attachment(self, ref: str) -> FetchedAttachment: ...

    async def mark_as_read(self, message_id: str) -> None: ...


class UploadStorage(Protocol):
    async def save_upload(
        self,
        session_id: str,
        category: str,
        item_name: str,
        media_kind: str,
        fetched: FetchedAttachment,
        original_name: str = "",
    ) -> UploadRecord: ...

    async def package_uploads(
        self,
        session_id: str,
        category: str,
        records: Sequence[UploadRecord],
        allow_empty: bool = False,
    ) -> ArchiveHandle: ...

    def delete_archive(self, path: str) -> bool: ...


class Forwarder(Protocol):
    async def forward(
        self, archive: ArchiveHandle, summary: PackageSummary
    ) -> ForwardResult: ...
