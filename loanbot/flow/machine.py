"""Node handlers of the loan-document conversation.

States, in order of a normal run:

1. INITIAL             : welcome + loan type list
2. AWAITING_CATEGORY   : loan type reply → employment buttons
3. AWAITING_SUBCATEGORY: employment reply → document checklist
4. COLLECTING_ITEMS    : one upload (or skip) per required document
5. COMPLETED           : package e-mailed, only new/status accepted

Every handler mutates the session through the SessionStore first and
talks to the user afterwards.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from langgraph.graph import END

from loanbot.catalog.requirements import RequirementCatalog
from loanbot.collaborators import (
    Forwarder,
    ForwardingError,
    GatewayError,
    OutboundGateway,
    StorageError,
    UploadStorage,
)
from loanbot.flow.builder import build_graph
from loanbot.flow.commands import Command, parse_command, parse_completed_reply
from loanbot.flow.edges import INITIAL
from loanbot.flow.state import TurnState
from loanbot.messages.loader import render
from loanbot.models import (
    ArchiveHandle,
    EventKind,
    InboundEvent,
    PackageSummary,
    SessionState,
)
from loanbot.scheduling import TaskScheduler
from loanbot.sessions.store import SessionStore

logger = logging.getLogger(__name__)

_COLLECTING_HELP = (
    "📎 Please upload a document file (PDF, image, or Word document).\n\n"
    "You can also type:\n"
    "• 'skip' to skip current document\n"
    "• 'status' to see progress\n"
    "• 'restart' to start over"
)
_TERMINAL_FAILURE = (
    "❌ There was an error processing your application. "
    "Our team has been notified and will contact you shortly."
)
_GENERIC_FAILURE = (
    "❌ Sorry, something went wrong. Please try again or type 'restart' to start over."
)


class ConversationMachine:
    """Drives one sender's conversation, one inbound event at a time."""

    def __init__(
        self,
        store: SessionStore,
        catalog: RequirementCatalog,
        gateway: OutboundGateway,
        storage: UploadStorage,
        forwarder: Forwarder,
        scheduler: TaskScheduler,
        *,
        forward_empty_packages: bool = False,
        archive_grace_seconds: float = 5.0,
        session_timeout: timedelta = timedelta(minutes=30),
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.gateway = gateway
        self.storage = storage
        self.forwarder = forwarder
        self.scheduler = scheduler
        self.forward_empty_packages = forward_empty_packages
        self.archive_grace_seconds = archive_grace_seconds
        self.session_timeout = session_timeout
        self._graph = build_graph(self)

    # ── public API ──────────────────────────────────────────────────

    async def handle(self, event: InboundEvent) -> None:
        """Process one inbound event. Never raises for gateway failures."""
        sid = event.sender_id
        async with self.store.lock(sid):
            session = self.store.get(sid)
            logger.info(
                "Event from %s: kind=%s state=%s", sid, event.kind.value, session.state
            )
            try:
                await self._graph.ainvoke(
                    {"session_id": sid, "event": event, "state": session.state}
                )
            except GatewayError:
                logger.exception("Gateway failure while handling event from %s", sid)
                await self._send_failure(sid)

    def sweep(self) -> int:
        """Periodic hook: drop sessions idle beyond the timeout."""
        return self.store.sweep_expired(timeout=self.session_timeout)

    # ── nodes ───────────────────────────────────────────────────────

    async def initial_node(self, state: TurnState) -> dict:
        sid = state["session_id"]
        self.store.set_state(sid, SessionState.AWAITING_CATEGORY)
        await self.gateway.send_text(sid, render("welcome.j2"))
        await self._prompt_category(sid)
        return {"route": END}

    async def awaiting_category_node(self, state: TurnState) -> dict:
        sid = state["session_id"]
        event = state["event"]

        if event.kind == EventKind.ATTACHMENT or parse_command(event.text):
            await self._prompt_category(sid)
            return {"route": END}

        key = self.catalog.normalize_category(event.text)
        if key is None:
            logger.info("Invalid loan type from %s: %r", sid, event.text)
            await self.gateway.send_text(
                sid, "❌ Please select a valid loan type from the list above."
            )
            await self._prompt_category(sid)
            return {"route": END}

        self.store.set_selection(sid, key)
        self.store.set_state(sid, SessionState.AWAITING_SUBCATEGORY)
        await self.gateway.send_text(
            sid,
            f"Great! You've selected: *{self.catalog.category_name(key)} Loan*\n\n"
            "Now, please tell me about your employment status:",
        )
        await self._prompt_subcategory(sid)
        return {"route": END}

    async def awaiting_subcategory_node(self, state: TurnState) -> dict:
        sid = state["session_id"]
        event = state["event"]

        if event.kind == EventKind.ATTACHMENT or parse_command(event.text):
            await self._prompt_subcategory(sid)
            return {"route": END}

        key = self.catalog.normalize_subcategory(event.text)
        if key is None:
            logger.info("Invalid employment type from %s: %r", sid, event.text)
            await self.gateway.send_text(
                sid, "❌ Please select a valid employment type using the buttons above."
            )
            await self._prompt_subcategory(sid)
            return {"route": END}

        session = self.store.get(sid)
        items = self.catalog.required_items(session.category, key)
        if not items:
            logger.error(
                "No documents for %s / %s (session %s)", session.category, key, sid
            )
            self.store.reset(sid)
            await self.gateway.send_text(
                sid,
                "❌ Sorry, I couldn't determine the required documents. Please try again.",
            )
            return {"route": END}

        self.store.set_selection(sid, session.category, key)
        self.store.set_required_items(sid, items)
        self.store.set_state(sid, SessionState.COLLECTING_ITEMS)
        await self.gateway.send_text(
            sid,
            render(
                "requirements_summary.j2",
                category=self.catalog.category_name(session.category),
                sub_category=self.catalog.subcategory_name(key),
                documents=items,
            ),
        )
        await self._request_current_item(sid)
        return {"route": END}

    async def collecting_items_node(self, state: TurnState) -> dict:
        sid = state["session_id"]
        event = state["event"]

        if self.store.is_complete(sid):
            # Checklist exhausted but the package never went out
            logger.warning("Resuming unfinished terminal sequence for %s", sid)
            await self.run_terminal_sequence(sid)
            return {"route": END}

        if event.kind == EventKind.ATTACHMENT and event.attachment is not None:
            await self._receive_upload(sid, event)
            return {"route": END}

        command = parse_command(event.text)
        if command is Command.SKIP:
            await self._skip_current_item(sid)
        elif command is Command.STATUS:
            await self._send_progress(sid)
        else:
            await self.gateway.send_text(sid, _COLLECTING_HELP)
        return {"route": END}

    async def completed_node(self, state: TurnState) -> dict:
        sid = state["session_id"]
        event = state["event"]
        command = (
            None if event.kind == EventKind.ATTACHMENT
            else parse_completed_reply(event.text)
        )

        if command is Command.NEW_APPLICATION:
            self.store.reset(sid)
            await self.gateway.send_text(sid, "🆕 Starting a new loan application...")
            return {"route": INITIAL}

        if command is Command.STATUS:
            session = self.store.get(sid)
            name = self.catalog.category_name(session.category or "")
            await self.gateway.send_text(
                sid,
                f"✅ Your {name} loan application is completed and under review.\n\n"
                "Our team will contact you within 24-48 hours.",
            )
        else:
            await self.gateway.send_text(
                sid,
                "✅ Your application is complete and under review.\n\n"
                "Type 'new' to start another application or 'status' to check "
                "your current application status.",
            )
        return {"route": END}

    async def restart_node(self, state: TurnState) -> dict:
        sid = state["session_id"]
        self.store.reset(sid)
        await self.gateway.send_text(sid, "🔄 Restarting your loan application...")
        return {"route": INITIAL}

    async def recover_node(self, state: TurnState) -> dict:
        sid = state["session_id"]
        logger.warning("Unknown session state %r for %s", state.get("state"), sid)
        self.store.reset(sid)
        await self.gateway.send_text(
            sid, "🔄 Something went wrong. Let me restart our conversation."
        )
        return {"route": INITIAL}

    # ── prompts ─────────────────────────────────────────────────────

    async def _prompt_category(self, sid: str) -> None:
        await self.gateway.send_choice_prompt(
            sid,
            "Please select your loan type from the list below:",
            self.catalog.list_categories(),
        )

    async def _prompt_subcategory(self, sid: str) -> None:
        await self.gateway.send_choice_prompt(
            sid,
            "Are you a salaried employee or self-employed?",
            self.catalog.list_subcategories(),
        )

    async def _request_current_item(self, sid: str) -> None:
        item = self.store.current_required_item(sid)
        if item is None:
            return
        session = self.store.get(sid)
        await self.gateway.send_text(
            sid,
            render(
                "item_request.j2",
                position=session.cursor + 1,
                total=len(session.required_items),
                uploaded=len(session.uploaded_items),
                item=item,
                description=self.catalog.describe(item),
            ),
        )

    async def _send_progress(self, sid: str) -> None:
        session = self.store.get(sid)
        await self.gateway.send_text(
            sid,
            render(
                "progress.j2",
                uploaded=len(session.uploaded_items),
                total=len(session.required_items),
                remaining=self.store.remaining_items(sid),
            ),
        )

    # ── collection ──────────────────────────────────────────────────

    async def _receive_upload(self, sid: str, event: InboundEvent) -> None:
        item = self.store.current_required_item(sid)
        await self.gateway.send_text(sid, "⏳ Processing your document...")
        session = self.store.get(sid)
        attachment = event.attachment
        try:
            fetched = await self.gateway.fetch_attachment(attachment.ref)
            record = await self.storage.save_upload(
                sid,
                session.category or "unknown",
                item,
                attachment.kind,
                fetched,
                attachment.file_name,
            )
        except (GatewayError, StorageError):
            logger.exception("Error processing upload of %r for %s", item, sid)
            await self.gateway.send_text(
                sid,
                "❌ Sorry, there was an error processing your document. "
                f"Please try uploading *{item}* again.",
            )
            return

        self.store.append_upload(sid, record)
        self.store.advance_cursor(sid)
        await self._notify(
            sid,
            render(
                "upload_ok.j2",
                item=item,
                file_name=record.source_file_name,
                size_bytes=record.size_bytes,
            ),
        )
        await self._continue_or_finish(sid)

    async def _skip_current_item(self, sid: str) -> None:
        item = self.store.current_required_item(sid)
        self.store.advance_cursor(sid)
        await self._notify(sid, f"⏭️ Skipped: {item}")
        await self._continue_or_finish(sid)

    async def _continue_or_finish(self, sid: str) -> None:
        if self.store.is_complete(sid):
            await self.run_terminal_sequence(sid)
        else:
            await self._request_current_item(sid)

    # ── terminal sequence ───────────────────────────────────────────

    async def run_terminal_sequence(self, sid: str) -> bool:
        """Package and forward the uploads once; returns False if it already ran."""
        session = self.store.get(sid)
        if session.state == SessionState.COMPLETED.value:
            logger.info("Terminal sequence for %s already ran", sid)
            return False

        # Flip first: whatever happens below, the intake is done for the user.
        self.store.set_state(sid, SessionState.COMPLETED)
        uploads = list(session.uploaded_items)
        summary = PackageSummary(
            session_id=sid,
            category=self.catalog.category_name(session.category or ""),
            sub_category=self.catalog.subcategory_name(session.sub_category or ""),
            item_count=len(uploads),
            items=uploads,
        )

        await self._notify(sid, "🎉 All documents collected! Processing your application...")

        archive: Optional[ArchiveHandle] = None
        if uploads or self.forward_empty_packages:
            await self._notify(sid, "📦 Creating document package...")
            try:
                archive = await self.storage.package_uploads(
                    sid, session.category or "unknown", uploads, allow_empty=not uploads
                )
                result = await self.forwarder.forward(archive, summary)
            except (StorageError, ForwardingError):
                logger.exception(
                    "Terminal sequence failed for %s (%s / %s, %d documents); "
                    "archive kept at %s for manual follow-up",
                    sid,
                    summary.category,
                    summary.sub_category,
                    len(uploads),
                    archive.path if archive else "-",
                )
                await self._notify(sid, _TERMINAL_FAILURE)
                return True

            if result.delivered:
                self.scheduler.call_later(
                    self.archive_grace_seconds, self.storage.delete_archive, archive.path
                )
            logger.info(
                "Application completed for %s: %s / %s, %d documents, "
                "forwarded via %s channel (delivered=%s, id=%s)",
                sid,
                summary.category,
                summary.sub_category,
                len(uploads),
                result.channel,
                result.delivered,
                result.message_id,
            )
            if not result.delivered:
                logger.error(
                    "Package for %s was not delivered; archive kept at %s",
                    sid,
                    archive.path,
                )
        else:
            logger.info(
                "Application completed for %s with every document skipped; "
                "nothing packaged or forwarded",
                sid,
            )

        await self._notify(
            sid,
            render(
                "completion.j2",
                category=summary.category,
                sub_category=summary.sub_category,
                uploaded=len(uploads),
                package_size=archive.size_bytes if archive else None,
            ),
        )
        return True

    async def _notify(self, sid: str, text: str) -> None:
        """Send without letting a gateway failure stop the caller's work."""
        try:
            await self.gateway.send_text(sid, text)
        except GatewayError:
            logger.exception("Could not notify %s: %s...", sid, text[:50])

    async def _send_failure(self, sid: str) -> None:
        try:
            await self.gateway.send_text(sid, _GENERIC_FAILURE)
        except GatewayError:
            logger.exception("Failed to send error reply to %s", sid)
