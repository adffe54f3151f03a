"""FastAPI webhook server for WhatsApp Cloud API integration."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from fastapi import BackgroundTasks, FastAPI, Query, Request
from fastapi.responses import PlainTextResponse

from loanbot.catalog.parser import load_catalog
from loanbot.config import (
    ARCHIVE_GRACE_SECONDS,
    ARCHIVES_DIR,
    CATALOG_PATH,
    EMAIL_FROM,
    EMAIL_HOST,
    EMAIL_PASS,
    EMAIL_PORT,
    EMAIL_TO,
    EMAIL_USER,
    FORWARD_EMPTY_PACKAGES,
    GRAPH_API_VERSION,
    RATE_LIMIT_PER_MINUTE,
    SESSION_SWEEP_INTERVAL_SECONDS,
    SESSION_TIMEOUT_MINUTES,
    UPLOADS_DIR,
    WHATSAPP_ACCESS_TOKEN,
    WHATSAPP_PHONE_NUMBER_ID,
    WHATSAPP_VERIFY_TOKEN,
)
from loanbot.flow.machine import ConversationMachine
from loanbot.media.storage import DocumentStorage
from loanbot.models import InboundEvent
from loanbot.notify.mailer import EmailForwarder
from loanbot.scheduling import TaskScheduler
from loanbot.sessions.store import SessionStore
from loanbot.whatsapp.client import WhatsAppGateway, parse_webhook_message
from loanbot.whatsapp.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def build_machine() -> ConversationMachine:
    """Wire the production collaborators from configuration."""
    return ConversationMachine(
        store=SessionStore(),
        catalog=load_catalog(CATALOG_PATH or None),
        gateway=WhatsAppGateway(
            WHATSAPP_ACCESS_TOKEN, WHATSAPP_PHONE_NUMBER_ID, api_version=GRAPH_API_VERSION
        ),
        storage=DocumentStorage(UPLOADS_DIR, ARCHIVES_DIR),
        forwarder=EmailForwarder(
            EMAIL_HOST,
            EMAIL_PORT,
            user=EMAIL_USER,
            password=EMAIL_PASS,
            sender=EMAIL_FROM,
            recipient=EMAIL_TO,
        ),
        scheduler=TaskScheduler(),
        forward_empty_packages=FORWARD_EMPTY_PACKAGES,
        archive_grace_seconds=ARCHIVE_GRACE_SECONDS,
        session_timeout=timedelta(minutes=SESSION_TIMEOUT_MINUTES),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    machine = build_machine()
    app.state.machine = machine
    app.state.rate_limiter = RateLimiter(max_events=RATE_LIMIT_PER_MINUTE)
    app.state.started_at = datetime.now()

    machine.scheduler.start()
    machine.scheduler.every(SESSION_SWEEP_INTERVAL_SECONDS, machine.sweep)
    machine.scheduler.every(SESSION_SWEEP_INTERVAL_SECONDS, app.state.rate_limiter.prune)
    logger.info(
        "Loan bot ready: %d loan types, session timeout %s min",
        len(machine.catalog.list_categories()),
        SESSION_TIMEOUT_MINUTES,
    )
    try:
        yield
    finally:
        await machine.scheduler.shutdown()


app = FastAPI(title="WhatsApp Loan Document Bot", lifespan=lifespan)


@app.get("/webhook")
async def verify_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
) -> PlainTextResponse:
    """Webhook verification endpoint required by Meta."""
    if hub_mode == "subscribe" and hub_verify_token == WHATSAPP_VERIFY_TOKEN:
        logger.info("Webhook verified successfully")
        return PlainTextResponse(content=hub_challenge)
    logger.warning("Webhook verification failed: invalid token")
    return PlainTextResponse(content="Forbidden", status_code=403)


@app.post("/webhook")
async def receive_message(
    request: Request, background_tasks: BackgroundTasks
) -> dict:
    """Receive incoming WhatsApp messages.

    Returns 200 immediately (Meta requires <5s response) and
    processes each event in a background task.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return {"status": "ignored"}

    machine: ConversationMachine = request.app.state.machine
    limiter: RateLimiter = request.app.state.rate_limiter

    accepted = 0
    for event in parse_webhook_message(payload):
        if not limiter.allow(event.sender_id):
            continue
        background_tasks.add_task(_process_event, machine, event)
        accepted += 1

    return {"status": "ok", "accepted": accepted}


@app.get("/status")
async def status(request: Request) -> dict:
    machine: ConversationMachine = request.app.state.machine
    return {
        "status": "running",
        "started_at": request.app.state.started_at.isoformat(),
        "sessions": machine.store.stats().model_dump(),
        "catalog": machine.catalog.statistics(),
        "scheduled_tasks": machine.scheduler.pending,
    }


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.post("/reset/{phone_number}")
async def reset_session(phone_number: str, request: Request) -> dict:
    """Drop a user's session so the next message starts fresh.

    Usage: POST /reset/5215512345678
    """
    machine: ConversationMachine = request.app.state.machine
    # Waits for any in-flight turn of this sender before dropping the session
    async with machine.store.lock(phone_number):
        session = machine.store.peek(phone_number)
        removed = machine.store.remove(phone_number)
    logger.info("Manual reset for %s (was %s)", phone_number, session.state if session else "-")
    return {
        "status": "ok",
        "phone": phone_number,
        "removed": removed,
        "previous_state": session.state if session else None,
    }


async def _process_event(machine: ConversationMachine, event: InboundEvent) -> None:
    """Process a single inbound event in the background."""
    try:
        await machine.gateway.mark_as_read(event.message_id)
        await machine.handle(event)
    except Exception:
        logger.exception("Error processing event from %s", event.sender_id)
        try:
            await machine.gateway.send_text(
                event.sender_id,
                "❌ Sorry, something went wrong. Please try again or type 'restart' to start over.",
            )
        except Exception:
            logger.exception("Failed to send error reply")
