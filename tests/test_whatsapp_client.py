"""Tests for the WhatsApp Cloud API client and webhook payload parsing."""
from __future__ import annotations

import json

import httpx
import pytest

from loanbot.collaborators import GatewayError
from loanbot.models import CatalogOption, EventKind
from loanbot.whatsapp.client import WhatsAppGateway, parse_webhook_message


def _gateway(handler) -> WhatsAppGateway:
    return WhatsAppGateway("token", "12345", transport=httpx.MockTransport(handler))


def _options(n: int) -> list[CatalogOption]:
    return [
        CatalogOption(key=f"k{i}", display_name=f"Option {i}", description="d" * 100)
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_send_text() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

    data = await _gateway(handler).send_text("5215512345678", "hola")

    assert data["messages"][0]["id"] == "wamid.1"
    request = seen[0]
    assert request.url.path == "/v21.0/12345/messages"
    assert request.headers["Authorization"] == "Bearer token"
    body = json.loads(request.content)
    assert body == {
        "messaging_product": "whatsapp",
        "to": "5215512345678",
        "type": "text",
        "text": {"body": "hola"},
    }


@pytest.mark.asyncio
async def test_send_choice_prompt_uses_buttons_for_few_options() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    await _gateway(handler).send_choice_prompt("1", "Pick one", _options(2))

    interactive = bodies[0]["interactive"]
    assert interactive["type"] == "button"
    assert [b["reply"]["id"] for b in interactive["action"]["buttons"]] == ["k0", "k1"]


@pytest.mark.asyncio
async def test_send_choice_prompt_uses_list_for_many_options() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    await _gateway(handler).send_choice_prompt("1", "Pick one", _options(5))

    interactive = bodies[0]["interactive"]
    assert interactive["type"] == "list"
    rows = interactive["action"]["sections"][0]["rows"]
    assert len(rows) == 5
    assert all(len(r["description"]) <= 72 for r in rows)


@pytest.mark.asyncio
async def test_http_error_becomes_gateway_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad token"}})

    with pytest.raises(GatewayError):
        await _gateway(handler).send_text("1", "hi")


@pytest.mark.asyncio
async def test_mark_as_read_swallows_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    await _gateway(handler).mark_as_read("wamid.1")


@pytest.mark.asyncio
async def test_fetch_attachment_two_step_download() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v21.0/media-9":
            return httpx.Response(
                200,
                json={"url": "https://cdn.example.com/f/media-9", "mime_type": "application/pdf"},
            )
        assert request.url.host == "cdn.example.com"
        assert request.headers["Authorization"] == "Bearer token"
        return httpx.Response(200, content=b"%PDF")

    fetched = await _gateway(handler).fetch_attachment("media-9")

    assert fetched.data == b"%PDF"
    assert fetched.mime_type == "application/pdf"
    assert fetched.suggested_name == "file_media-9"


@pytest.mark.asyncio
async def test_fetch_attachment_without_url_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "media-9"})

    with pytest.raises(GatewayError):
        await _gateway(handler).fetch_attachment("media-9")


# ---------------------------------------------------------------------------
# Webhook payload parsing
# ---------------------------------------------------------------------------

def _payload(*messages: dict) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {"messages": list(messages)}}]}],
    }


def test_parse_text_message() -> None:
    events = parse_webhook_message(
        _payload({"from": "111", "id": "wamid.1", "type": "text", "text": {"body": "hi"}})
    )
    assert len(events) == 1
    assert events[0].kind == EventKind.TEXT
    assert events[0].text == "hi"
    assert events[0].sender_id == "111"
    assert events[0].message_id == "wamid.1"


def test_parse_interactive_replies_use_title() -> None:
    events = parse_webhook_message(
        _payload(
            {
                "from": "111",
                "type": "interactive",
                "interactive": {"type": "list_reply", "list_reply": {"id": "home", "title": "Home"}},
            },
            {
                "from": "111",
                "type": "interactive",
                "interactive": {
                    "type": "button_reply",
                    "button_reply": {"id": "self_employed", "title": "Self-employed"},
                },
            },
        )
    )
    assert [(e.kind, e.text) for e in events] == [
        (EventKind.SELECTION_REPLY, "Home"),
        (EventKind.SELECTION_REPLY, "Self-employed"),
    ]


def test_parse_document_and_image() -> None:
    events = parse_webhook_message(
        _payload(
            {
                "from": "111",
                "type": "document",
                "document": {"id": "m1", "filename": "slip.pdf", "mime_type": "application/pdf"},
            },
            {"from": "111", "type": "image", "image": {"id": "m2"}},
            {"from": "111", "type": "document", "document": {"id": "m3"}},
        )
    )
    doc, img, unnamed = events
    assert doc.kind == EventKind.ATTACHMENT
    assert doc.attachment.ref == "m1"
    assert doc.attachment.file_name == "slip.pdf"
    assert img.attachment.kind == "image"
    assert img.attachment.file_name == "image.jpg"
    assert img.attachment.mime_type == "image/jpeg"
    assert unnamed.attachment.file_name == "document"


def test_parse_ignores_statuses_and_unsupported_types() -> None:
    payload = {
        "entry": [
            {"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]},
            {"changes": [{"value": {"messages": [{"from": "1", "type": "sticker"}]}}]},
        ]
    }
    assert parse_webhook_message(payload) == []
    assert parse_webhook_message({}) == []
