"""Client for Meta's WhatsApp Cloud API (Graph API)."""
from __future__ import annotations

import logging
from typing import Sequence

import httpx

from loanbot.collaborators import GatewayError
from loanbot.models import (
    AttachmentRef,
    CatalogOption,
    EventKind,
    FetchedAttachment,
    InboundEvent,
)

logger = logging.getLogger(__name__)

GRAPH_API_HOST = "https://graph.facebook.com"

# WhatsApp limits for interactive messages
_MAX_BUTTONS = 3
_MAX_BUTTON_TITLE = 20
_MAX_ROW_TITLE = 24
_MAX_ROW_DESCRIPTION = 72


class WhatsAppGateway:
    """Outbound side of the bot: text, interactive prompts, media download.

    Every HTTP failure is re-raised as GatewayError so the conversation
    machine can turn it into a retry prompt instead of crashing.
    """

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v21.0",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = access_token
        self._phone_number_id = phone_number_id
        self._base = f"{GRAPH_API_HOST}/{api_version}"
        self._timeout = timeout
        self._transport = transport
        if not access_token or not phone_number_id:
            logger.error("WhatsApp credentials not found in environment variables")

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self._timeout, transport=self._transport
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

    async def _post_message(self, payload: dict) -> dict:
        url = f"{self._base}/{self._phone_number_id}/messages"
        try:
            async with self._client() as client:
                resp = await client.post(
                    url,
                    json={"messaging_product": "whatsapp", **payload},
                    headers=self._headers,
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as exc:
            logger.error("Error sending WhatsApp message to %s: %s", payload.get("to"), exc)
            raise GatewayError(str(exc)) from exc

    # ── outbound ────────────────────────────────────────────────────

    async def send_text(self, recipient: str, text: str) -> dict:
        """Send a text message via WhatsApp Cloud API."""
        data = await self._post_message(
            {"to": recipient, "type": "text", "text": {"body": text}}
        )
        logger.info("Message sent to %s: %s...", recipient, text[:50])
        return data

    async def send_choice_prompt(
        self, recipient: str, body: str, options: Sequence[CatalogOption]
    ) -> dict:
        """Up to three options go out as reply buttons, more as a list."""
        if len(options) <= _MAX_BUTTONS:
            interactive = {
                "type": "button",
                "body": {"text": body},
                "action": {
                    "buttons": [
                        {
                            "type": "reply",
                            "reply": {
                                "id": opt.key,
                                "title": opt.display_name[:_MAX_BUTTON_TITLE],
                            },
                        }
                        for opt in options
                    ]
                },
            }
        else:
            interactive = {
                "type": "list",
                "body": {"text": body},
                "action": {
                    "button": "Select",
                    "sections": [
                        {
                            "title": "Options",
                            "rows": [
                                {
                                    "id": opt.key,
                                    "title": opt.display_name[:_MAX_ROW_TITLE],
                                    "description": opt.description[:_MAX_ROW_DESCRIPTION],
                                }
                                for opt in options
                            ],
                        }
                    ],
                },
            }
        data = await self._post_message(
            {"to": recipient, "type": "interactive", "interactive": interactive}
        )
        logger.info("%s message sent to %s", interactive["type"].title(), recipient)
        return data

    async def mark_as_read(self, message_id: str) -> None:
        """Best effort; a failed read receipt is only logged."""
        if not message_id:
            return
        try:
            await self._post_message({"status": "read", "message_id": message_id})
        except GatewayError:
            logger.warning("Could not mark message %s as read", message_id)

    async def fetch_attachment(self, ref: str) -> FetchedAttachment:
        """Download media from WhatsApp.

        1. GET /{version}/{media_id} → retrieves the download URL
        2. GET {url} with auth header → downloads the bytes
        """
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            async with self._client(timeout=60) as client:
                meta_resp = await client.get(f"{self._base}/{ref}", headers=headers)
                meta_resp.raise_for_status()
                meta = meta_resp.json()

                file_resp = await client.get(meta["url"], headers=headers)
                file_resp.raise_for_status()
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error("Error downloading media %s: %s", ref, exc)
            raise GatewayError(f"Media download failed: {exc}") from exc

        mime_type = meta.get("mime_type") or file_resp.headers.get(
            "content-type", "application/octet-stream"
        )
        logger.info("Media downloaded: %s", ref)
        return FetchedAttachment(
            data=file_resp.content,
            mime_type=mime_type,
            suggested_name=meta.get("filename") or f"file_{ref}",
        )


def parse_webhook_message(payload: dict) -> list[InboundEvent]:
    """Extract inbound events from a WhatsApp webhook payload."""
    events: list[InboundEvent] = []

    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            if "messages" not in value:
                continue
            for msg in value["messages"]:
                msg_type = msg.get("type", "")
                base = {
                    "sender_id": msg.get("from", ""),
                    "message_id": msg.get("id", ""),
                }
                if msg_type == "text":
                    events.append(InboundEvent(
                        kind=EventKind.TEXT,
                        text=msg.get("text", {}).get("body", ""),
                        **base,
                    ))
                elif msg_type == "interactive":
                    inter = msg.get("interactive", {})
                    reply = inter.get("list_reply") or inter.get("button_reply") or {}
                    events.append(InboundEvent(
                        kind=EventKind.SELECTION_REPLY,
                        text=reply.get("title") or reply.get("id", ""),
                        **base,
                    ))
                elif msg_type == "button":
                    events.append(InboundEvent(
                        kind=EventKind.SELECTION_REPLY,
                        text=msg.get("button", {}).get("text", ""),
                        **base,
                    ))
                elif msg_type == "document":
                    doc = msg.get("document", {})
                    events.append(InboundEvent(
                        kind=EventKind.ATTACHMENT,
                        text=doc.get("caption"),
                        attachment=AttachmentRef(
                            ref=doc.get("id", ""),
                            kind="document",
                            file_name=doc.get("filename") or "document",
                            mime_type=doc.get("mime_type", ""),
                        ),
                        **base,
                    ))
                elif msg_type == "image":
                    img = msg.get("image", {})
                    events.append(InboundEvent(
                        kind=EventKind.ATTACHMENT,
                        text=img.get("caption"),
                        attachment=AttachmentRef(
                            ref=img.get("id", ""),
                            kind="image",
                            file_name="image.jpg",
                            mime_type=img.get("mime_type", "image/jpeg"),
                        ),
                        **base,
                    ))
                else:
                    # Unsupported type – skip
                    logger.debug("Skipping unsupported message type %r", msg_type)

    return events
