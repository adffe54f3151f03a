"""E-mail delivery of the finished document package to the loan team."""
from __future__ import annotations

import asyncio
import logging
import smtplib
import uuid
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path

from loanbot.collaborators import ForwardingError
from loanbot.messages.loader import format_file_size, render
from loanbot.models import ArchiveHandle, ForwardResult, PackageSummary

logger = logging.getLogger(__name__)


class EmailForwarder:
    """Sends the zip archive as an attachment over SMTP (STARTTLS).

    Without credentials the send is simulated: the message is still built
    and logged, and the result reports ``channel="simulated"``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str = "",
        password: str = "",
        sender: str = "",
        recipient: str = "team@example.com",
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user or "loan-bot@localhost"
        self.recipient = recipient
        self.timeout = timeout
        if not self.is_configured:
            logger.warning("Email credentials not found; email delivery will be simulated")

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    def build_message(self, archive: ArchiveHandle, summary: PackageSummary) -> EmailMessage:
        archive_path = Path(archive.path)
        context = {
            "summary": summary,
            "category": summary.category,
            "sub_category": summary.sub_category,
            "archive_name": archive_path.name,
            "archive_size": archive.size_bytes,
        }

        msg = EmailMessage()
        msg["Subject"] = (
            f"Loan Application Documents - {summary.category} Loan - {summary.session_id}"
        )
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg["Message-ID"] = make_msgid(domain="loanbot.local")
        msg.set_content(render("email_body.txt.j2", **context))
        msg.add_alternative(render("email_body.html.j2", **context), subtype="html")
        msg.add_attachment(
            archive_path.read_bytes(),
            maintype="application",
            subtype="zip",
            filename=archive_path.name,
        )
        return msg

    async def forward(
        self, archive: ArchiveHandle, summary: PackageSummary
    ) -> ForwardResult:
        try:
            msg = self.build_message(archive, summary)
        except OSError as exc:
            raise ForwardingError(f"Zip file not readable: {exc}") from exc

        if not self.is_configured:
            sim_id = f"sim_{uuid.uuid4().hex[:12]}"
            logger.info(
                "EMAIL SIMULATION to=%s subject=%r attachment=%s id=%s",
                msg["To"],
                msg["Subject"],
                format_file_size(archive.size_bytes),
                sim_id,
            )
            return ForwardResult(
                delivered=True,
                channel="simulated",
                message_id=sim_id,
                recipient=self.recipient,
            )

        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("Error sending email for %s", summary.session_id)
            raise ForwardingError(f"Failed to send email: {exc}") from exc

        logger.info("Email sent successfully: %s", msg["Message-ID"])
        return ForwardResult(
            delivered=True,
            channel="direct",
            message_id=str(msg["Message-ID"]),
            recipient=self.recipient,
        )

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.starttls()
            smtp.login(self.user, self.password)
            smtp.send_message(msg)
