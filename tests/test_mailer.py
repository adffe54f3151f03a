"""Tests for the e-mail forwarder."""
from __future__ import annotations

import pytest

from loanbot.collaborators import ForwardingError
from loanbot.models import ArchiveHandle, PackageSummary, UploadRecord
from loanbot.notify.mailer import EmailForwarder


@pytest.fixture
def archive(tmp_path) -> ArchiveHandle:
    path = tmp_path / "5215512345678_home_20240101.zip"
    path.write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    return ArchiveHandle(path=str(path), size_bytes=22, item_count=1)


@pytest.fixture
def summary() -> PackageSummary:
    return PackageSummary(
        session_id="5215512345678",
        category="Home",
        sub_category="Salaried",
        item_count=1,
        items=[
            UploadRecord(
                item_name="Address Proof",
                source_file_name="bill.pdf",
                media_kind="document",
                size_bytes=2048,
            )
        ],
    )


def test_build_message(archive, summary) -> None:
    forwarder = EmailForwarder("smtp.example.com", 587, recipient="loans@example.com")
    msg = forwarder.build_message(archive, summary)

    assert msg["Subject"] == "Loan Application Documents - Home Loan - 5215512345678"
    assert msg["To"] == "loans@example.com"
    text_part = msg.get_body(preferencelist=("plain",)).get_content()
    assert "Employment Type: Salaried" in text_part
    assert "Address Proof: bill.pdf (2 KB)" in text_part
    html_part = msg.get_body(preferencelist=("html",)).get_content()
    assert "<strong>Loan Type:</strong> Home Loan" in html_part
    attachments = list(msg.iter_attachments())
    assert len(attachments) == 1
    assert attachments[0].get_filename() == "5215512345678_home_20240101.zip"


@pytest.mark.asyncio
async def test_forward_without_credentials_is_simulated(archive, summary) -> None:
    forwarder = EmailForwarder("smtp.example.com", 587)
    assert not forwarder.is_configured

    result = await forwarder.forward(archive, summary)

    assert result.delivered is True
    assert result.channel == "simulated"
    assert result.message_id.startswith("sim_")


@pytest.mark.asyncio
async def test_forward_missing_archive_fails(tmp_path, summary) -> None:
    forwarder = EmailForwarder("smtp.example.com", 587)
    missing = ArchiveHandle(path=str(tmp_path / "nope.zip"), size_bytes=0, item_count=0)
    with pytest.raises(ForwardingError):
        await forwarder.forward(missing, summary)


@pytest.mark.asyncio
async def test_forward_smtp_failure(monkeypatch, archive, summary) -> None:
    forwarder = EmailForwarder("smtp.invalid", 587, user="bot@example.com", password="secret")

    def refuse(msg):
        raise ConnectionRefusedError("no smtp here")

    monkeypatch.setattr(forwarder, "_send", refuse)
    with pytest.raises(ForwardingError):
        await forwarder.forward(archive, summary)


@pytest.mark.asyncio
async def test_forward_direct(monkeypatch, archive, summary) -> None:
    forwarder = EmailForwarder("smtp.example.com", 587, user="bot@example.com", password="secret")
    sent = []
    monkeypatch.setattr(forwarder, "_send", sent.append)

    result = await forwarder.forward(archive, summary)

    assert result.channel == "direct"
    assert len(sent) == 1
    assert sent[0]["From"] == "bot@example.com"
