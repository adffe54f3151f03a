"""
Shared fixtures for the loan bot tests.

The conversation machine is exercised against the in-memory fakes in
fakes.py and against the real on-disk DocumentStorage rooted in tmp_path.
"""
from __future__ import annotations

import os
import tempfile

import pytest

# Keep runtime directories created at config import out of the source tree
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="loanbot-tests-"))

from fakes import FakeForwarder, FakeGateway, FakeScheduler
from loanbot.catalog.requirements import RequirementCatalog
from loanbot.flow.machine import ConversationMachine
from loanbot.media.storage import DocumentStorage
from loanbot.sessions.store import SessionStore


@pytest.fixture
def catalog() -> RequirementCatalog:
    return RequirementCatalog()


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def forwarder() -> FakeForwarder:
    return FakeForwarder()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def storage(tmp_path) -> DocumentStorage:
    return DocumentStorage(tmp_path / "uploads", tmp_path / "archives")


@pytest.fixture
def machine(store, catalog, gateway, storage, forwarder, scheduler) -> ConversationMachine:
    return ConversationMachine(
        store, catalog, gateway, storage, forwarder, scheduler, archive_grace_seconds=5
    )
