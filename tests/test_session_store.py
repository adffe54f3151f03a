"""Tests for the in-memory session registry."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from loanbot.models import SessionState, UploadRecord
from loanbot.sessions.store import SessionStore


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 9, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def timed_store(clock: Clock) -> SessionStore:
    return SessionStore(clock=clock)


def _record(item: str) -> UploadRecord:
    return UploadRecord(item_name=item, source_file_name="f.pdf", media_kind="document")


def test_get_creates_initial_session_once(store: SessionStore) -> None:
    first = store.get("a")
    second = store.get("a")
    assert first is second
    assert first.state == SessionState.INITIAL.value
    assert first.cursor == 0
    assert first.uploaded_items == []
    assert len(store) == 1
    assert "a" in store


def test_get_refreshes_activity(timed_store: SessionStore, clock: Clock) -> None:
    session = timed_store.get("a")
    clock.advance(minutes=10)
    timed_store.get("a")
    assert session.last_activity_at == clock.now
    assert session.created_at == clock.now - timedelta(minutes=10)


def test_peek_does_not_create(store: SessionStore) -> None:
    assert store.peek("ghost") is None
    assert "ghost" not in store


def test_reset_returns_fresh_session(store: SessionStore) -> None:
    store.set_selection("a", "home", "salaried")
    store.set_required_items("a", ["X", "Y"])
    store.set_state("a", SessionState.COLLECTING_ITEMS)

    session = store.reset("a")

    assert session.state == SessionState.INITIAL.value
    assert session.category is None
    assert session.required_items == ()
    assert store.get("a") is session


def test_collection_progress(store: SessionStore) -> None:
    store.set_required_items("a", ["Slip", "Statement", "ID"])
    assert store.current_required_item("a") == "Slip"

    store.append_upload("a", _record("Slip"))
    store.advance_cursor("a")
    assert store.current_required_item("a") == "Statement"
    assert store.remaining_items("a") == ["Statement", "ID"]
    assert not store.is_complete("a")

    store.advance_cursor("a")
    store.advance_cursor("a")
    assert store.current_required_item("a") is None
    assert store.remaining_items("a") == []
    assert store.is_complete("a")
    assert [r.item_name for r in store.get("a").uploaded_items] == ["Slip"]


def test_set_required_items_resets_progress(store: SessionStore) -> None:
    store.set_required_items("a", ["Slip"])
    store.append_upload("a", _record("Slip"))
    store.advance_cursor("a")

    store.set_required_items("a", ["ID", "Address"])

    session = store.get("a")
    assert session.cursor == 0
    assert session.uploaded_items == []
    assert session.required_items == ("ID", "Address")


def test_set_selection_keeps_category_on_partial_update(store: SessionStore) -> None:
    store.set_selection("a", "vehicle")
    store.set_selection("a", "vehicle", "self_employed")
    session = store.get("a")
    assert (session.category, session.sub_category) == ("vehicle", "self_employed")


def test_sweep_expired(timed_store: SessionStore, clock: Clock) -> None:
    timed_store.get("old")
    clock.advance(minutes=20)
    timed_store.get("fresh")
    clock.advance(minutes=15)

    removed = timed_store.sweep_expired(timeout=timedelta(minutes=30))

    assert removed == 1
    assert "old" not in timed_store
    assert "fresh" in timed_store


@pytest.mark.asyncio
async def test_sweep_skips_locked_session(timed_store: SessionStore, clock: Clock) -> None:
    timed_store.get("busy")
    clock.advance(hours=2)

    async with timed_store.lock("busy"):
        assert timed_store.sweep_expired(timeout=timedelta(minutes=30)) == 0
        assert "busy" in timed_store

    assert timed_store.sweep_expired(timeout=timedelta(minutes=30)) == 1


def test_lock_is_per_sender(store: SessionStore) -> None:
    assert store.lock("a") is store.lock("a")
    assert store.lock("a") is not store.lock("b")


def test_remove(store: SessionStore) -> None:
    store.get("a")
    assert store.remove("a") is True
    assert store.remove("a") is False
    assert "a" not in store


def test_stats(timed_store: SessionStore, clock: Clock) -> None:
    timed_store.get("idle")
    clock.advance(hours=2)
    timed_store.set_selection("a", "home")
    timed_store.set_state("a", SessionState.AWAITING_SUBCATEGORY)
    timed_store.set_selection("b", "home")
    timed_store.set_state("b", SessionState.COMPLETED)

    stats = timed_store.stats()

    assert stats.total_sessions == 3
    assert stats.active_last_hour == 2
    assert stats.by_state == {
        "INITIAL": 1,
        "AWAITING_SUBCATEGORY": 1,
        "COMPLETED": 1,
    }
    assert stats.by_category == {"home": 2}
    # Reading stats does not refresh anyone's activity
    assert timed_store.peek("idle").last_activity_at == clock.now - timedelta(hours=2)
