"""Tests for the in-memory session store and its staleness sweep."""

from datetime import timedelta

import pytest

from isolation.errors import InvalidStateError, SessionNotFoundError
from isolation.models import GamePhase
from isolation.session import utcnow
from isolation.session_store import SessionStore


class TestSessionStore:
    def test_create_and_get(self):
        store = SessionStore()
        session = store.create("alice")

        assert session.owner_id == "alice"
        assert session.phase is GamePhase.STARTING
        assert store.get(session.id) is session
        assert session.id in store
        assert len(store) == 1

    def test_ids_are_unique(self):
        store = SessionStore()
        ids = {store.create("p").id for _ in range(50)}
        assert len(ids) == 50

    def test_get_unknown_raises(self):
        with pytest.raises(SessionNotFoundError) as exc_info:
            SessionStore().get("nope")
        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.to_dict()["context"]["session_id"] == "nope"

    def test_evict(self):
        store = SessionStore()
        session = store.create("alice")
        assert store.evict(session.id) is True
        assert store.evict(session.id) is False
        assert session.id not in store

    def test_sweep_removes_only_stale_sessions(self):
        store = SessionStore(ttl_seconds=60)
        old = store.create("old")
        fresh = store.create("fresh")
        old.created_at = utcnow() - timedelta(seconds=120)

        assert store.sweep() == 1
        assert old.id not in store
        assert fresh.id in store

    def test_sweep_ignores_outcome(self):
        store = SessionStore(ttl_seconds=60)
        session = store.create("p")
        session.phase = GamePhase.PLAYING

        assert store.sweep(now=utcnow() + timedelta(seconds=61)) == 1
        assert len(store) == 0

    def test_sweep_with_nothing_stale(self):
        store = SessionStore()
        store.create("p")
        assert store.sweep() == 0
        assert len(store) == 1

    def test_claim_yields_session_and_releases(self):
        store = SessionStore()
        session = store.create("p")

        with store.claim(session.id) as claimed:
            assert claimed is session
        with store.claim(session.id) as claimed:
            assert claimed is session

    def test_claim_rejects_overlapping_action(self):
        store = SessionStore()
        session = store.create("p")

        with store.claim(session.id):
            with pytest.raises(InvalidStateError) as exc_info:
                with store.claim(session.id):
                    pass
        assert exc_info.value.code == "INVALID_STATE"

    def test_claim_released_after_error(self):
        store = SessionStore()
        session = store.create("p")

        with pytest.raises(RuntimeError):
            with store.claim(session.id):
                raise RuntimeError("boom")
        with store.claim(session.id):
            pass

    def test_claim_unknown_or_evicted(self):
        store = SessionStore()
        session = store.create("p")
        store.evict(session.id)

        with pytest.raises(SessionNotFoundError):
            with store.claim(session.id):
                pass
