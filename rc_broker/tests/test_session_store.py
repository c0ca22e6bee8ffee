"""Tests for the memory and SQL session stores: lifecycle, expiry, atomic token replace."""
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from rc_broker.errors import StoreFailure
from rc_broker.models import Base
from rc_broker.session_store import MemorySessionStore, SessionStore, build_store
from rc_broker.sql_store import SqlSessionStore
from rc_broker.tests.fakes import make_token

IDLE = 3600
ABSOLUTE = 4 * 3600


class Clock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: int):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture(params=["memory", "sql"])
def session_store(request, clock):
    if request.param == "memory":
        s = MemorySessionStore(idle_ttl_seconds=IDLE, absolute_ttl_seconds=ABSOLUTE, clock=clock)
    else:
        s = SqlSessionStore("sqlite:///:memory:", idle_ttl_seconds=IDLE, absolute_ttl_seconds=ABSOLUTE, clock=clock)
    yield s
    s.close()


def test_create_and_get(session_store):
    token = make_token(600)
    record = session_store.create(token)
    assert len(record.session_id) >= 32
    got = session_store.get(record.session_id)
    assert got.token == token


def test_unknown_session_is_none(session_store):
    assert session_store.get("missing") is None


def test_set_token_replaces_whole_record(session_store):
    record = session_store.create(make_token(600, access_token="at-1", refresh_token="rt-1"))
    session_store.set_token(record.session_id, make_token(600, access_token="at-2", refresh_token="rt-2"))
    token = session_store.get(record.session_id).token
    assert (token.access_token, token.refresh_token) == ("at-2", "rt-2")


def test_set_token_on_missing_session_does_not_create(session_store):
    assert session_store.set_token("missing", make_token(600)) is None
    assert session_store.get("missing") is None


def test_destroy_is_idempotent(session_store):
    record = session_store.create()
    session_store.destroy(record.session_id)
    session_store.destroy(record.session_id)
    assert session_store.get(record.session_id) is None


def test_idle_expiry_slides_on_access(session_store, clock):
    record = session_store.create(make_token(600))
    clock.advance(IDLE - 10)
    assert session_store.get(record.session_id) is not None
    clock.advance(IDLE - 10)
    assert session_store.get(record.session_id) is not None
    clock.advance(IDLE + 1)
    assert session_store.get(record.session_id) is None


def test_absolute_lifetime_caps_active_session(session_store, clock):
    record = session_store.create()
    for _ in range(5):
        clock.advance(IDLE - 60)
        session_store.get(record.session_id)
    assert session_store.get(record.session_id) is None


def test_purge_expired(session_store, clock):
    old = session_store.create()
    clock.advance(IDLE + 1)
    fresh = session_store.create()
    assert session_store.purge_expired() == 1
    assert session_store.get(fresh.session_id) is not None
    assert session_store.get(old.session_id) is None


def test_sql_store_wraps_backend_errors(clock):
    s = SqlSessionStore("sqlite:///:memory:", idle_ttl_seconds=IDLE, absolute_ttl_seconds=ABSOLUTE, clock=clock)
    Base.metadata.drop_all(bind=s.engine)
    with pytest.raises(StoreFailure):
        s.get("anything")


def test_build_store_memory(config):
    assert isinstance(build_store(config), MemorySessionStore)


def test_build_store_sql(config):
    store = build_store(replace(config, session_store_url="sqlite:///:memory:"))
    try:
        assert isinstance(store, SqlSessionStore)
    finally:
        store.close()


def test_incomplete_backend_cannot_be_instantiated():
    class GetOnlyStore(SessionStore):
        def get(self, session_id):
            return None

    with pytest.raises(TypeError):
        GetOnlyStore(idle_ttl_seconds=IDLE, absolute_ttl_seconds=ABSOLUTE)
