"""
Pytest configuration for rc_broker. Fixed config, in-memory session store, and an
httpx.MockTransport standing in for the authorization server and profile API so
tests never touch the network.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from rc_broker.config import BrokerConfig
from rc_broker.main import create_app
from rc_broker.session_store import MemorySessionStore
from rc_broker.sessions import SESSION_COOKIE_NAME, SessionCookie
from rc_broker.tests.fakes import API_BASE, CLIENT_ORIGIN, OAUTH_HOST, REDIRECT_URI, SESSION_SECRET, Upstream
from rc_broker.token_record import TokenRecord


@pytest.fixture
def config() -> BrokerConfig:
    return BrokerConfig(
        oauth_host=OAUTH_HOST,
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri=REDIRECT_URI,
        api_base_url=API_BASE,
        client_origin=CLIENT_ORIGIN,
        session_secret=SESSION_SECRET,
        session_store_url="memory://",
    )


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def http_client(upstream):
    client = httpx.Client(transport=httpx.MockTransport(upstream.handler))
    yield client
    client.close()


@pytest.fixture
def store(config) -> MemorySessionStore:
    return MemorySessionStore(
        idle_ttl_seconds=config.session_max_age,
        absolute_ttl_seconds=config.session_absolute_lifetime,
    )


@pytest.fixture
def client(config, store, http_client) -> TestClient:
    return TestClient(create_app(config, store=store, http_client=http_client))


@pytest.fixture
def login_session(client, store, config):
    """Create a session holding token and point the test client's cookie at it."""

    def _login(token: TokenRecord | None):
        record = store.create(token)
        cookie = SessionCookie(config.session_secret, max_age=config.session_max_age, secure=False)
        client.cookies.set(SESSION_COOKIE_NAME, cookie.encode(record.session_id))
        return record

    return _login
