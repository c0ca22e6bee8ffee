"""
Request dependencies: the broker's components, the current session record
(read explicitly from the store), and the guard-resolved RequestContext in its
browser and API flavours.
"""
import logging
from dataclasses import dataclass

import httpx
from fastapi import Depends, Request

from rc_broker.config import BrokerConfig
from rc_broker.errors import LoginRequired, NotAuthenticated, SessionInvalidated
from rc_broker.flow import FlowController
from rc_broker.guard import RequestContext, TokenLifecycleGuard
from rc_broker.oauth_client import OAuthClient
from rc_broker.profile_proxy import ProfileClient
from rc_broker.session_store import SessionRecord, SessionStore
from rc_broker.sessions import SessionCookie

logger = logging.getLogger(__name__)


@dataclass
class Broker:
    """Everything a request needs, constructed once by create_app."""

    config: BrokerConfig
    store: SessionStore
    http: httpx.Client
    oauth: OAuthClient
    guard: TokenLifecycleGuard
    flow: FlowController
    profiles: ProfileClient
    cookie: SessionCookie

    @classmethod
    def build(cls, config: BrokerConfig, store: SessionStore, http: httpx.Client) -> "Broker":
        oauth = OAuthClient(config, http)
        return cls(
            config=config,
            store=store,
            http=http,
            oauth=oauth,
            guard=TokenLifecycleGuard(oauth, store, skew_seconds=config.expiry_skew_seconds),
            flow=FlowController(config, oauth, store),
            profiles=ProfileClient(config, http),
            cookie=SessionCookie(config.session_secret, max_age=config.session_max_age, secure=config.production),
        )


def get_broker(request: Request) -> Broker:
    return request.app.state.broker


def request_session_id(request: Request) -> str | None:
    """Session id decoded from the cookie by the session middleware."""
    return getattr(request.state, "session_id", None)


def bind_session(request: Request, session_id: str) -> None:
    """Attach session_id to this request so the response carries its cookie."""
    request.state.session_id = session_id
    request.state.session_ended = False


def end_request_session(request: Request) -> None:
    """Mark the session gone so the response clears the cookie."""
    request.state.session_id = None
    request.state.session_ended = True


def current_session(request: Request, broker: Broker = Depends(get_broker)) -> SessionRecord | None:
    session_id = request_session_id(request)
    if not session_id:
        return None
    record = broker.store.get(session_id)
    if record is None:
        # Cookie points at a destroyed or expired session
        end_request_session(request)
    return record


def _resolve(request: Request, broker: Broker, session: SessionRecord | None, *, browser: bool) -> RequestContext:
    try:
        ctx = broker.guard.ensure_fresh(session)
    except SessionInvalidated as e:
        end_request_session(request)
        if browser:
            logger.info("Redirecting to login due to refresh failure.")
            raise LoginRequired() from e
        raise NotAuthenticated("Authentication failed or token expired") from e
    if session is not None and ctx.session_id is None:
        end_request_session(request)
    return ctx


def browser_context(
    request: Request,
    broker: Broker = Depends(get_broker),
    session: SessionRecord | None = Depends(current_session),
) -> RequestContext:
    """Guarded context for browser-navigated routes; refresh failure redirects to /login."""
    return _resolve(request, broker, session, browser=True)


def api_context(
    request: Request,
    broker: Broker = Depends(get_broker),
    session: SessionRecord | None = Depends(current_session),
) -> RequestContext:
    """Guarded context for /api routes; refresh failure is a 401."""
    return _resolve(request, broker, session, browser=False)
