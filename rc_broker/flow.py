"""
Flow Controller: begin login (redirect to the authorization server), complete
login (exchange code, store token), end session.
"""
import logging

from rc_broker.config import BrokerConfig
from rc_broker.errors import MissingAuthorizationCode
from rc_broker.oauth_client import OAuthClient
from rc_broker.session_store import SessionRecord, SessionStore
from rc_broker.token_record import token_hint

logger = logging.getLogger(__name__)


class FlowController:
    def __init__(self, config: BrokerConfig, oauth: OAuthClient, store: SessionStore):
        self._config = config
        self._oauth = oauth
        self._store = store

    def begin_login(self) -> str:
        """Authorization server URL to redirect the browser to."""
        # No state parameter; CSRF protection is left to the authorization server
        return self._oauth.authorize_url()

    def complete_login(self, session_id: str | None, code: str | None) -> SessionRecord:
        """
        Exchange code for a token and store it in the current session (created if the
        browser has none). Raises MissingAuthorizationCode before any network call when
        code is empty; TokenExchangeFailed propagates without touching the session.
        """
        if not code:
            raise MissingAuthorizationCode()

        token = self._oauth.exchange_code(code, self._config.redirect_uri)

        record = self._store.set_token(session_id, token) if session_id else None
        if record is None:
            record = self._store.create(token)
        logger.info("Login complete, session holds token %s", token_hint(token.access_token))
        return record

    def end_session(self, session_id: str | None) -> None:
        """Destroy the session. Idempotent; StoreFailure propagates."""
        if session_id:
            self._store.destroy(session_id)
        logger.info("Session ended")

    @property
    def post_login_redirect(self) -> str:
        return self._config.client_origin
