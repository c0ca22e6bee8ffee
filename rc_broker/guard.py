"""
Token Lifecycle Guard. Runs before every protected route: passes a valid access
token through, refreshes an expired one, or destroys the session when the
refresh fails. Expiry is re-evaluated per request; there is no background
refresh timer.

Two requests racing on the same expired token may both refresh. Each writes its
result with one atomic set_token, so the session always holds a complete
record; the later writer wins.
"""
import logging
from dataclasses import dataclass

from rc_broker.errors import RefreshRejected, SessionInvalidated, StoreFailure, TokenExchangeFailed
from rc_broker.oauth_client import OAuthClient, is_expired
from rc_broker.session_store import SessionRecord, SessionStore
from rc_broker.token_record import token_hint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Per-request view of the session's token. Never persisted."""

    session_id: str | None = None
    access_token: str | None = None
    refreshed: bool = False

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token)


class TokenLifecycleGuard:
    def __init__(self, oauth: OAuthClient, store: SessionStore, *, skew_seconds: int = 0):
        self._oauth = oauth
        self._store = store
        self._skew = skew_seconds

    def ensure_fresh(self, session: SessionRecord | None) -> RequestContext:
        """
        Resolve the request context for session.
        Raises SessionInvalidated after destroying the session if the refresh fails,
        StoreFailure if the store cannot be written or the session cannot be destroyed.
        """
        if session is None:
            return RequestContext()
        token = session.token
        if token is None:
            return RequestContext(session_id=session.session_id)

        if not is_expired(token, self._skew, now=self._store.now()):
            return RequestContext(session_id=session.session_id, access_token=token.access_token)

        logger.info("Token %s expired, attempting refresh...", token_hint(token.access_token))
        try:
            new_token = self._oauth.refresh(token)
        except (RefreshRejected, TokenExchangeFailed) as e:
            self._invalidate(session.session_id, e)
            raise SessionInvalidated(session.session_id, e) from e

        updated = self._store.set_token(session.session_id, new_token)
        if updated is None:
            # Destroyed (logout, expiry) while the refresh was in flight; do not resurrect it
            logger.info("Session ended during refresh; discarding token %s", token_hint(new_token.access_token))
            return RequestContext()
        return RequestContext(session_id=session.session_id, access_token=new_token.access_token, refreshed=True)

    def _invalidate(self, session_id: str, cause: Exception) -> None:
        outcome = getattr(cause, "outcome", "error")
        logger.warning("Refresh failed (%s); destroying session", outcome)
        try:
            self._store.destroy(session_id)
        except StoreFailure:
            logger.error("Error destroying session after refresh failure")
            raise
