"""
OAuth2 authorization-code client: authorize URL, code exchange, refresh grant.
No session knowledge; callers decide what to do with the returned TokenRecord.
"""
import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx

from rc_broker.config import BrokerConfig
from rc_broker.errors import AuthorizationRejected, RefreshRejected, TokenExchangeFailed
from rc_broker.token_record import TokenRecord, token_hint

logger = logging.getLogger(__name__)

# Error bodies are logged and carried on exceptions; keep them short
_BODY_LIMIT = 500


def is_expired(token: TokenRecord, skew_seconds: int = 0, now: datetime | None = None) -> bool:
    """True when expires_at, pulled forward by skew_seconds, is at or before now. No network call."""
    current = now or datetime.now(timezone.utc)
    return token.expires_at - timedelta(seconds=skew_seconds) <= current


def build_authorize_url(*, authorize_url: str, client_id: str, redirect_uri: str) -> str:
    """Authorization server redirect with response_type=code and the fixed redirect_uri."""
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
    }
    return f"{authorize_url}?{urlencode(params)}"


class OAuthClient:
    def __init__(self, config: BrokerConfig, http: httpx.Client):
        self._config = config
        self._http = http

    def authorize_url(self) -> str:
        return build_authorize_url(
            authorize_url=self._config.authorize_url,
            client_id=self._config.client_id,
            redirect_uri=self._config.redirect_uri,
        )

    def exchange_code(self, code: str, redirect_uri: str) -> TokenRecord:
        """
        authorization_code grant. redirect_uri has to match the one sent to the
        authorize endpoint exactly; a mismatch fails before any network call.
        """
        if redirect_uri != self._config.redirect_uri:
            logger.warning("Code exchange refused: redirect_uri does not match the registered one")
            raise AuthorizationRejected(None, "redirect_uri mismatch")

        try:
            r = self._post_token({"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri})
        except httpx.TimeoutException:
            logger.error("Code exchange failed: timeout after %ss", self._config.http_timeout)
            raise TokenExchangeFailed(None, "token endpoint timed out", timed_out=True) from None
        except httpx.HTTPError as e:
            logger.error("Code exchange failed: %s", e)
            raise TokenExchangeFailed(None, str(e)) from e

        if not r.is_success:
            body = r.text[:_BODY_LIMIT]
            logger.error("Code exchange failed (%s): %s", r.status_code, body)
            raise TokenExchangeFailed(r.status_code, body)

        try:
            token = TokenRecord.from_token_response(r.json())
        except ValueError as e:
            logger.error("Code exchange returned a malformed token response: %s", e)
            raise TokenExchangeFailed(r.status_code, str(e)) from e

        logger.info("Code exchanged for access token %s", token_hint(token.access_token))
        return token

    def refresh(self, token: TokenRecord) -> TokenRecord:
        """refresh_token grant. Any failure, including timeouts, is a RefreshRejected."""
        if not token.refresh_token:
            raise RefreshRejected(None, "no refresh token")

        try:
            r = self._post_token({"grant_type": "refresh_token", "refresh_token": token.refresh_token})
        except httpx.TimeoutException:
            logger.warning(
                "Refresh for %s failed: timeout after %ss", token_hint(token.access_token), self._config.http_timeout
            )
            raise RefreshRejected(None, "token endpoint timed out", timed_out=True) from None
        except httpx.HTTPError as e:
            logger.warning("Refresh for %s failed: %s", token_hint(token.access_token), e)
            raise RefreshRejected(None, str(e)) from e

        if not r.is_success:
            body = r.text[:_BODY_LIMIT]
            logger.warning("Refresh for %s rejected (%s): %s", token_hint(token.access_token), r.status_code, body)
            raise RefreshRejected(r.status_code, body)

        try:
            new_token = TokenRecord.from_token_response(r.json(), previous=token)
        except ValueError as e:
            logger.warning("Refresh returned a malformed token response: %s", e)
            raise RefreshRejected(r.status_code, str(e)) from e

        logger.info(
            "Refreshed access token %s -> %s", token_hint(token.access_token), token_hint(new_token.access_token)
        )
        return new_token

    def _post_token(self, data: dict[str, str]) -> httpx.Response:
        return self._http.post(
            self._config.token_url,
            data=data,
            auth=(self._config.client_id, self._config.client_secret),
            headers={"Accept": "application/json"},
            timeout=self._config.http_timeout,
        )
