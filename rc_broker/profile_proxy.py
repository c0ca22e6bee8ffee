"""
Authenticated proxy to the downstream profile API. Uses the access token the
guard resolved; every non-2xx or timed-out call becomes a DownstreamError so
routes can tell 401 apart from everything else.
"""
import logging
import re
from typing import Any

import httpx

from rc_broker.config import BrokerConfig
from rc_broker.errors import DownstreamError, NotAuthenticated
from rc_broker.token_record import token_hint

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 50

_BODY_LIMIT = 500
_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)", re.ASCII)


def parse_leading_int(raw: str | None) -> int | None:
    """Integer prefix of raw ("12abc" -> 12), or None when there is none."""
    if raw is None:
        return None
    m = _LEADING_INT.match(raw)
    return int(m.group(1)) if m else None


def parse_batch_id(raw: str | None) -> int | None:
    """Positive batch id, or None when raw is not one."""
    value = parse_leading_int(raw)
    if value is None or value <= 0:
        return None
    return value


def parse_limit(raw: str | None) -> int:
    """Caller's limit taken as-is; missing, unparseable or zero falls back to the default."""
    return parse_leading_int(raw) or DEFAULT_BATCH_LIMIT


def _headers(access_token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
    }


class ProfileClient:
    def __init__(self, config: BrokerConfig, http: httpx.Client):
        self._config = config
        self._http = http

    def get_profile(self, access_token: str) -> Any:
        """GET /profiles/me for the token's owner."""
        return self._get("/profiles/me", access_token, label="getProfile")

    def get_batch_profiles(self, batch_id: int, limit: int | None, access_token: str) -> Any:
        """GET /profiles?batch_id=..&limit=.. ; batch_id must be positive, limit defaults to 50."""
        if not isinstance(batch_id, int) or batch_id <= 0:
            raise ValueError("batch_id must be a positive integer")
        if limit is None:
            limit = DEFAULT_BATCH_LIMIT
        return self._get(
            "/profiles",
            access_token,
            params={"batch_id": batch_id, "limit": limit},
            label="getBatchProfiles",
        )

    def _get(self, path: str, access_token: str, *, params: dict | None = None, label: str) -> Any:
        if not access_token:
            raise NotAuthenticated()
        url = f"{self._config.api_base_url}{path}"
        logger.debug("%s with token %s", label, token_hint(access_token))
        try:
            r = self._http.get(url, params=params, headers=_headers(access_token), timeout=self._config.http_timeout)
        except httpx.TimeoutException:
            logger.error("%s failed (timeout) for token %s", label, token_hint(access_token))
            raise DownstreamError(None, "profile API timed out", timed_out=True) from None
        except httpx.HTTPError as e:
            logger.error("%s failed (error) for token %s: %s", label, token_hint(access_token), e)
            raise DownstreamError(None, str(e)) from e

        if not r.is_success:
            body = r.text[:_BODY_LIMIT]
            logger.error("%s failed (%s): %s", label, r.status_code, body)
            raise DownstreamError(r.status_code, body)
        try:
            return r.json()
        except ValueError as e:
            logger.error("%s returned a non-JSON body", label)
            raise DownstreamError(r.status_code, "invalid JSON from profile API") from e
