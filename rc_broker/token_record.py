"""
Token Record: the OAuth access/refresh pair plus absolute expiry, embedded in a
session record. Immutable; a refresh produces a new record.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

DEFAULT_TOKEN_TYPE = "Bearer"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite and naive ISO strings drop tzinfo; stored instants are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def token_hint(token: str | None) -> str:
    """First 5 characters for logs; never log a whole token."""
    if not token:
        return "NONE"
    return f"{token[:5]}..."


@dataclass(frozen=True)
class TokenRecord:
    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = DEFAULT_TOKEN_TYPE
    scope: str = field(default="", compare=False)

    def __post_init__(self):
        if not self.access_token:
            raise ValueError("access_token must be non-empty")
        if not isinstance(self.expires_at, datetime):
            raise ValueError("expires_at must be a datetime")
        object.__setattr__(self, "expires_at", _as_utc(self.expires_at))

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        *,
        now: datetime | None = None,
        previous: "TokenRecord | None" = None,
    ) -> "TokenRecord":
        """
        Build a record from a token endpoint JSON body. expires_in is converted to an
        absolute expires_at. When previous is given (refresh grant) and the response
        omits refresh_token, the previous refresh token is kept.
        Raises ValueError for a body without access_token or expires_in.
        """
        if not isinstance(data, dict):
            raise ValueError("token response must be a JSON object")
        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ValueError("token response has no access_token")
        expires_in = data.get("expires_in")
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError, OverflowError):
            raise ValueError("token response has no valid expires_in") from None

        refresh_token = data.get("refresh_token") or ""
        if not refresh_token and previous is not None:
            refresh_token = previous.refresh_token
        issued = now or _utc_now()
        try:
            expires_at = issued + timedelta(seconds=expires_in)
        except OverflowError:
            raise ValueError("token response has an out-of-range expires_in") from None
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_at=expires_at,
            scope=data.get("scope") or "",
        )

    def to_dict(self) -> dict[str, str]:
        """Serializable form stored inside the session record."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat(),
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenRecord":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_at=datetime.fromisoformat(data["expires_at"]),
            scope=data.get("scope") or "",
        )
