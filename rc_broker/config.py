"""
Broker configuration. Built once at startup from the environment and passed to
every component explicitly; nothing here reads os.environ at import time.
No secrets in this file; credentials come from env.
"""
import os
from collections.abc import Mapping
from dataclasses import dataclass

# Session max age: sliding idle lifetime and cookie Max-Age (30 days, matches refresh lifetime)
SESSION_MAX_AGE_SECONDS = 30 * 24 * 60 * 60

# Hard cap on a session's total life regardless of activity
DEFAULT_SESSION_ABSOLUTE_LIFETIME_SECONDS = 90 * 24 * 60 * 60

# Authorization server paths (relative to RC_OAUTH_HOST)
AUTHORIZE_PATH = "/oauth/authorize"
TOKEN_PATH = "/oauth/token"

DEFAULT_SESSION_STORE_URL = "sqlite:///./rc_broker_sessions.db"

_REQUIRED = (
    "RC_OAUTH_HOST",
    "RC_API_BASE_URL",
    "CLIENT_ORIGIN",
    "SESSION_SECRET",
    "OAUTH_REDIRECT_URI",
)


class ConfigError(RuntimeError):
    """A required setting is missing or malformed."""


@dataclass(frozen=True)
class BrokerConfig:
    oauth_host: str
    client_id: str
    client_secret: str
    # Must be byte-identical between the authorize redirect and the code exchange
    redirect_uri: str
    api_base_url: str
    client_origin: str
    session_secret: str
    production: bool = False
    session_store_url: str = DEFAULT_SESSION_STORE_URL
    session_max_age: int = SESSION_MAX_AGE_SECONDS
    session_absolute_lifetime: int = DEFAULT_SESSION_ABSOLUTE_LIFETIME_SECONDS
    http_timeout: float = 10.0
    expiry_skew_seconds: int = 0
    port: int = 3000
    log_level: str = "INFO"

    @property
    def authorize_url(self) -> str:
        return f"{self.oauth_host}{AUTHORIZE_PATH}"

    @property
    def token_url(self) -> str:
        return f"{self.oauth_host}{TOKEN_PATH}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "BrokerConfig":
        """Read settings from environ (default os.environ). Raises ConfigError for missing required values."""
        env = os.environ if environ is None else environ
        for name in _REQUIRED:
            if not env.get(name, "").strip():
                raise ConfigError(f"{name} env is missing.")

        return cls(
            oauth_host=env["RC_OAUTH_HOST"].strip().rstrip("/"),
            client_id=env.get("RC_OAUTH_CLIENT_ID", ""),
            client_secret=env.get("RC_OAUTH_CLIENT_SECRET", ""),
            redirect_uri=env["OAUTH_REDIRECT_URI"].strip(),
            api_base_url=env["RC_API_BASE_URL"].strip().rstrip("/"),
            client_origin=env["CLIENT_ORIGIN"].strip().rstrip("/"),
            session_secret=env["SESSION_SECRET"],
            production=env.get("BROKER_ENV", "").strip().lower() == "production",
            session_store_url=env.get("SESSION_STORE_URL", "").strip() or DEFAULT_SESSION_STORE_URL,
            session_absolute_lifetime=_int(
                env, "SESSION_ABSOLUTE_LIFETIME_SECONDS", DEFAULT_SESSION_ABSOLUTE_LIFETIME_SECONDS
            ),
            http_timeout=_float(env, "HTTP_TIMEOUT_SECONDS", 10.0),
            expiry_skew_seconds=_int(env, "TOKEN_EXPIRY_SKEW_SECONDS", 0),
            port=_int(env, "PORT", 3000),
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}.") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive.")
    return value
