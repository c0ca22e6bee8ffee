"""
Error taxonomy for the broker. Routes and exception handlers map these to HTTP
responses; none of them carry a full token.
"""


class BrokerError(Exception):
    """Base class for all broker failures."""


class MissingAuthorizationCode(BrokerError):
    """Callback arrived without a code query parameter (client error, 400)."""

    def __init__(self):
        super().__init__("No authorization code provided in callback.")


class _UpstreamError(BrokerError):
    """Non-2xx response or timeout from an outbound call."""

    def __init__(self, status: int | None, body: str = "", *, timed_out: bool = False):
        self.status = status
        self.body = body
        self.timed_out = timed_out
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.timed_out:
            return f"{self.__class__.__name__}: timeout"
        if self.status is None:
            return f"{self.__class__.__name__}: {self.body or 'request failed'}"
        return f"{self.__class__.__name__}: {self.status}"

    @property
    def outcome(self) -> str:
        """Log label: 'timeout', the status code, or 'error' for transport failures."""
        if self.timed_out:
            return "timeout"
        if self.status is None:
            return "error"
        return str(self.status)


class TokenExchangeFailed(_UpstreamError):
    """Authorization-code exchange failed."""


class AuthorizationRejected(TokenExchangeFailed):
    """Redirect URI does not match the one registered for the authorize redirect."""


class RefreshRejected(_UpstreamError):
    """Authorization server refused the refresh token (or the refresh call failed)."""


class DownstreamError(_UpstreamError):
    """Profile API returned a non-2xx response or timed out."""


class StoreFailure(BrokerError):
    """Session store unavailable; fatal for the current request."""


class NotAuthenticated(BrokerError):
    """Request needs a token the session does not have (401)."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)
        self.message = message


class SessionInvalidated(BrokerError):
    """Guard destroyed the session after a failed refresh; the request must not proceed."""

    def __init__(self, session_id: str, cause: BrokerError):
        super().__init__(f"session invalidated: {cause}")
        self.session_id = session_id
        self.cause = cause


class LoginRequired(BrokerError):
    """Browser-navigated request must be sent back to /login."""
