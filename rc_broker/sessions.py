"""
Session cookie transport. The cookie carries only the session id, signed with
the session secret (HS256 JWT) so a tampered value reads as "no session".
"""
import logging

import jwt
from fastapi import Response

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "rc_broker_sid"
_ALGORITHM = "HS256"


class SessionCookie:
    def __init__(self, secret: str, *, max_age: int, secure: bool):
        self._secret = secret
        self.max_age = max_age
        self.secure = secure

    def encode(self, session_id: str) -> str:
        token = jwt.encode({"sid": session_id}, self._secret, algorithm=_ALGORITHM)
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token

    def decode(self, value: str | None) -> str | None:
        """Session id from a cookie value, or None if missing or not signed by us."""
        if not value:
            return None
        try:
            payload = jwt.decode(value, self._secret, algorithms=[_ALGORITHM])
        except jwt.InvalidTokenError as e:
            logger.debug("Ignoring invalid session cookie: %s", e)
            return None
        sid = payload.get("sid")
        return sid if isinstance(sid, str) and sid else None

    def attach(self, response: Response, session_id: str) -> None:
        """Set (or roll) the cookie; Max-Age restarts on every response."""
        response.set_cookie(
            SESSION_COOKIE_NAME,
            self.encode(session_id),
            max_age=self.max_age,
            httponly=True,
            secure=self.secure,
            samesite="lax",
            path="/",
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(SESSION_COOKIE_NAME, httponly=True, secure=self.secure, samesite="lax", path="/")
