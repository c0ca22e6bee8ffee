"""
Login flow routes: GET /login, /logout, /status, /oauth_callback.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from rc_broker.dependencies import (
    Broker,
    bind_session,
    browser_context,
    end_request_session,
    get_broker,
    request_session_id,
)
from rc_broker.errors import MissingAuthorizationCode, StoreFailure, TokenExchangeFailed
from rc_broker.guard import RequestContext

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/login")
def login(broker: Broker = Depends(get_broker)):
    """Start login: redirect to the authorization server."""
    logger.info("GET: /login")
    return RedirectResponse(url=broker.flow.begin_login(), status_code=302)


@router.get("/logout")
def logout(request: Request, broker: Broker = Depends(get_broker)):
    """Destroy the session. Calling it without a session is still a success."""
    logger.info("GET: /logout")
    try:
        broker.flow.end_session(request_session_id(request))
    except StoreFailure:
        logger.exception("Error destroying session")
        return JSONResponse({"error": "Could not log out session."}, status_code=500)
    end_request_session(request)
    return JSONResponse({"message": "Logged out successfully"}, status_code=200)


@router.get("/status")
def status(ctx: RequestContext = Depends(browser_context)):
    """Whether the session holds a (refreshed if needed) token."""
    logger.info("GET: /status")
    return {"loggedIn": ctx.authenticated}


@router.get("/oauth_callback")
def oauth_callback(request: Request, code: str | None = None, broker: Broker = Depends(get_broker)):
    """Exchange the authorization code, store the token, send the browser back to the client."""
    try:
        record = broker.flow.complete_login(request_session_id(request), code)
    except MissingAuthorizationCode:
        logger.info("GET: /oauth_callback without code")
        return PlainTextResponse("Error: No authorization code provided in callback.", status_code=400)
    except TokenExchangeFailed as e:
        logger.error("Access Token Error: %s", e)
        return PlainTextResponse(f"Auth failed: {e}", status_code=500)

    bind_session(request, record.session_id)
    logger.info("GET: /oauth_callback complete")
    return RedirectResponse(url=broker.flow.post_login_redirect, status_code=302)
