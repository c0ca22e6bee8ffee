"""
RC Auth broker: OAuth2 authorization-code login on behalf of the browser,
server-held session tokens with transparent refresh, proxied profile API.
GET /, /health, /login, /logout, /status, /oauth_callback, /api/profile,
/api/batches/{batch_id}/profiles. Port 3000 by default.
"""
import html
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from rc_broker.api_routes import router as api_router
from rc_broker.auth_routes import router as auth_router
from rc_broker.config import BrokerConfig
from rc_broker.dependencies import Broker, current_session
from rc_broker.errors import LoginRequired, NotAuthenticated, StoreFailure
from rc_broker.session_store import SessionRecord, SessionStore, build_store
from rc_broker.sessions import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)


def create_app(
    config: BrokerConfig | None = None,
    *,
    store: SessionStore | None = None,
    http_client: httpx.Client | None = None,
) -> FastAPI:
    """
    Build the app. config defaults to BrokerConfig.from_env(); store and http_client
    are built from config unless injected (tests pass an in-memory store and an
    httpx.MockTransport-backed client).
    """
    config = config or BrokerConfig.from_env()
    owns_http = http_client is None
    http = http_client if http_client is not None else httpx.Client(timeout=config.http_timeout)
    broker = Broker.build(config, store if store is not None else build_store(config), http)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Drop expired sessions on startup; release connections on shutdown."""
        removed = await run_in_threadpool(broker.store.purge_expired)
        if removed:
            logger.info("Purged %s expired sessions", removed)
        logger.info("RC auth running against %s", config.oauth_host)
        yield
        if owns_http:
            http.close()
        broker.store.close()

    app = FastAPI(title="RC Auth Broker", version="1.0.0", lifespan=lifespan)
    app.state.broker = broker

    @app.middleware("http")
    async def session_cookie(request: Request, call_next):
        """Decode the session cookie before routing; roll or clear it on the way out."""
        request.state.session_id = broker.cookie.decode(request.cookies.get(SESSION_COOKIE_NAME))
        request.state.session_ended = False
        response = await call_next(request)
        if request.state.session_ended:
            broker.cookie.clear(response)
        elif request.state.session_id:
            broker.cookie.attach(response, request.state.session_id)
        return response

    # Added last so it wraps the session middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.client_origin],
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotAuthenticated)
    async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
        return JSONResponse({"error": exc.message}, status_code=401)

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):
        return RedirectResponse(url="/login", status_code=302)

    @app.exception_handler(StoreFailure)
    async def store_failure_handler(request: Request, exc: StoreFailure):
        logger.error("Session store failure on %s: %s", request.url.path, exc)
        return JSONResponse({"error": "Session store unavailable"}, status_code=500)

    app.include_router(auth_router, tags=["auth"])
    app.include_router(api_router, tags=["api"])

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "rc_broker"}

    @app.get("/", response_class=HTMLResponse)
    def home(session: SessionRecord | None = Depends(current_session)):
        """Minimal landing page; shows whether the session holds a token."""
        if session is not None and session.token is not None:
            return HTMLResponse(
                """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>RC Auth</title></head>
<body>
  <h1>RC Auth</h1>
  <p>Session detected. <a href="/api/profile">Profile</a></p>
  <form action="/logout" method="get"><button>Logout</button></form>
</body>
</html>"""
            )
        return HTMLResponse(
            f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>RC Auth</title></head>
<body>
  <h1>RC Auth</h1>
  <p>No active session. <a href="/login">Log in</a></p>
  <p>Client: {html.escape(config.client_origin)}</p>
</body>
</html>"""
        )

    return app


if __name__ == "__main__":
    import uvicorn

    settings = BrokerConfig.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "rc_broker.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=settings.port,
    )
