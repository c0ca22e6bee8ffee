"""
Protected API routes under /api. Each runs behind the token guard (API mode) and
proxies to the downstream profile API.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from rc_broker.dependencies import Broker, api_context, end_request_session, get_broker
from rc_broker.errors import DownstreamError, NotAuthenticated, StoreFailure
from rc_broker.guard import RequestContext
from rc_broker.profile_proxy import parse_batch_id, parse_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


@router.get("/profile")
def profile(request: Request, ctx: RequestContext = Depends(api_context), broker: Broker = Depends(get_broker)):
    """Full profile of the logged-in user. A downstream 401 ends the session."""
    logger.info("GET: /api/profile")
    if not ctx.authenticated:
        logger.info("/api/profile: No access token found in request session.")
        raise NotAuthenticated()

    try:
        data = broker.profiles.get_profile(ctx.access_token)
    except DownstreamError as e:
        if e.status == 401:
            # Token is dead even though it looked unexpired locally (e.g. revoked)
            logger.warning("/api/profile: downstream rejected token; destroying session")
            try:
                broker.flow.end_session(ctx.session_id)
            except StoreFailure:
                logger.exception("Error destroying session after downstream 401")
                raise
            end_request_session(request)
            return JSONResponse({"error": "Authentication failed or token expired"}, status_code=401)
        logger.error("Error fetching profile data for /api/profile: %s", e.outcome)
        return JSONResponse({"error": "Could not load profile data"}, status_code=500)

    name = data.get("name") if isinstance(data, dict) else None
    logger.info("Success fetching profile data for: %s", name)
    return JSONResponse(data)


@router.get("/batches/{batch_id}/profiles")
def batch_profiles(
    batch_id: str,
    limit: str | None = None,
    ctx: RequestContext = Depends(api_context),
    broker: Broker = Depends(get_broker),
):
    """Profiles in one batch. A downstream 401 is reported but the session is kept."""
    logger.info("GET: /api/batches/%s/profiles", batch_id)
    if not ctx.authenticated:
        logger.info("/batches/:batchId/profiles: No access token found.")
        raise NotAuthenticated()

    parsed_id = parse_batch_id(batch_id)
    if parsed_id is None:
        return JSONResponse({"error": "Invalid Batch ID provided in URL."}, status_code=400)
    # No upper bound: the downstream API enforces its own page size
    parsed_limit = parse_limit(limit)

    try:
        profiles = broker.profiles.get_batch_profiles(parsed_id, parsed_limit, ctx.access_token)
    except DownstreamError as e:
        logger.error("Error fetching profiles for batch %s: %s", parsed_id, e.outcome)
        if e.status == 401:
            return JSONResponse(
                {"error": "Authentication failed or token invalid for fetching profiles."}, status_code=401
            )
        return JSONResponse({"error": f"Could not load profiles for batch {parsed_id}: {e}"}, status_code=500)

    count = len(profiles) if isinstance(profiles, list) else 0
    logger.info("Successfully fetched %s profiles for batch %s.", count, parsed_id)
    return JSONResponse(profiles)
