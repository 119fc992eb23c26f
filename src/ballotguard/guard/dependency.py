"""FastAPI dependency that runs the rate guard ahead of voting endpoints."""

import logging
from typing import Optional

from fastapi import HTTPException, Request

from ballotguard.common.exceptions import RateLimitedError
from ballotguard.common.security import RequestContext, build_request_context

logger = logging.getLogger(__name__)


async def claimed_voter(request: Request) -> Optional[str]:
    """The ``voter_id`` named in a JSON request body, if any."""
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    voter_id = payload.get("voter_id")
    if isinstance(voter_id, str) and voter_id:
        return voter_id
    return None


async def enforce_rate_guard(request: Request) -> RequestContext:
    """Admit or throttle the request; returns its RequestContext.

    Requests are counted per client address and claimed voter, so changing
    request headers does not open a fresh window for the same ballot.
    Internal guard errors let the request through when
    ``rate_guard_fail_open`` is set, otherwise they answer 503.
    """
    from ballotguard.common.config import get_settings
    from ballotguard.deps import get_db, get_rate_guard

    settings = get_settings()
    context = build_request_context(request, actor_id=await claimed_voter(request))
    try:
        guard = get_rate_guard()
        async with get_db().get_session() as session:
            decision = await guard.admit(session, context)
    except Exception:
        if settings.rate_guard_fail_open:
            logger.exception("Rate guard failed; admitting request")
            return context
        logger.exception("Rate guard failed; rejecting request")
        raise HTTPException(status_code=503, detail="Request guard unavailable")

    if not decision.allowed:
        error = RateLimitedError(retry_after=decision.retry_after)
        raise HTTPException(
            status_code=error.status_code,
            detail={
                "code": error.code,
                "message": error.message,
                "retry_after": error.retry_after,
            },
            headers={"Retry-After": str(error.retry_after)},
        )
    return context
