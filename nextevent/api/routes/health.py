from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from nextevent.core.responses import success_response

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> JSONResponse:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service
    health. Also reports how many clients the rate limiter currently tracks,
    which makes unbounded growth visible.

    Returns:
        JSONResponse: envelope whose ``data`` holds ``status`` set to "ok"
            plus rate limiter state.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    return success_response(
        data={
            "status": "ok",
            "rate_limit": {
                "enabled": limiter is not None,
                "tracked_clients": limiter.tracked_clients() if limiter is not None else 0,
            },
        },
        message="Service healthy",
    )
