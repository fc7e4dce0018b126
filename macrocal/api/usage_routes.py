"""Public API routes behind the per-credential rate limiter."""

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from macrocal.shared.utils import setup_logger

logger = setup_logger("api.usage")

router = APIRouter(prefix="/api/v1", tags=["API"])

USAGE_ENDPOINT = "/api/v1/usage"


@router.get("/usage")
def get_usage(
    request: Request,
    x_api_key: str | None = Header(default=None),
    x_plan: str = Header(default="Free"),
):
    """Report the caller's rate-limit state and count this request against it."""
    if not x_api_key:
        return JSONResponse(status_code=401, content={"error": "Missing API key"})

    limiter = request.app.state.rate_limiter
    result = limiter.check_limit(x_api_key, x_plan)
    headers = result.headers()

    if not result.allowed:
        headers["Retry-After"] = str(limiter.window_seconds)
        logger.warning("Rate limit exceeded for %s (%s plan)", x_api_key, x_plan)
        return JSONResponse(
            status_code=429,
            content={
                "error": "Rate limit exceeded",
                "limit": result.limit,
                "resetAt": result.reset_at,
            },
            headers=headers,
        )

    limiter.record_request(x_api_key, USAGE_ENDPOINT)
    return JSONResponse(
        content={
            "plan": x_plan,
            "limit": result.limit,
            "remaining": result.remaining,
            "resetAt": result.reset_at,
        },
        headers=headers,
    )
