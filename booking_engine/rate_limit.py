"""SlowAPI limits keyed on the connecting peer."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import get_settings


def client_key(request: Request) -> str:
    """Peer address of the connection; forwarding headers are caller-controlled and ignored."""
    return get_remote_address(request)


limiter = Limiter(
    key_func=client_key,
    default_limits=[get_settings().default_rate_limit],
    enabled=get_settings().rate_limiting_enabled,
)


def rate_limit_handler(_: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}", "code": "RATE_LIMITED", "category": "throttle"},
    )


def apply_rate_limiter(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
