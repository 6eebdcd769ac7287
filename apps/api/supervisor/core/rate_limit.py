"""Per-caller rate limiting for the turn endpoints (slowapi)."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def caller_key(request: Request) -> str:
    """Key limits on the originating host.

    The voice transport and dashboard sit behind a proxy, so the first
    forwarded address wins over the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or get_remote_address(request)


limiter = Limiter(key_func=caller_key, headers_enabled=False)
