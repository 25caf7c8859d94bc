"""
Origin allowlist and per-request CORS headers.

Requests are gated on the ``Referer`` (falling back to ``Origin``) header with
a plain prefix match. Preflight ``OPTIONS`` requests always succeed.
"""

from __future__ import annotations

import logging
from typing import Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"


def check_origin(referer: str, allowed_origins: Sequence[str]) -> bool:
    return any(referer.startswith(origin) for origin in allowed_origins)


def cors_headers(
    referer: str, allowed_origins: Sequence[str], default_origin: str
) -> dict[str, str]:
    origin = default_origin
    matched = next((o for o in allowed_origins if referer.startswith(o)), None)
    if matched and matched.startswith("http://"):
        # local dev origins are echoed exactly as configured
        origin = matched
    elif matched:
        # scheme://host[:port] of the referer
        origin = "/".join(referer.split("/")[:3])
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


def request_referer(request: Request) -> str:
    return request.headers.get("referer") or request.headers.get("origin") or ""


class OriginGateMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        allowed_origins: Sequence[str],
        default_origin: str,
        exempt_paths: Sequence[str] = ("/health",),
    ):
        super().__init__(app)
        self.allowed_origins = list(allowed_origins)
        self.default_origin = default_origin
        self.exempt_paths = set(exempt_paths)

    async def dispatch(self, request: Request, call_next) -> Response:
        referer = request_referer(request)
        logger.info("Received %s %s", request.method, request.url.path)

        gated = request.method != "OPTIONS" and request.url.path not in self.exempt_paths
        if gated and not check_origin(referer, self.allowed_origins):
            logger.warning("Rejected request from origin %r", referer)
            return JSONResponse({"error": "Access denied"}, status_code=403)

        headers = cors_headers(referer, self.allowed_origins, self.default_origin)
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
