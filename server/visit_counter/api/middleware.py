"""HTTP middleware chain.

Requests pass through, outermost first:

    rate limit -> CORS -> request log -> security headers -> error boundary

FastAPI parses JSON bodies itself, so there is no body-parsing layer. The
error boundary sits innermost so that error responses still get security
and CORS headers.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

log = structlog.get_logger()

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def rate_limit(request: Request, call_next: RequestResponseEndpoint) -> Response:
    limiter = request.app.state.rate_limiter
    decision = limiter.hit(_client_key(request))
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.retry_after),
    }
    if not decision.allowed:
        log.warning("rate_limited", client=_client_key(request),
                    path=request.url.path)
        headers["Retry-After"] = str(decision.retry_after)
        return JSONResponse({"error": RATE_LIMIT_MESSAGE}, status_code=429,
                            headers=headers)

    response = await call_next(request)
    response.headers.update(headers)
    return response


async def log_request(request: Request, call_next: RequestResponseEndpoint) -> Response:
    start = time.perf_counter()
    response = await call_next(request)
    log.info("request_completed",
             method=request.method,
             path=request.url.path,
             status=response.status_code,
             duration_ms=round((time.perf_counter() - start) * 1000, 3),
             client=_client_key(request))
    return response


async def security_headers(request: Request, call_next: RequestResponseEndpoint) -> Response:
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


async def error_boundary(request: Request, call_next: RequestResponseEndpoint) -> Response:
    """Render any exception escaping a route as a 500 ``{"error": ...}``."""
    try:
        return await call_next(request)
    except Exception as exc:
        log.error("unhandled_error",
                  method=request.method,
                  path=request.url.path,
                  error_type=type(exc).__name__,
                  exc_info=True)
        message = str(exc) or "Internal Server Error"
        return JSONResponse({"error": message}, status_code=500)


def install_middleware(app: FastAPI) -> None:
    """Add the middleware chain. Starlette runs the last added outermost."""
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_boundary)
    app.add_middleware(BaseHTTPMiddleware, dispatch=security_headers)
    app.add_middleware(BaseHTTPMiddleware, dispatch=log_request)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(BaseHTTPMiddleware, dispatch=rate_limit)
