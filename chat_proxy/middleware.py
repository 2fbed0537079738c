"""Ingress filter chain for the chat proxy.

Each stage is a Starlette middleware. The app registers them so that a
request passes through, in order: security headers, access log, error
boundary, rate limiter, CORS origin check (with the preflight
short-circuit) and the body size check. Stages reject by raising a
ProxyError; ErrorHandlerMiddleware turns it into the response.
"""

import time
from typing import Callable, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from chat_proxy.body import check_declared_length
from chat_proxy.cors import OriginPolicy
from chat_proxy.errors import MSG_INTERNAL, ProxyError, error_response, proxy_error_response
from chat_proxy.limiter import RateLimiter
from chat_proxy.telemetry import access_logger, format_access_line, logger

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "base-uri 'self'",
        "font-src 'self' data: https:",
        "form-action 'self'",
        "frame-ancestors 'self'",
        "img-src 'self' data: https:",
        "object-src 'none'",
        "script-src 'self' 'unsafe-inline'",
        "script-src-attr 'none'",
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "connect-src 'self'",
        "upgrade-insecure-requests",
    ]
)

# Cross-Origin-Embedder-Policy is never sent.
SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def client_key(request: Request) -> str:
    """Identify the caller by source address."""
    return request.client.host if request.client else "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Logs every request in combined log format with its response time."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        path = request.url.path
        if request.url.query:
            path = "{}?{}".format(path, request.url.query)

        access_logger.info(
            format_access_line(
                remote_addr=client_key(request),
                method=request.method,
                path=path,
                http_version=request.scope.get("http_version", "1.1"),
                status=response.status_code,
                content_length=response.headers.get("content-length"),
                referer=request.headers.get("referer"),
                user_agent=request.headers.get("user-agent"),
                duration_ms=duration_ms,
            )
        )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Global error boundary: every failure ends in one ErrorResponse."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except ProxyError as exc:
            logger.warning(
                "Rejected %s %s: %d %s",
                request.method,
                request.url.path,
                exc.status_code,
                exc.message,
            )
            return proxy_error_response(exc)
        except Exception:
            logger.exception(
                "Unhandled error on %s %s", request.method, request.url.path
            )
            return error_response(500, MSG_INTERNAL)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Counts requests under the limited path prefix per client address."""

    def __init__(
        self,
        app: ASGIApp,
        get_limiter: Callable[[], RateLimiter],
        path_prefix: str = "/api/",
    ) -> None:
        super().__init__(app)
        self._get_limiter = get_limiter
        self.path_prefix = path_prefix

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        status = self._get_limiter().check(client_key(request))
        response = await call_next(request)
        response.headers.update(status.headers())
        return response


class CORSOriginMiddleware(BaseHTTPMiddleware):
    """Enforces the origin allowlist and answers preflights."""

    def __init__(self, app: ASGIApp, get_policy: Callable[[], OriginPolicy]) -> None:
        super().__init__(app)
        self._get_policy = get_policy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        policy = self._get_policy()
        origin = request.headers.get("origin")
        policy.check(origin)

        if request.method == "OPTIONS":
            return Response(status_code=200, headers=policy.preflight_headers(origin))

        response = await call_next(request)
        response.headers.update(policy.response_headers(origin))
        response.headers.add_vary_header("Origin")
        return response


class BodyLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared Content-Length is over the cap."""

    def __init__(self, app: ASGIApp, get_limit: Callable[[], int]) -> None:
        super().__init__(app)
        self._get_limit = get_limit

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        check_declared_length(request.headers.get("content-length"), self._get_limit())
        return await call_next(request)
