"""FastAPI application for the hardened chat proxy.

Provides POST /api/chat, which relays a browser chat conversation to the
Groq chat-completion API, plus GET /health and static files from the
working directory.

Ingress filter chain (outermost first):
1. Security headers on every response
2. Access log in combined format
3. Error boundary turning failures into ErrorResponses
4. Rate limit on /api/ paths
5. CORS origin allowlist and preflight short-circuit
6. Body size cap
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Scope

from chat_proxy.body import decode_body, read_capped
from chat_proxy.config import ProxyConfig, load_config
from chat_proxy.cors import OriginPolicy
from chat_proxy.errors import MSG_NOT_FOUND, ProxyError, error_response, proxy_error_response
from chat_proxy.limiter import RateLimiter
from chat_proxy.middleware import (
    AccessLogMiddleware,
    BodyLimitMiddleware,
    CORSOriginMiddleware,
    ErrorHandlerMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    client_key,
)
from chat_proxy.models import HealthResponse
from chat_proxy.provider import ChatProvider, resolve_provider
from chat_proxy.relay import relay_chat
from chat_proxy.telemetry import logger, setup_logging

load_dotenv()

VERSION = "1.0.0"
STATIC_DIR = os.getenv("STATIC_DIR", ".")

_config: Optional[ProxyConfig] = None
_limiter: Optional[RateLimiter] = None
_origin_policy: Optional[OriginPolicy] = None
# Test hook: route upstream traffic through a stub transport.
_upstream_transport: Optional[httpx.AsyncBaseTransport] = None


def get_config() -> ProxyConfig:
    """Return the loaded proxy configuration (lazy-init)."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_limiter() -> RateLimiter:
    """Return the rate limiter (lazy-init from config)."""
    global _limiter
    if _limiter is None:
        cfg = get_config()
        _limiter = RateLimiter(
            max_requests=cfg.rate_limit.max_requests,
            window_seconds=cfg.rate_limit.window_seconds,
        )
    return _limiter


def get_origin_policy() -> OriginPolicy:
    """Return the CORS allowlist, read once from config."""
    global _origin_policy
    if _origin_policy is None:
        _origin_policy = OriginPolicy(get_config().allowed_origins)
    return _origin_policy


def get_max_body_bytes() -> int:
    return get_config().max_body_bytes


def build_provider(config: ProxyConfig) -> ChatProvider:
    return resolve_provider(config, transport=_upstream_transport)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Initialize config, logging, limiter and CORS allowlist on startup."""
    cfg = get_config()
    setup_logging(cfg.log_file)
    get_limiter()
    policy = get_origin_policy()
    logger.info("Chat proxy ready on http://localhost:%d", cfg.port)
    logger.info("Provider: %s", cfg.provider)
    logger.info("CORS allowed for: %s", ", ".join(policy.allowed_origins))
    yield


class PublicFiles(StaticFiles):
    """Static files that never expose dotfiles such as .env."""

    async def get_response(self, path: str, scope: Scope) -> Response:
        parts = path.replace("\\", "/").split("/")
        if any(part.startswith(".") and part not in (".", "") for part in parts):
            raise StarletteHTTPException(status_code=404)
        return await super().get_response(path, scope)


app = FastAPI(
    title="Hardened Chat Proxy",
    version=VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

app.add_middleware(BodyLimitMiddleware, get_limit=get_max_body_bytes)
app.add_middleware(CORSOriginMiddleware, get_policy=get_origin_policy)
app.add_middleware(RateLimitMiddleware, get_limiter=get_limiter)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(AccessLogMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


async def read_json_body(request: Request):
    """Decode the request body (JSON or form-encoded), capped in size."""
    limit = get_config().max_body_bytes
    raw = await read_capped(request.stream(), limit)
    return decode_body(raw, request.headers.get("content-type"), limit)


@app.post("/api/chat", response_model=None)
async def chat(request: Request, payload=Depends(read_json_body)) -> Response:
    """Relay a chat conversation to the upstream provider.

    On success the upstream status and body are passed through unchanged.
    """
    result = await relay_chat(
        payload,
        get_config(),
        provider_factory=build_provider,
        client=client_key(request),
    )
    return Response(
        content=result.body,
        status_code=result.status_code,
        media_type=result.media_type,
    )


@app.get("/health")
async def health() -> HealthResponse:
    """Liveness probe. Does not contact the upstream."""
    return HealthResponse(
        timestamp=datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z"),
        provider=get_config().provider,
        version=VERSION,
    )


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    """Convert relay failures into the error envelope."""
    if exc.status_code >= 500:
        logger.error("Error on %s: %s", request.url.path, exc.message)
    return proxy_error_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Unmatched routes and unknown static files become a 404 envelope."""
    if exc.status_code in (404, 405):
        return error_response(404, MSG_NOT_FOUND)
    return error_response(exc.status_code, str(exc.detail))


# Lowest priority: anything not matched by a route above.
app.mount("/", PublicFiles(directory=STATIC_DIR), name="static")


def serve() -> None:
    """Start the uvicorn server using environment configuration."""
    cfg = get_config()
    setup_logging(cfg.log_file)
    uvicorn.run(app, host=cfg.host, port=cfg.port, reload=False)


if __name__ == "__main__":
    serve()
