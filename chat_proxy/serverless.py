"""Function-invocation adapter for serverless hosting.

Translates a platform event (``httpMethod``, ``headers``, ``body``,
``isBase64Encoded``) into a relay call and the result into a
``{statusCode, headers, body}`` mapping. Validation, provider resolution
and error mapping are the same as for the HTTP listener.
"""

import asyncio
import base64
import binascii
import json
from typing import Any, Dict, Optional

from chat_proxy.body import decode_body
from chat_proxy.config import ProxyConfig, load_config
from chat_proxy.cors import OriginPolicy
from chat_proxy.errors import (
    MSG_INTERNAL,
    MSG_INVALID_BODY,
    MSG_METHOD_NOT_ALLOWED,
    ClientInputError,
    ProxyError,
    error_body,
)
from chat_proxy.middleware import SECURITY_HEADERS
from chat_proxy.relay import ProviderFactory, relay_chat
from chat_proxy.telemetry import logger

_config: Optional[ProxyConfig] = None


def get_config() -> ProxyConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def _json_result(
    status: int, body: Dict[str, Any], headers: Dict[str, str]
) -> Dict[str, Any]:
    return {
        "statusCode": status,
        "headers": dict(headers, **{"Content-Type": "application/json"}),
        "body": json.dumps(body, ensure_ascii=False),
    }


def _raw_body(event: Dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body)
        except (binascii.Error, ValueError):
            raise ClientInputError(MSG_INVALID_BODY) from None
    return body.encode("utf-8") if isinstance(body, str) else bytes(body)


def _legacy_message(payload: Any) -> Any:
    """Accept the older ``{"message": "..."}`` single-turn body."""
    if (
        isinstance(payload, dict)
        and "messages" not in payload
        and isinstance(payload.get("message"), str)
        and payload["message"]
    ):
        converted = dict(payload)
        converted["messages"] = [{"role": "user", "content": converted.pop("message")}]
        return converted
    return payload


async def handle_event(
    event: Dict[str, Any],
    config: Optional[ProxyConfig] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> Dict[str, Any]:
    """Run one invocation through the relay.

    Args:
        event: The platform's HTTP event.
        config: Proxy configuration; loaded from the environment if omitted.
        provider_factory: Builds the upstream provider (tests inject a stub).

    Returns:
        A ``{statusCode, headers, body}`` mapping.
    """
    config = config or get_config()
    policy = OriginPolicy(config.allowed_origins)
    request_headers = event.get("headers") or {}
    origin = _header(request_headers, "origin")
    method = (event.get("httpMethod") or "GET").upper()

    headers = dict(SECURITY_HEADERS)

    try:
        policy.check(origin)
        headers.update(policy.response_headers(origin))

        if method == "OPTIONS":
            headers.update(policy.preflight_headers(origin))
            return {"statusCode": 200, "headers": headers, "body": ""}

        if method != "POST":
            return _json_result(405, error_body(MSG_METHOD_NOT_ALLOWED), headers)

        payload = decode_body(
            _raw_body(event),
            _header(request_headers, "content-type") or "application/json",
            config.max_body_bytes,
        )
        result = await relay_chat(
            _legacy_message(payload), config, provider_factory=provider_factory
        )
    except ProxyError as exc:
        headers.update(exc.headers)
        return _json_result(exc.status_code, error_body(exc.message, exc.details), headers)
    except Exception:
        logger.exception("Unhandled error in serverless chat handler")
        return _json_result(500, error_body(MSG_INTERNAL), headers)

    headers["Content-Type"] = result.media_type
    return {
        "statusCode": result.status_code,
        "headers": headers,
        "body": result.body.decode("utf-8", errors="replace"),
    }


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Synchronous entry point for platforms that call ``handler(event, context)``."""
    return asyncio.run(handle_event(event))
