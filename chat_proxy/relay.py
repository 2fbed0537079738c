"""Chat relay: the hosting-independent core of the proxy.

relay_chat() validates one chat payload, resolves the provider, makes at
most one upstream call and returns the status and body to hand back to the
client. Failures are raised as ProxyError subclasses; the adapters (the
FastAPI app and the serverless handler) turn them into ErrorResponses.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import ValidationError

from chat_proxy.config import ProxyConfig
from chat_proxy.errors import (
    MSG_INVALID_MESSAGES,
    MSG_INVALID_PARAMS,
    ClientInputError,
    UpstreamFailure,
)
from chat_proxy.models import ChatRequest
from chat_proxy.provider import ChatProvider, resolve_provider
from chat_proxy.telemetry import log_relay, logger, truncate

ProviderFactory = Callable[[ProxyConfig], ChatProvider]


@dataclass
class RelayResult:
    """What the adapter should send back on success."""

    status_code: int
    body: bytes
    media_type: str = "application/json"


def parse_chat_request(payload: Any) -> ChatRequest:
    """Validate a decoded request body.

    Raises:
        ClientInputError: If messages are missing or malformed, or a tuning
            parameter has the wrong type.
    """
    if not isinstance(payload, dict):
        raise ClientInputError(MSG_INVALID_MESSAGES)

    try:
        return ChatRequest.model_validate(payload)
    except ValidationError as exc:
        fields = {err["loc"][0] for err in exc.errors() if err["loc"]}
        if "messages" in fields:
            raise ClientInputError(MSG_INVALID_MESSAGES) from None
        raise ClientInputError(MSG_INVALID_PARAMS) from None


async def relay_chat(
    payload: Any,
    config: ProxyConfig,
    provider_factory: Optional[ProviderFactory] = None,
    client: Optional[str] = None,
) -> RelayResult:
    """Relay one chat request to the upstream.

    Request flow:
    1. Validate the payload (no upstream call on failure)
    2. Resolve the provider and its API key
    3. Call the upstream once, bounded by the configured timeout
    4. Relay a 2xx body verbatim, or raise a sanitized UpstreamFailure

    Args:
        payload: The decoded request body.
        config: The loaded proxy configuration.
        provider_factory: Builds the provider; defaults to resolve_provider.
        client: The caller's address, for logging.

    Returns:
        The upstream status and raw body.
    """
    try:
        request = parse_chat_request(payload)
    except ClientInputError as exc:
        log_relay(outcome="validation_error", status=400, error=exc.message, client=client)
        raise

    factory = provider_factory or resolve_provider
    provider = factory(config)
    model = provider.resolve_model(request)

    upstream = await provider.send_chat_completion(request)

    if not upstream.ok:
        logger.error(
            "%s API error: %d - %s",
            provider.name,
            upstream.status_code,
            truncate(upstream.text),
        )
        log_relay(
            outcome="upstream_error",
            model=model,
            status=upstream.status_code,
            client=client,
        )
        raise UpstreamFailure(upstream.status_code)

    log_relay(outcome="success", model=model, status=upstream.status_code, client=client)
    return RelayResult(status_code=upstream.status_code, body=upstream.content)
