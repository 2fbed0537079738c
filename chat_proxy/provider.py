"""Provider adapter for the OpenAI-compatible Groq chat-completion API.

The relay only talks to the ChatProvider interface. GroqProvider is the one
implementation; resolve_provider() picks it from configuration and checks
that an API key is available before any network traffic happens.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from chat_proxy.config import FALLBACK_MODEL, ProviderConfig, ProxyConfig
from chat_proxy.errors import MSG_MISSING_KEY, Misconfiguration, UnsupportedProvider, UpstreamTimeout
from chat_proxy.models import ChatRequest, dump_messages

USER_AGENT = "MetricasSocial/1.0"


@dataclass
class UpstreamResponse:
    """Raw upstream answer, kept as bytes so success bodies relay verbatim."""

    status_code: int
    content: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class ChatProvider:
    """Interface for an upstream chat-completion backend."""

    name: str = ""

    def resolve_model(self, request: ChatRequest) -> str:
        raise NotImplementedError

    async def send_chat_completion(self, request: ChatRequest) -> UpstreamResponse:
        raise NotImplementedError


def build_completion_payload(request: ChatRequest, model: str) -> Dict[str, Any]:
    """Build the OpenAI-style JSON body for the upstream call."""
    return {
        "model": model,
        "messages": dump_messages(request.messages),
        "max_tokens": request.clamped_max_tokens,
        "temperature": request.clamped_temperature,
        "stream": False,
    }


class GroqProvider(ChatProvider):
    """Forwards chat requests to Groq's OpenAI-compatible endpoint.

    Args:
        config: Provider configuration (base URL, default model).
        api_key: Bearer token for the upstream.
        timeout: Total deadline in seconds for one upstream call.
        transport: Optional httpx transport, used by tests to stub the upstream.
    """

    def __init__(
        self,
        config: ProviderConfig,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self.name = config.name
        self._api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return "{}/chat/completions".format(self.config.base_url.rstrip("/"))

    def resolve_model(self, request: ChatRequest) -> str:
        return request.model or self.config.default_model or FALLBACK_MODEL

    async def send_chat_completion(self, request: ChatRequest) -> UpstreamResponse:
        """Issue one upstream call bounded by the total deadline.

        Raises:
            UpstreamTimeout: If no complete response arrives in time. The
                in-flight call is cancelled.
            httpx.HTTPError: For any other transport failure.
        """
        payload = build_completion_payload(request, self.resolve_model(request))
        try:
            return await asyncio.wait_for(self._post(payload), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise UpstreamTimeout() from None

    async def _post(self, payload: Dict[str, Any]) -> UpstreamResponse:
        headers = {
            "Authorization": "Bearer {}".format(self._api_key),
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            resp = await client.post(self.url, json=payload, headers=headers)

        return UpstreamResponse(status_code=resp.status_code, content=resp.content)


def resolve_provider(
    config: ProxyConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ChatProvider:
    """Pick the provider named in the configuration.

    Args:
        config: The loaded proxy configuration.
        transport: Optional httpx transport handed to the provider.

    Returns:
        A ready-to-use ChatProvider.

    Raises:
        UnsupportedProvider: If the configured provider is not "groq".
        Misconfiguration: If the provider's API key is not set.
    """
    if config.provider != "groq":
        raise UnsupportedProvider(config.provider)

    api_key = config.groq.api_key
    if not api_key:
        raise Misconfiguration(MSG_MISSING_KEY)

    return GroqProvider(
        config.groq,
        api_key,
        timeout=config.upstream_timeout,
        transport=transport,
    )
