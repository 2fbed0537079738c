"""Configuration loader for the chat proxy.

Reads provider selection, CORS allowlist, rate-limit parameters and server
settings from environment variables. API keys are resolved lazily from the
environment so a missing key surfaces per request, not at startup.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
FALLBACK_MODEL = "llama-3.3-70b-versatile"

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8080",
    "http://127.0.0.1:5500",
    "file://",
]


@dataclass
class ProviderConfig:
    """Configuration for the upstream chat-completion provider."""

    name: str
    base_url: str
    api_key_env: str
    default_model: Optional[str] = None

    @property
    def api_key(self) -> Optional[str]:
        """Resolve the API key from the environment variable."""
        return os.getenv(self.api_key_env) or None


@dataclass
class RateLimitConfig:
    """Rate-limit parameters (per client address)."""

    max_requests: int = 60
    window_seconds: float = 60.0


@dataclass
class ProxyConfig:
    """Top-level proxy configuration."""

    provider: str = "groq"
    groq: ProviderConfig = field(
        default_factory=lambda: ProviderConfig(
            name="groq", base_url=GROQ_BASE_URL, api_key_env="GROQ_API_KEY"
        )
    )
    allowed_origins: List[str] = field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    max_body_bytes: int = 1024 * 1024
    upstream_timeout: float = 30.0
    host: str = "0.0.0.0"
    port: int = 3000
    log_file: Optional[str] = None


def _parse_origins(raw: Optional[str]) -> List[str]:
    if not raw:
        return list(DEFAULT_ALLOWED_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _get_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(
            "Invalid value for {}: {!r}".format(name, raw)
        ) from None


def load_config(environ: Optional[Mapping[str, str]] = None) -> ProxyConfig:
    """Build the proxy configuration from environment variables.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        A fully resolved ProxyConfig instance.

    Raises:
        ValueError: If a numeric setting cannot be parsed.
    """
    env = os.environ if environ is None else environ

    groq = ProviderConfig(
        name="groq",
        base_url=GROQ_BASE_URL,
        api_key_env="GROQ_API_KEY",
        default_model=env.get("GROQ_MODEL") or None,
    )

    rate_limit = RateLimitConfig(
        max_requests=_get_number(env, "RATE_LIMIT_MAX", 60, int),
        window_seconds=_get_number(env, "RATE_LIMIT_WINDOW", 60.0, float),
    )

    return ProxyConfig(
        provider=(env.get("PROVIDER") or "groq").strip(),
        groq=groq,
        allowed_origins=_parse_origins(env.get("ALLOWED_ORIGINS")),
        rate_limit=rate_limit,
        upstream_timeout=_get_number(env, "UPSTREAM_TIMEOUT", 30.0, float),
        host=env.get("HOST") or "0.0.0.0",
        port=_get_number(env, "PORT", 3000, int),
        log_file=env.get("LOG_FILE") or None,
    )
