"""Request and response models for the chat proxy."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7
MAX_TOKENS_CEILING = 4000
TEMPERATURE_MIN = 0.0
TEMPERATURE_MAX = 2.0


class ChatMessage(BaseModel):
    """A single message in a chat conversation.

    Unknown keys are kept so they are forwarded to the upstream untouched.
    """

    model_config = ConfigDict(extra="allow")

    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Incoming chat request from the browser client."""

    messages: List[ChatMessage] = Field(..., min_length=1)
    model: Optional[str] = Field(
        default=None, description="Upstream model identifier"
    )
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, description="Clamped to 4000")
    temperature: float = Field(
        default=DEFAULT_TEMPERATURE, description="Clamped to [0, 2]"
    )

    @field_validator("max_tokens", "temperature", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @property
    def clamped_max_tokens(self) -> int:
        return min(self.max_tokens, MAX_TOKENS_CEILING)

    @property
    def clamped_temperature(self) -> float:
        return max(TEMPERATURE_MIN, min(self.temperature, TEMPERATURE_MAX))


class ErrorResponse(BaseModel):
    """Error response envelope shared by every failure path."""

    error: bool = True
    message: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    """Liveness payload for GET /health."""

    status: str = "ok"
    timestamp: str
    provider: str
    version: str


def dump_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """Serialize messages for the upstream, keeping any extra keys."""
    return [m.model_dump() for m in messages]
