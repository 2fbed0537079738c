"""Error taxonomy for the chat proxy.

Every failure path ends in one ErrorResponse envelope. Each exception here
carries the HTTP status and the client-facing text; nothing from the
upstream body or the API key ever goes into these messages.
"""

from typing import Dict, Optional

from fastapi.responses import JSONResponse

from chat_proxy.models import ErrorResponse

MSG_INVALID_MESSAGES = "Se requieren mensajes válidos"
MSG_INVALID_PARAMS = "Parámetros de chat inválidos"
MSG_INVALID_BODY = "Cuerpo de la solicitud inválido"
MSG_BODY_TOO_LARGE = "Cuerpo de la solicitud demasiado grande"
MSG_MISSING_KEY = "Falta GROQ_API_KEY en .env"
MSG_ORIGIN_REJECTED = "Origen no permitido"
MSG_RATE_LIMITED = "Demasiadas solicitudes, intenta de nuevo en un minuto"
MSG_TIMEOUT = "Timeout: La solicitud tardó demasiado tiempo"
MSG_UPSTREAM_FAILURE = "Error en el servicio de IA"
MSG_INVALID_API_KEY = "Clave API inválida"
MSG_UPSTREAM_SERVER_ERROR = "Error del servidor"
MSG_NOT_FOUND = "Endpoint no encontrado"
MSG_METHOD_NOT_ALLOWED = "Método no permitido. Solo POST."
MSG_INTERNAL = "Error interno del servidor"


class ProxyError(Exception):
    """Base class for failures that map onto an ErrorResponse."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers or {}
        super().__init__(message)


class ClientInputError(ProxyError):
    """The request body is missing or carries invalid chat fields."""

    status_code = 400


class UnsupportedProvider(ClientInputError):
    """The configured provider has no implementation."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__("Provider {} no soportado".format(provider))


class PayloadTooLarge(ProxyError):
    """The request body exceeds the configured cap."""

    status_code = 413

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(MSG_BODY_TOO_LARGE)


class OriginRejected(ProxyError):
    """The Origin header is not in the CORS allowlist."""

    status_code = 403

    def __init__(self, origin: str) -> None:
        self.origin = origin
        super().__init__(MSG_ORIGIN_REJECTED)


class Misconfiguration(ProxyError):
    """The deployment lacks something the relay needs (e.g. the API key)."""

    status_code = 500


class UpstreamTimeout(ProxyError):
    """The upstream call did not complete before the deadline."""

    status_code = 408

    def __init__(self) -> None:
        super().__init__(MSG_TIMEOUT)


class UpstreamFailure(ProxyError):
    """The upstream answered with a non-2xx status.

    The client receives the same status with a sanitized body.
    """

    def __init__(self, upstream_status: int) -> None:
        details = (
            MSG_INVALID_API_KEY if upstream_status == 401 else MSG_UPSTREAM_SERVER_ERROR
        )
        super().__init__(
            MSG_UPSTREAM_FAILURE, details=details, status_code=upstream_status
        )


def error_body(message: str, details: Optional[str] = None) -> dict:
    """Return the ErrorResponse envelope as a plain dict."""
    return ErrorResponse(message=message, details=details).model_dump(
        exclude_none=True
    )


def error_response(
    status: int,
    message: str,
    details: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    return JSONResponse(
        status_code=status, content=error_body(message, details), headers=headers
    )


def proxy_error_response(exc: ProxyError) -> JSONResponse:
    return error_response(exc.status_code, exc.message, exc.details, exc.headers)
