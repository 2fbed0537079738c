"""CORS origin allowlist.

Requests without an Origin header (native apps, API tools) and pages opened
from disk (which send the literal origin "null") are always allowed. Any
other origin must match an allowlist entry exactly.
"""

from typing import Dict, Iterable, List, Optional

from chat_proxy.errors import OriginRejected

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization"]


class OriginPolicy:
    """Decides whether an Origin may call the proxy and which headers to send."""

    def __init__(self, allowed_origins: Iterable[str]) -> None:
        self.allowed_origins: List[str] = list(allowed_origins)

    def is_allowed(self, origin: Optional[str]) -> bool:
        if not origin or origin == "null":
            return True
        return origin in self.allowed_origins

    def check(self, origin: Optional[str]) -> None:
        """Raise OriginRejected unless the origin is allowed."""
        if not self.is_allowed(origin):
            raise OriginRejected(origin or "")

    def response_headers(self, origin: Optional[str]) -> Dict[str, str]:
        """Headers attached to every response for an allowed origin."""
        headers = {"Access-Control-Allow-Credentials": "true"}
        if origin:
            headers["Access-Control-Allow-Origin"] = origin
        return headers

    def preflight_headers(self, origin: Optional[str]) -> Dict[str, str]:
        """Headers for an OPTIONS preflight answer."""
        headers = self.response_headers(origin)
        headers["Access-Control-Allow-Methods"] = ",".join(ALLOWED_METHODS)
        headers["Access-Control-Allow-Headers"] = ",".join(ALLOWED_HEADERS)
        headers["Vary"] = "Origin, Access-Control-Request-Headers"
        return headers
