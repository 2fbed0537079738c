"""Request body decoding with a hard size cap.

JSON bodies are decoded as-is. Form-encoded bodies understand bracket
notation, so ``messages[0][role]=user&messages[0][content]=Hola`` decodes
to ``{"messages": [{"role": "user", "content": "Hola"}]}``. Bodies with
any other content type decode to an empty object.
"""

import json
import re
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import parse_qsl

from chat_proxy.errors import MSG_INVALID_BODY, ClientInputError, PayloadTooLarge

_BRACKET = re.compile(r"\[([^\[\]]*)\]")
_MAX_FORM_DEPTH = 5


def check_declared_length(content_length: Optional[str], limit: int) -> None:
    """Reject a request early when its Content-Length is over the cap."""
    if content_length is None:
        return
    try:
        declared = int(content_length)
    except ValueError:
        raise ClientInputError(MSG_INVALID_BODY) from None
    if declared > limit:
        raise PayloadTooLarge(limit)


async def read_capped(stream: AsyncIterator[bytes], limit: int) -> bytes:
    """Collect a streamed body, stopping as soon as it passes the cap.

    Chunked requests carry no Content-Length for the early check.
    """
    chunks: List[bytes] = []
    received = 0
    async for chunk in stream:
        received += len(chunk)
        if received > limit:
            raise PayloadTooLarge(limit)
        chunks.append(chunk)
    return b"".join(chunks)


def decode_body(raw: bytes, content_type: Optional[str], limit: int) -> Any:
    """Decode a raw request body.

    Args:
        raw: The body bytes.
        content_type: Value of the Content-Type header.
        limit: Maximum accepted size in bytes.

    Raises:
        PayloadTooLarge: If the body is over the limit.
        ClientInputError: If the body cannot be decoded.
    """
    if len(raw) > limit:
        raise PayloadTooLarge(limit)

    media_type = (content_type or "").split(";")[0].strip().lower()
    if not raw.strip():
        return {}

    if media_type == "application/json" or media_type.endswith("+json"):
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise ClientInputError(MSG_INVALID_BODY) from None

    if media_type == "application/x-www-form-urlencoded":
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ClientInputError(MSG_INVALID_BODY) from None
        return decode_form(text)

    return {}


def decode_form(text: str) -> Dict[str, Any]:
    """Decode a urlencoded string, expanding bracket-notation keys."""
    root: Dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        _assign(root, _split_key(key), value)
    return _listify(root)


def _split_key(key: str) -> List[str]:
    head, bracket, rest = key.partition("[")
    if not bracket or not head:
        return [key]
    parts = _BRACKET.findall(bracket + rest)
    return [head] + parts[:_MAX_FORM_DEPTH]


def _assign(target: Dict[str, Any], parts: List[str], value: str) -> None:
    for part in parts[:-1]:
        if part == "":
            part = str(len(target))
        child = target.setdefault(part, {})
        if not isinstance(child, dict):
            raise ClientInputError(MSG_INVALID_BODY)
        target = child

    last = parts[-1] or str(len(target))
    existing = target.get(last)
    if existing is None:
        target[last] = value
    elif isinstance(existing, list):
        existing.append(value)
    elif isinstance(existing, dict):
        raise ClientInputError(MSG_INVALID_BODY)
    else:
        target[last] = [existing, value]


def _listify(node: Any) -> Any:
    """Turn dicts keyed "0", "1", ... into lists ordered by index."""
    if isinstance(node, list):
        return [_listify(item) for item in node]
    if not isinstance(node, dict):
        return node

    converted = {key: _listify(value) for key, value in node.items()}
    if converted and all(key.isdigit() for key in converted):
        return [converted[key] for key in sorted(converted, key=int)]
    return converted
