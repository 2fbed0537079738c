"""Tests for request body decoding."""

from typing import AsyncIterator, List

import pytest

from chat_proxy.body import check_declared_length, decode_body, decode_form, read_capped
from chat_proxy.errors import ClientInputError, PayloadTooLarge

LIMIT = 1024


def test_json_body() -> None:
    assert decode_body(b'{"a": 1}', "application/json; charset=utf-8", LIMIT) == {"a": 1}


def test_vendor_json_content_type() -> None:
    assert decode_body(b"[1]", "application/vnd.api+json", LIMIT) == [1]


def test_empty_body_is_empty_object() -> None:
    assert decode_body(b"", "application/json", LIMIT) == {}
    assert decode_body(b"   ", "application/json", LIMIT) == {}


def test_unknown_content_type_ignored() -> None:
    assert decode_body(b'{"messages": []}', "text/plain", LIMIT) == {}
    assert decode_body(b'{"messages": []}', None, LIMIT) == {}


def test_malformed_json() -> None:
    with pytest.raises(ClientInputError, match="inválido"):
        decode_body(b"{nope", "application/json", LIMIT)


def test_invalid_utf8() -> None:
    with pytest.raises(ClientInputError):
        decode_body(b"\xff\xfe", "application/json", LIMIT)


def test_body_over_limit() -> None:
    with pytest.raises(PayloadTooLarge):
        decode_body(b"x" * (LIMIT + 1), "application/json", LIMIT)


def test_declared_length() -> None:
    check_declared_length(None, LIMIT)
    check_declared_length(str(LIMIT), LIMIT)

    with pytest.raises(PayloadTooLarge):
        check_declared_length(str(LIMIT + 1), LIMIT)
    with pytest.raises(ClientInputError):
        check_declared_length("many", LIMIT)


def test_form_bracket_notation() -> None:
    decoded = decode_form(
        "messages%5B1%5D%5Brole%5D=user&messages%5B1%5D%5Bcontent%5D=Hola"
        "&messages%5B0%5D%5Brole%5D=system&messages%5B0%5D%5Bcontent%5D=Hi"
        "&temperature=0.2"
    )
    assert decoded == {
        "messages": [
            {"role": "system", "content": "Hi"},
            {"role": "user", "content": "Hola"},
        ],
        "temperature": "0.2",
    }


def test_form_empty_brackets_append() -> None:
    assert decode_form("tags[]=a&tags[]=b") == {"tags": ["a", "b"]}


def test_form_repeated_plain_key() -> None:
    assert decode_form("a=1&a=2&a=3") == {"a": ["1", "2", "3"]}


def test_form_non_numeric_keys_stay_mapping() -> None:
    assert decode_form("user[name]=ana&user[age]=3") == {
        "user": {"name": "ana", "age": "3"}
    }


def test_form_conflicting_shapes() -> None:
    with pytest.raises(ClientInputError):
        decode_form("a=1&a[b]=2")


class ChunkSource:
    """Async byte stream that records how many chunks were pulled."""

    def __init__(self, chunks: List[bytes]) -> None:
        self.chunks = chunks
        self.pulled = 0

    async def stream(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            self.pulled += 1
            yield chunk


@pytest.mark.asyncio
async def test_read_capped_joins_chunks() -> None:
    source = ChunkSource([b'{"a"', b": 1}"])
    assert await read_capped(source.stream(), LIMIT) == b'{"a": 1}'


@pytest.mark.asyncio
async def test_read_capped_stops_at_limit() -> None:
    source = ChunkSource([b"x" * 600, b"x" * 600, b"x" * 600, b"x" * 600])

    with pytest.raises(PayloadTooLarge):
        await read_capped(source.stream(), LIMIT)

    assert source.pulled == 2
