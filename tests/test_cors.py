"""Tests for the CORS origin allowlist."""

import pytest

from chat_proxy.cors import OriginPolicy
from chat_proxy.errors import OriginRejected

policy = OriginPolicy(["http://localhost:3000", "file://"])


@pytest.mark.parametrize("origin", [None, "", "null", "http://localhost:3000", "file://"])
def test_allowed(origin) -> None:
    assert policy.is_allowed(origin)
    policy.check(origin)


@pytest.mark.parametrize(
    "origin",
    ["https://evil.example", "http://localhost:3000/", "http://LOCALHOST:3000", "NULL"],
)
def test_rejected(origin: str) -> None:
    assert not policy.is_allowed(origin)
    with pytest.raises(OriginRejected) as exc_info:
        policy.check(origin)
    assert exc_info.value.status_code == 403
    assert exc_info.value.message == "Origen no permitido"


def test_headers_without_origin() -> None:
    headers = policy.response_headers(None)
    assert "Access-Control-Allow-Origin" not in headers
    assert headers["Access-Control-Allow-Credentials"] == "true"


def test_preflight_headers() -> None:
    headers = policy.preflight_headers("http://localhost:3000")
    assert headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert headers["Access-Control-Allow-Methods"] == "GET,POST,PUT,DELETE,OPTIONS"
    assert headers["Access-Control-Allow-Headers"] == "Content-Type,Authorization"
