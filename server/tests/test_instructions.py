from __future__ import annotations

import asyncio

import httpx
import pytest

from audio_relay.errors import ConfigResolutionError
from audio_relay.services.instructions import InstructionResolver


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _resolver(handler) -> InstructionResolver:  # noqa: ANN001
    return InstructionResolver("https://store.example.com/", transport=httpx.MockTransport(handler))


def test_resolve_returns_instructions():
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, json={"instructions": "You are Atlas, the meeting facilitator."})

    result = _run(_resolver(handler).resolve("m-42"))

    assert result.instructions == "You are Atlas, the meeting facilitator."
    assert requested == ["https://store.example.com/api/meetings/m-42/instructions"]


def test_meeting_id_is_path_quoted():
    resolver = InstructionResolver("https://store.example.com")
    assert resolver.instructions_url("a/b c") == "https://store.example.com/api/meetings/a%2Fb%20c/instructions"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={}),
        httpx.Response(200, json={"instructions": "   "}),
        httpx.Response(200, json={"instructions": None}),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, content=b"<html>oops</html>"),
        httpx.Response(404, json={"error": "not found"}),
        httpx.Response(500),
    ],
)
def test_unusable_store_responses_fail_resolution(response: httpx.Response):
    with pytest.raises(ConfigResolutionError):
        _run(_resolver(lambda request: response).resolve("m-1"))


def test_transport_failure_fails_resolution():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ConfigResolutionError, match="Error fetching instructions"):
        _run(_resolver(handler).resolve("m-1"))


def test_single_attempt_without_retry():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    with pytest.raises(ConfigResolutionError):
        _run(_resolver(handler).resolve("m-1"))
    assert calls == 1


def test_base_url_requires_scheme():
    with pytest.raises(RuntimeError):
        InstructionResolver("store.example.com")
