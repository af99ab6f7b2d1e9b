from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from caltrack.app.entitlements import AllowListResponse, HttpAllowListClient, SourceUnavailableError

FUNCTION_URL = "https://functions.example.com/checkBetaTesterStatus"


def _call(handler, email: str = "tester@example.com") -> AllowListResponse:
    async def scenario() -> AllowListResponse:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            allow_list = HttpAllowListClient(FUNCTION_URL, client=client, timeout=1.0)
            return await allow_list.check_beta_tester(email, 1_753_617_600_000)

    return asyncio.run(scenario())


def test_posts_email_and_timestamp_and_parses_result():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"result": {"isBetaTester": True, "betaProgram": "internal_testing"}})

    response = _call(handler)

    assert captured["url"] == FUNCTION_URL
    assert captured["body"] == {"data": {"email": "tester@example.com", "timestamp": 1_753_617_600_000}}
    assert response == AllowListResponse(is_beta_tester=True, beta_program="internal_testing")


@pytest.mark.parametrize(
    "payload",
    [
        {"result": {"isBetaTester": "yes", "betaProgram": "internal_testing"}},
        {"result": None},
        ["not", "a", "mapping"],
        {},
    ],
)
def test_malformed_payload_is_negative(payload):
    response = _call(lambda request: httpx.Response(200, json=payload))

    assert response.is_beta_tester is False


def test_non_json_body_is_negative():
    response = _call(lambda request: httpx.Response(200, text="<html>oops</html>"))

    assert response == AllowListResponse()


def test_server_error_is_unavailable():
    with pytest.raises(SourceUnavailableError) as exc:
        _call(lambda request: httpx.Response(503, json={"error": "unavailable"}))

    assert exc.value.source == "allow_list"
    assert "503" in exc.value.reason


def test_transport_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SourceUnavailableError):
        _call(handler)


def test_requires_function_url():
    with pytest.raises(ValueError):
        HttpAllowListClient("")
