# tests/unit/imaging/test_unit_jimeng.py — v2
"""Tests for imaging/jimeng.py — submit/poll flow over a mock transport."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from docweaver.imaging.credentials import Credentials
from docweaver.imaging.jimeng import (
    RESULT_ACTION,
    SUBMIT_ACTION,
    JimengImageClient,
    dig,
    extract_image,
    extract_status,
    extract_task_id,
)

CREDS = Credentials(access_key="AKLTtest00000000", secret_key="secret-key-value-0000")


class ScriptedGateway:
    """Answers submit with ``submit`` and each poll with the next ``polls`` item."""

    def __init__(self, submit, polls=()):
        self.submit = submit
        self.polls = list(polls)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        action = request.url.params["Action"]
        if action == SUBMIT_ACTION:
            return _response(self.submit)
        if action == RESULT_ACTION and self.polls:
            return _response(self.polls.pop(0))
        return httpx.Response(404)

    def actions(self) -> list[str]:
        return [r.url.params["Action"] for r in self.requests]


def _response(answer) -> httpx.Response:
    if isinstance(answer, httpx.Response):
        return answer
    if isinstance(answer, Exception):
        raise answer
    return httpx.Response(200, json=answer)


def _client(settings, gateway, sleep=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(gateway))
    return JimengImageClient(CREDS, settings, http_client=http, sleep=sleep or AsyncMock())


# === PAYLOAD HELPERS ===


class TestPayloadHelpers:
    def test_dig(self):
        payload = {"data": {"images": [{"url": "u"}]}}
        assert dig(payload, ("data", "images", 0, "url")) == "u"
        assert dig(payload, ("data", "images", 3, "url")) is None
        assert dig(payload, ("data", "missing")) is None
        assert dig("text", ("data",)) is None

    def test_task_id_variants(self):
        assert extract_task_id({"data": {"task_id": "t1"}}) == "t1"
        assert extract_task_id({"Data": {"TaskId": 42}}) == "42"
        assert extract_task_id({"task_id": "  "}) is None

    def test_image_url_variants(self):
        assert extract_image({"data": {"image_urls": ["", "https://a/1.png"]}}) == "https://a/1.png"
        assert extract_image({"Result": {"ImageUrls": ["https://a/2.png"]}}) == "https://a/2.png"
        assert extract_image({"data": {"images": [{"url": "https://a/3.png"}]}}) == "https://a/3.png"

    def test_image_base64(self):
        assert extract_image({"data": {"binary_data_base64": ["QUJD"]}}) == (
            "data:image/jpeg;base64,QUJD"
        )

    def test_no_image(self):
        assert extract_image({"data": {"status": "generating"}}) is None

    def test_status(self):
        assert extract_status({"data": {"status": "DONE"}}) == "done"
        assert extract_status({}) == ""


# === CLIENT ===


class TestJimengImageClient:
    @pytest.mark.asyncio
    async def test_submit_then_poll(self, settings):
        gateway = ScriptedGateway(
            {"data": {"task_id": "t1"}},
            [
                {"data": {"status": "generating"}},
                {"data": {"status": "done", "image_urls": ["https://img/x.png"]}},
            ],
        )
        sleep = AsyncMock()
        url = await _client(settings, gateway, sleep).generate("a cat", 1000, 1300)

        assert url == "https://img/x.png"
        assert gateway.actions() == [SUBMIT_ACTION, RESULT_ACTION, RESULT_ACTION]
        assert sleep.await_count == 1

        submit_body = json.loads(gateway.requests[0].content)
        assert submit_body["prompt"] == "a cat"
        assert (submit_body["width"], submit_body["height"]) == (1024, 1280)
        assert submit_body["req_key"] == settings.image_req_key

        poll_body = json.loads(gateway.requests[1].content)
        assert poll_body["task_id"] == "t1"

    @pytest.mark.asyncio
    async def test_every_call_is_signed(self, settings):
        gateway = ScriptedGateway(
            {"data": {"task_id": "t1"}}, [{"data": {"image_urls": ["https://img/x.png"]}}]
        )
        await _client(settings, gateway).generate("a cat")
        for request in gateway.requests:
            assert request.headers["Authorization"].startswith(
                "HMAC-SHA256 Credential=AKLTtest00000000/"
            )
            assert request.headers["X-Date"].endswith("Z")
            assert request.url.host == settings.image_host

    @pytest.mark.asyncio
    async def test_image_without_task_id_is_a_failure(self, settings):
        gateway = ScriptedGateway({"data": {"binary_data_base64": ["QUJD"]}})
        assert await _client(settings, gateway).generate("a cat") is None
        assert gateway.actions() == [SUBMIT_ACTION]

    @pytest.mark.asyncio
    async def test_submit_without_task_or_image(self, settings):
        gateway = ScriptedGateway({"code": 0})
        assert await _client(settings, gateway).generate("a cat") is None

    @pytest.mark.asyncio
    async def test_submit_rejected(self, settings):
        gateway = ScriptedGateway(httpx.Response(401, json={"error": "bad signature"}))
        assert await _client(settings, gateway).generate("a cat") is None
        assert gateway.actions() == [SUBMIT_ACTION]

    @pytest.mark.asyncio
    async def test_throttled_poll_is_retried(self, settings):
        gateway = ScriptedGateway(
            {"data": {"task_id": "t1"}},
            [httpx.Response(429), httpx.Response(503), {"Result": {"ImageUrls": ["https://img/y"]}}],
        )
        assert await _client(settings, gateway).generate("a cat") == "https://img/y"

    @pytest.mark.asyncio
    async def test_client_error_on_poll_stops(self, settings):
        gateway = ScriptedGateway(
            {"data": {"task_id": "t1"}},
            [httpx.Response(400), {"data": {"image_urls": ["https://img/never"]}}],
        )
        assert await _client(settings, gateway).generate("a cat") is None
        assert gateway.actions() == [SUBMIT_ACTION, RESULT_ACTION]

    @pytest.mark.asyncio
    async def test_terminal_status_without_image(self, settings):
        gateway = ScriptedGateway(
            {"data": {"task_id": "t1"}},
            [{"data": {"status": "expired"}}, {"data": {"image_urls": ["https://img/never"]}}],
        )
        assert await _client(settings, gateway).generate("a cat") is None
        assert gateway.actions() == [SUBMIT_ACTION, RESULT_ACTION]

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, settings):
        pending = {"data": {"status": "generating"}}
        gateway = ScriptedGateway({"data": {"task_id": "t1"}}, [pending] * 10)
        assert await _client(settings, gateway).generate("a cat") is None
        assert gateway.actions().count(RESULT_ACTION) == settings.image_poll_attempts

    @pytest.mark.asyncio
    async def test_transport_error_returns_none(self, settings):
        gateway = ScriptedGateway(httpx.ConnectError("connection refused"))
        assert await _client(settings, gateway).generate("a cat") is None

    @pytest.mark.asyncio
    async def test_non_json_body(self, settings):
        gateway = ScriptedGateway(httpx.Response(200, text="<html>oops</html>"))
        assert await _client(settings, gateway).generate("a cat") is None
