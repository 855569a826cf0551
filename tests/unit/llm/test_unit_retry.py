# tests/unit/llm/test_unit_retry.py — v2
"""Tests for llm/retry.py — failure kinds and the backoff loop."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from docweaver.llm.retry import (
    NO_RETRY,
    PERMANENT,
    THROTTLED,
    TIMEOUT,
    UNAVAILABLE,
    Backoff,
    BackendCallFailed,
    call_with_backoff,
    classify_failure,
)


class _ApiError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class RateLimitError(Exception):
    pass


class TestClassifyFailure:
    @pytest.mark.parametrize(
        "status, failure",
        [(429, THROTTLED), (408, TIMEOUT), (504, TIMEOUT), (500, UNAVAILABLE),
         (503, UNAVAILABLE), (400, PERMANENT), (401, PERMANENT)],
    )
    def test_status_code(self, status, failure):
        assert classify_failure(_ApiError(status)) == failure

    def test_sdk_error_name(self):
        assert classify_failure(RateLimitError("slow down")) == THROTTLED

    def test_asyncio_timeout(self):
        assert classify_failure(asyncio.TimeoutError()) == TIMEOUT

    def test_message_fallback(self):
        assert classify_failure(Exception("upstream overloaded")) == UNAVAILABLE

    def test_everything_else_is_permanent(self):
        assert classify_failure(ValueError("bad input")) == PERMANENT


class TestBackoff:
    def test_exponential_without_jitter(self):
        backoff = Backoff(max_retries=3, base_delay_s=1.0, factor=2.0, jitter=False)
        assert [backoff.delay(n) for n in range(3)] == [1.0, 2.0, 4.0]

    def test_jitter_stays_in_band(self):
        backoff = Backoff(max_retries=1, base_delay_s=2.0)
        assert all(1.0 <= backoff.delay(0) <= 3.0 for _ in range(20))


class TestCallWithBackoff:
    @pytest.mark.asyncio
    async def test_success_first_try(self):
        fn = AsyncMock(return_value="ok")
        assert await call_with_backoff(fn, "a", provider="kimi") == "ok"
        fn.assert_awaited_once_with("a")

    @pytest.mark.asyncio
    async def test_throttled_then_succeeds(self):
        fn = AsyncMock(side_effect=[_ApiError(429), "ok"])
        policy = {THROTTLED: Backoff(max_retries=2, base_delay_s=0.0, jitter=False)}
        with patch("docweaver.llm.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await call_with_backoff(fn, provider="kimi", policy=policy) == "ok"
        assert fn.await_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_run_out(self):
        fn = AsyncMock(side_effect=_ApiError(503))
        policy = {UNAVAILABLE: Backoff(max_retries=1, base_delay_s=0.0, jitter=False)}
        with patch("docweaver.llm.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(BackendCallFailed) as exc_info:
                await call_with_backoff(fn, provider="qwen", policy=policy)
        assert exc_info.value.attempts == 2
        assert exc_info.value.failure == UNAVAILABLE
        assert exc_info.value.provider == "qwen"

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self):
        fn = AsyncMock(side_effect=_ApiError(401))
        with patch("docweaver.llm.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(BackendCallFailed) as exc_info:
                await call_with_backoff(fn, provider="kimi")
        assert exc_info.value.failure == PERMANENT
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_retry_policy(self):
        fn = AsyncMock(side_effect=_ApiError(503))
        with pytest.raises(BackendCallFailed):
            await call_with_backoff(fn, provider="kimi", policy=NO_RETRY)
        assert fn.await_count == 1
