# src/llm/retry.py — v3
"""Backoff for whole-response chat calls.

Only transient backend failures are retried: throttling (429), timeouts and
temporary unavailability (5xx). Everything else fails on the first attempt
so the stage can move on to its next backend.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

THROTTLED = "throttled"
TIMEOUT = "timeout"
UNAVAILABLE = "unavailable"
PERMANENT = "permanent"


class BackendCallFailed(Exception):
    """A chat call failed and no further attempt is allowed."""

    def __init__(self, provider: str, failure: str, attempts: int, last_error: Exception):
        self.provider = provider
        self.failure = failure
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{provider}: {failure} after {attempts} attempt(s): {last_error}"
        )


@dataclass(frozen=True)
class Backoff:
    """How often and how patiently one kind of failure is retried."""

    max_retries: int
    base_delay_s: float
    factor: float = 2.0
    jitter: bool = True

    def delay(self, retry: int) -> float:
        delay = self.base_delay_s * (self.factor ** retry)
        if self.jitter:
            delay *= 0.5 + random.random()  # noqa: S311
        return delay


DEFAULT_BACKOFF: dict[str, Backoff] = {
    THROTTLED: Backoff(max_retries=3, base_delay_s=2.0),
    TIMEOUT: Backoff(max_retries=1, base_delay_s=1.0, factor=1.0),
    UNAVAILABLE: Backoff(max_retries=2, base_delay_s=3.0),
}

# Fail fast: the next backend in the chain is the retry.
NO_RETRY: dict[str, Backoff] = {}


def classify_failure(error: Exception) -> str:
    """Map an SDK or transport exception onto a failure kind.

    The OpenAI and Anthropic SDKs expose ``status_code`` on their API errors;
    anything else is judged from its type name and message.
    """
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        if status == 429:
            return THROTTLED
        if status in (408, 504):
            return TIMEOUT
        if status >= 500:
            return UNAVAILABLE
        return PERMANENT

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return TIMEOUT
    name = type(error).__name__.lower()
    msg = str(error).lower()
    if "ratelimit" in name or "429" in msg or "rate limit" in msg:
        return THROTTLED
    if "timeout" in name or "timed out" in msg:
        return TIMEOUT
    if "connection" in name or any(code in msg for code in ("502", "503", "overloaded")):
        return UNAVAILABLE
    return PERMANENT


async def call_with_backoff(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    provider: str,
    policy: dict[str, Backoff] | None = None,
    **kwargs: Any,
) -> Any:
    """Await ``fn(*args, **kwargs)``, retrying transient failures.

    Raises:
        BackendCallFailed: On a permanent failure or once retries run out.
    """
    policy = DEFAULT_BACKOFF if policy is None else policy
    attempts = 0

    while True:
        attempts += 1
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            failure = classify_failure(e)
            backoff = policy.get(failure)
            if backoff is None or attempts > backoff.max_retries:
                raise BackendCallFailed(provider, failure, attempts, e) from e

            delay = backoff.delay(attempts - 1)
            logger.warning(
                "%s %s (attempt %d/%d), retrying in %.1fs",
                provider, failure, attempts, backoff.max_retries + 1, delay,
            )
            await asyncio.sleep(delay)
