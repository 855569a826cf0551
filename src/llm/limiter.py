# src/llm/limiter.py — v1
"""Process-wide per-backend concurrency limiters.

One semaphore per backend id, created lazily on first use and shared by
every client of that backend. A limiter created under a different event
loop is replaced, since asyncio primitives are bound to the loop they
first wait on.
"""

from __future__ import annotations

import asyncio
import threading

MAX_PER_BACKEND = 2

_lock = threading.Lock()
_limiters: dict[str, tuple[asyncio.AbstractEventLoop, asyncio.Semaphore]] = {}


def limit_for(concurrency: int) -> int:
    """Effective in-flight cap: configured concurrency clamped to [1, 2]."""
    return max(1, min(MAX_PER_BACKEND, concurrency))


def limiter_for(provider: str, concurrency: int = MAX_PER_BACKEND) -> asyncio.Semaphore:
    """Return the shared semaphore for a backend (must be called inside a loop)."""
    loop = asyncio.get_running_loop()
    with _lock:
        entry = _limiters.get(provider)
        if entry is None or entry[0] is not loop:
            entry = (loop, asyncio.Semaphore(limit_for(concurrency)))
            _limiters[provider] = entry
        return entry[1]


def reset_limiters() -> None:
    """Drop all limiters (tests, reconfiguration)."""
    with _lock:
        _limiters.clear()
