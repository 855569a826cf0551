# src/imaging/sizes.py — v1
"""Output dimension normalization for the image backend."""

from __future__ import annotations

import math

STEP = 64
MIN_DIMENSION = 64
MAX_DIMENSION = 2048
ALLOWED_DIMENSIONS = (1024, 1280, 1536, 2048)


def safe_dimension(value: float | int | None) -> int:
    """Map a requested edge length onto one the backend accepts.

    Rounds to the nearest multiple of 64, clamps to 64..2048, then rounds up
    to the nearest allowed size (never below 1024).
    """
    if value is None or value != value:
        value = ALLOWED_DIMENSIONS[0]
    rounded = int(math.floor(float(value) / STEP + 0.5)) * STEP
    clamped = max(MIN_DIMENSION, min(MAX_DIMENSION, rounded))
    for allowed in ALLOWED_DIMENSIONS:
        if clamped <= allowed:
            return allowed
    return ALLOWED_DIMENSIONS[-1]
