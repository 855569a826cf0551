# src/api/__init__.py — v1
"""Public entry points: one-shot and streamed generation."""
