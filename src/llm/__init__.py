# src/llm/__init__.py — v1
"""Chat backends: uniform client, retry, concurrency limits, adapters."""
