# src/llm/adapters/__init__.py — v1
"""SDK-backed chat adapters."""
