# src/storage/__init__.py — v1
"""Run snapshot persistence."""
