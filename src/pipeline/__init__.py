# src/pipeline/__init__.py — v1
"""Stage orchestration, fan-out strategies and document assembly."""
