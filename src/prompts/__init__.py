# src/prompts/__init__.py — v1
"""Editable prompt templates."""
