# src/logging/__init__.py — v1
"""Contextual logging setup."""
