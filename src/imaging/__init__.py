# src/imaging/__init__.py — v1
"""Signed text-to-image backend and placeholder images."""
