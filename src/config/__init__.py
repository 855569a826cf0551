# src/config/__init__.py — v1
"""Deployment settings, backend configuration and stage tables."""
