# src/__init__.py — v1
"""docweaver: multi-backend document generation pipeline."""

from docweaver.version import __version__

__all__ = ["__version__"]
