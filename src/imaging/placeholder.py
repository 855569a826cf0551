# src/imaging/placeholder.py — v1
"""Self-contained SVG placeholder used whenever an image cannot be produced."""

from __future__ import annotations

from urllib.parse import quote
from xml.sax.saxutils import escape

MAX_TITLE_CHARS = 40

_SVG_TEMPLATE = (
    "<svg xmlns='http://www.w3.org/2000/svg' width='800' height='450'>"
    "<rect width='100%' height='100%' fill='#eef2f7'/>"
    "<text x='50%' y='50%' dominant-baseline='middle' text-anchor='middle' "
    "font-family='sans-serif' font-size='28' fill='#556'>{label}</text>"
    "</svg>"
)


def placeholder_image(title: str | None) -> str:
    """Return ``data:image/svg+xml;utf8,...`` showing the (truncated) title."""
    label = escape((title or "Image")[:MAX_TITLE_CHARS], {"'": "&apos;", '"': "&quot;"})
    svg = _SVG_TEMPLATE.format(label=label)
    return "data:image/svg+xml;utf8," + quote(svg)
