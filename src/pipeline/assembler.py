# src/pipeline/assembler.py — v1
"""Document assembler: structural repairs applied to the final markdown.

Repairs run in a fixed order, each on the whole current string:
  1. sectioning   (rebuild from outline + drafts when no ## heading exists)
  2. appendix     (image prompt listing)
  3. images       (inline under matching ## headings, else trailing gallery)
  4. title        (ensure a top-level # heading)

A repair that raises leaves the document as it was.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Callable, Sequence

from docweaver.core.models import DraftSection, GeneratedImage, ImagePrompt, Outline
from docweaver.imaging.placeholder import placeholder_image

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "# Final draft"
OVERVIEW_HEADING = "## Overview"
APPENDIX_HEADING = "### Appendix: Image Prompts"
GALLERY_HEADING = "## Image Preview"

_H2 = re.compile(r"^##\s+")
_H1 = re.compile(r"^\s*#\s+\S")
_ANY_HEADING = re.compile(r"^\s*#{1,6}\s+")
_LEADING_H1 = re.compile(r"^\s*#\s+[^\n]*\n?")
_HAS_H2 = re.compile(r"(?m)^##\s+")
_HAS_H1 = re.compile(r"(?m)^\s*#\s+")


def normalize_heading(text: str) -> str:
    """Compatibility-fold, strip marks/punctuation/symbols/whitespace, lower-case."""
    folded = unicodedata.normalize("NFKD", unicodedata.normalize("NFKC", text or ""))
    kept = [
        ch for ch in folded
        if not ch.isspace() and unicodedata.category(ch)[0] not in ("M", "P", "S", "Z")
    ]
    return "".join(kept).lower()


def heading_text(line: str) -> str:
    return re.sub(r"^#+\s*", "", line).strip()


def strip_leading_title(markdown: str) -> str:
    """Drop a draft's leading ``# ...`` line."""
    return _LEADING_H1.sub("", markdown or "", count=1).strip()


# === 1. SECTIONING ===


def repair_sectioning(
    markdown: str, outline: Outline | None, drafts: Sequence[DraftSection]
) -> str:
    """Rebuild ``## <n>. <title>`` sections when the text has no ## heading."""
    if _HAS_H2.search(markdown or ""):
        return markdown
    lines = (markdown or "").split("\n")

    title = DEFAULT_TITLE
    title_idx = next((i for i, line in enumerate(lines) if _H1.match(line)), None)
    if title_idx is not None:
        title = lines[title_idx].strip()
        lines = lines[:title_idx] + lines[title_idx + 1:]

    # Only prose ahead of the first heading becomes the overview
    leading: list[str] = []
    for line in lines:
        if _ANY_HEADING.match(line):
            break
        leading.append(line)
    overview = "\n".join(leading).strip()

    parts = [title]
    if overview:
        parts.append(f"{OVERVIEW_HEADING}\n\n{overview}")

    bodies = {d.section_id: d.markdown for d in drafts}
    sections = outline.sections if outline else []
    for n, section in enumerate(sections, start=1):
        body = strip_leading_title(bodies.get(section.id, ""))
        parts.append(f"## {n}. {section.title}\n\n{body}".rstrip())
    return "\n\n".join(parts)


# === 2. APPENDIX ===


def append_prompt_appendix(markdown: str, prompts: Sequence[ImagePrompt]) -> str:
    if not prompts:
        return markdown
    if APPENDIX_HEADING in markdown:
        return markdown
    listing = [f"- {n}. {p.title}: {p.prompt}" for n, p in enumerate(prompts, start=1)]
    return "\n".join([markdown.rstrip() + "\n\n" + APPENDIX_HEADING, *listing])


# === 3. IMAGES ===


def _find_heading(lines: list[str], title: str) -> int:
    wanted = normalize_heading(title)
    if not wanted:
        return -1
    for idx, line in enumerate(lines):
        if not _H2.match(line) or line.strip() == GALLERY_HEADING:
            continue
        have = normalize_heading(heading_text(line))
        if have and (wanted in have or have in wanted):
            return idx
    return -1


def place_images(
    markdown: str, images: Sequence[GeneratedImage], outline: Outline | None = None
) -> str:
    """Insert each image below its matching ## heading; gallery for the rest.

    An image whose exact markdown line is already present is left alone, so
    the repair is idempotent.
    """
    if not images:
        return markdown
    titles_by_id = {s.id: s.title for s in (outline.sections if outline else [])}
    lines = markdown.split("\n")
    present = set(lines)
    leftovers: list[str] = []

    for n, image in enumerate(images, start=1):
        title = image.title or titles_by_id.get(image.section_id, "") or f"Image {n}"
        url = image.url.strip() if image.url and image.url.strip() else placeholder_image(title)
        image_line = f"![{title}]({url})"
        if image_line in present:
            continue
        heading_idx = _find_heading(lines, title)
        if heading_idx >= 0:
            lines[heading_idx + 1:heading_idx + 1] = [image_line, ""]
        else:
            leftovers.append(image_line)
        present.add(image_line)

    result = "\n".join(lines)
    if leftovers:
        result = result.rstrip() + "\n\n" + "\n".join([GALLERY_HEADING, *leftovers])
    return result


# === 4. TITLE ===


def ensure_title(markdown: str) -> str:
    if _HAS_H1.search(markdown or ""):
        return markdown
    return f"{DEFAULT_TITLE}\n\n{markdown}"


# === CHAIN ===


def _safe(name: str, repair: Callable[[str], str], markdown: str) -> str:
    try:
        return repair(markdown)
    except Exception as exc:
        logger.warning("Assembler repair '%s' failed, keeping document: %s", name, exc)
        return markdown


def assemble_document(
    markdown: str,
    outline: Outline | None,
    drafts: Sequence[DraftSection],
    prompts: Sequence[ImagePrompt],
    images: Sequence[GeneratedImage],
) -> str:
    """Apply the four repairs in order and return the final markdown."""
    doc = markdown or ""
    doc = _safe("sectioning", lambda md: repair_sectioning(md, outline, drafts), doc)
    doc = _safe("appendix", lambda md: append_prompt_appendix(md, prompts), doc)
    doc = _safe("images", lambda md: place_images(md, images, outline), doc)
    doc = _safe("title", ensure_title, doc)
    return doc
