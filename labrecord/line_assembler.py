"""
Line Assembler
==============
Turns positioned text fragments into a plain-text block, one logical line
per baseline, and scrubs the noise that overlapping watermark layers leave
behind (stuttered ID numbers, long digit runs, whitespace runs).
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .models import TextFragment

logger = logging.getLogger(__name__)

# ─── Noise Patterns ───────────────────────────────────────────────────────────

# A 9+ digit run immediately repeated: watermark stutter
STUTTER_PATTERN = re.compile(r"(\d{9,})\1+")

# Any digit run of 14 or more
LONG_DIGIT_RUN_PATTERN = re.compile(r"\d{14,}")

HORIZONTAL_SPACE_PATTERN = re.compile(r"[ \t]{3,}")

BLANK_LINE_RUN_PATTERN = re.compile(r"\n{4,}")


def assemble_text(
    pages: Iterable[Iterable[TextFragment]],
    line_gap_threshold: float = 5.0,
) -> str:
    """
    Join page-ordered fragments into one cleaned text block.

    Fragments on the same baseline are concatenated with no inserted space;
    a baseline jump larger than ``line_gap_threshold`` starts a new line.
    Every page ends with a newline.
    """
    parts: list[str] = []
    fragment_count = 0

    for page in pages:
        last_y = None
        for fragment in page:
            if last_y is not None and abs(fragment.baseline_y - last_y) > line_gap_threshold:
                parts.append("\n")
            parts.append(fragment.text)
            last_y = fragment.baseline_y
            fragment_count += 1
        parts.append("\n")

    text = clean_text("".join(parts))
    logger.debug(f"Assembled {fragment_count} fragments into {len(text)} chars")
    return text


def clean_text(text: str) -> str:
    """Apply the stutter, digit-run and whitespace scrubbing passes in order."""
    text = STUTTER_PATTERN.sub("", text)
    text = LONG_DIGIT_RUN_PATTERN.sub("", text)
    text = HORIZONTAL_SPACE_PATTERN.sub(" ", text)
    text = BLANK_LINE_RUN_PATTERN.sub("\n\n", text)
    return text


def split_lines(text: str) -> list[str]:
    """Split into trimmed, non-empty lines."""
    return [line.strip() for line in text.split("\n") if line.strip()]


def erase_identifier(text: str, identifier: str) -> str:
    """
    Remove every occurrence of ``identifier`` from ``text``, including
    doubled or stuttered runs of it.
    """
    identifier = identifier.strip()
    if not identifier:
        return text

    escaped = re.escape(identifier)
    text = re.sub(f"(?:{escaped}){{2,}}", "", text)
    return re.sub(escaped, "", text)
