"""Text normalization applied to chunks before they are embedded."""

import re
from collections import Counter

# Control characters except tab and newline
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Page-number lines: "Page 3", "Page 3 of 10", "3 / 10", "3 of 10", "- 3 -", "12"
PAGE_NUMBER_PATTERNS = [
    re.compile(r"^page\s+\d+(?:\s*(?:of|/)\s*\d+)?$", re.IGNORECASE),
    re.compile(r"^\d+\s*(?:of|/)\s*\d+$", re.IGNORECASE),
    re.compile(r"^[-–—]?\s*\d+\s*[-–—]?$"),
]

# Boilerplate marker lines
BOILERPLATE_PATTERNS = [
    re.compile(
        r"^(?:strictly\s+)?(?:confidential|proprietary|internal use only|draft|final(?: draft)?)\W*$",
        re.IGNORECASE,
    ),
    re.compile(r"^(?:confidential|proprietary)\s*[-:|].{0,60}$", re.IGNORECASE),
    re.compile(r"^(?:version|rev(?:ision)?)\.?\s*v?\d+(?:\.\d+)*\W*$", re.IGNORECASE),
    re.compile(r"^(?:©|\(c\)|copyright\b)", re.IGNORECASE),
    re.compile(r"^all rights reserved", re.IGNORECASE),
    re.compile(r"^generated on\s*:", re.IGNORECASE),
    re.compile(r"^last updated\s*:", re.IGNORECASE),
]

HORIZONTAL_WHITESPACE = re.compile(r"[ \t\u00a0]+")

# Repeated short lines are treated as running headers/footers
REPEATED_LINE_MAX_LENGTH = 20
REPEATED_LINE_MIN_COUNT = 3
REPEATED_LINE_RATIO = 0.1


def is_page_number(line: str) -> bool:
    return any(p.match(line) for p in PAGE_NUMBER_PATTERNS)


def is_boilerplate(line: str) -> bool:
    return any(p.match(line) for p in BOILERPLATE_PATTERNS)


def find_repeated_lines(lines: list[str]) -> set[str]:
    """
    Find short lines that repeat often enough to be headers or footers.

    A line qualifies when it is shorter than 20 characters and occurs more than
    max(3, 10% of all lines) times.
    """
    threshold = max(REPEATED_LINE_MIN_COUNT, int(len(lines) * REPEATED_LINE_RATIO))
    counts = Counter(line for line in lines if 0 < len(line) < REPEATED_LINE_MAX_LENGTH)
    return {line for line, count in counts.items() if count > threshold}


def clean_text_for_embedding(text: str) -> str:
    """
    Clean a chunk's text before it is sent to the embedding model.

    Removes control characters, page numbers, boilerplate markers, repeated
    headers/footers and irregular whitespace. Never raises; an empty string
    means nothing worth embedding remains.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = CONTROL_CHARS.sub(" ", text)

    lines = [HORIZONTAL_WHITESPACE.sub(" ", line).strip() for line in text.split("\n")]
    repeated = find_repeated_lines(lines)

    kept = []
    for line in lines:
        if not line:
            continue
        if line in repeated or is_page_number(line) or is_boilerplate(line):
            continue
        kept.append(line)

    return "\n".join(kept).strip()
