import io
import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Literal

from pydantic import BaseModel, Field

from app.config import settings
from app.exceptions import ParseError

logger = logging.getLogger(__name__)

PLAIN_TEXT = "text/plain"
PDF = "application/pdf"
MSWORD = "application/msword"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class ExtractedDocument(BaseModel):
    """Result of content extraction from uploaded bytes."""

    title: str
    text: str


def _stem(filename: str) -> str:
    return PurePath(filename).stem or filename


def extract_text_plain(data: bytes, filename: str) -> ExtractedDocument:
    """Extract content from a plain text upload."""
    if b"\x00" in data:
        raise ParseError(f"{filename} contains binary data and is not plain text", PLAIN_TEXT)

    for encoding in ("utf-8-sig", "cp1252", "latin-1"):
        try:
            text = data.decode(encoding)
            return ExtractedDocument(title=_stem(filename), text=text)
        except UnicodeDecodeError:
            continue

    raise ParseError(f"Could not decode {filename} with any supported encoding", PLAIN_TEXT)


def extract_pdf(data: bytes, filename: str) -> ExtractedDocument:
    """Extract content from a PDF using pdfminer.six."""
    from pdfminer.high_level import extract_text

    if not data.startswith(b"%PDF"):
        raise ParseError(f"{filename} is not a valid PDF file", PDF)

    text = extract_text(io.BytesIO(data))
    if not text.strip():
        raise ParseError(
            f"{filename} contains no extractable text; it may be empty or image-only", PDF
        )
    return ExtractedDocument(title=_stem(filename), text=text)


def extract_docx(data: bytes, filename: str) -> ExtractedDocument:
    """Extract paragraphs and table rows, in document order, using python-docx."""
    from docx import Document
    from docx.table import Table

    if data.startswith(b"\xd0\xcf\x11\xe0"):
        raise ParseError(
            f"{filename} is a legacy Word document; save it as .docx and upload again",
            MSWORD,
            unsupported=True,
        )

    doc = Document(io.BytesIO(data))
    lines = []
    for block in doc.iter_inner_content():
        if isinstance(block, Table):
            for row in block.rows:
                cells: list[str] = []
                for cell in row.cells:
                    # Merged cells are reported once per grid column
                    value = cell.text.strip()
                    if value and (not cells or cells[-1] != value):
                        cells.append(value)
                if cells:
                    lines.append(" | ".join(cells))
        else:
            lines.append(block.text)

    title = doc.core_properties.title or _stem(filename)
    return ExtractedDocument(title=title, text="\n".join(lines))


# MIME type to extractor mapping
EXTRACTORS = {
    PLAIN_TEXT: extract_text_plain,
    PDF: extract_pdf,
    MSWORD: extract_docx,
    DOCX: extract_docx,
}

# File extension fallbacks
EXTENSION_MIME_MAP = {
    ".txt": PLAIN_TEXT,
    ".md": PLAIN_TEXT,
    ".pdf": PDF,
    ".doc": MSWORD,
    ".docx": DOCX,
}

GENERIC_MEDIA_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def resolve_media_type(media_type: str | None, filename: str) -> str:
    """
    Resolve the declared media type against the allow-list.

    Parameters such as "; charset=utf-8" are ignored. A missing or generic type
    falls back to the filename extension.

    Raises:
        ParseError: If the type is not supported
    """
    declared = (media_type or "").split(";")[0].strip().lower()
    if declared in EXTRACTORS:
        return declared

    if declared in GENERIC_MEDIA_TYPES:
        fallback = EXTENSION_MIME_MAP.get(PurePath(filename).suffix.lower())
        if fallback:
            return fallback

    raise ParseError(
        f"Unsupported file type: {media_type or 'unknown'} for file {filename}",
        media_type,
        unsupported=True,
    )


def extract_content(data: bytes, media_type: str | None, filename: str) -> ExtractedDocument:
    """
    Extract text content from uploaded bytes based on their media type.

    Raises:
        ParseError: If the type is not supported or the content is corrupt
    """
    resolved = resolve_media_type(media_type, filename)
    extractor = EXTRACTORS[resolved]

    try:
        return extractor(data, filename)
    except ParseError:
        raise
    except Exception as e:
        logger.exception(f"Failed to extract content from {filename}: {e}")
        raise ParseError(f"Could not read {filename}: {e}", resolved) from e


# ============================================================================
# Plan-aware chunking
# ============================================================================

SectionType = Literal["year", "month", "week", "content"]

MAX_HEADING_LENGTH = 120
MAX_WEEK = 6

MONTH_NAMES = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "sept": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# Markdown heading, bullet or outline number, then an optional "Plan" prefix
HEADING_PREFIX = re.compile(r"(?:#{1,6}\s*|[-*•]\s+|\d+[.)]\s+)?(?:plan\s+)?", re.IGNORECASE)

NUMBERED_MARKER = re.compile(
    r"(?P<kind>year|yr|month|mo|week|wk)\.?\s*[:#]?\s*(?P<number>\d{1,4})\b", re.IGNORECASE
)

# Month names only count when nothing but a separator or another marker follows
NAMED_MONTH = re.compile(
    r"(?P<name>" + "|".join(sorted(MONTH_NAMES, key=len, reverse=True)) + r")\b\.?"
    r"(?=\s*(?:$|[-–—:|(/,]|year\b|yr\b|week\b|wk\b|\d{4}\b))",
    re.IGNORECASE,
)

MARKER_SEPARATOR = re.compile(r"[\s\-–—:|,/>()]*")

# A year heading standing alone or followed by a separator ("Year 4", "Year 4: scale up")
YEAR_HEADING = re.compile(
    r"(?:year|yr)\.?\s*[:#]?\s*(?P<number>\d{1,4})\s*(?:$|[-–—:|(/,])", re.IGNORECASE
)

MARKER_KINDS = {
    "year": "year",
    "yr": "year",
    "month": "month",
    "mo": "month",
    "week": "week",
    "wk": "week",
}


class ChunkMetadata(BaseModel):
    """Versioned metadata stored alongside every chunk."""

    schema_version: int = 1
    section_type: SectionType = "content"
    heading: str | None = Field(default=None, max_length=200)
    has_year: bool = False
    has_month: bool = False
    has_week: bool = False
    part: int = 0
    parts: int = 1


class ChunkSpec(BaseModel):
    """A chunk of document text with its optional temporal address."""

    index: int
    text: str
    year: int | None = None
    month: int | None = None
    week: int | None = None
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


class ParsedDocument(BaseModel):
    title: str
    chunks: list[ChunkSpec]
    is_year_plan: bool = False
    marker_count: int = 0


@dataclass
class PlanHeading:
    """Temporal markers recognised on a single line."""

    text: str
    year: int | None = None
    month: int | None = None
    week: int | None = None

    @property
    def marker_count(self) -> int:
        return sum(value is not None for value in (self.year, self.month, self.week))

    @property
    def section_type(self) -> SectionType:
        if self.week is not None:
            return "week"
        if self.month is not None:
            return "month"
        return "year"


def _marker_in_range(kind: str, value: int, max_plan_year: int) -> bool:
    if kind == "year":
        return 1 <= value <= max_plan_year
    if kind == "month":
        return 1 <= value <= 12
    return 1 <= value <= MAX_WEEK


def parse_heading(line: str, max_plan_year: int | None = None) -> PlanHeading | None:
    """
    Recognise a planning heading such as "Year 1", "Month 3", "Week 2",
    "March" or "Year 1 - Month 3 - Week 2".

    Returns None for lines that are not headings, including markers whose
    number is out of range (e.g. "Year 2025").
    """
    if max_plan_year is None:
        max_plan_year = settings.max_plan_year

    stripped = line.strip()
    if not stripped or len(stripped) > MAX_HEADING_LENGTH:
        return None

    heading = PlanHeading(text=stripped)
    pos = HEADING_PREFIX.match(stripped).end()

    while pos < len(stripped):
        match = NUMBERED_MARKER.match(stripped, pos)
        if match:
            kind = MARKER_KINDS[match.group("kind").lower()]
            value = int(match.group("number"))
        else:
            match = NAMED_MONTH.match(stripped, pos)
            if not match:
                break
            kind = "month"
            value = MONTH_NAMES[match.group("name").lower()]

        if getattr(heading, kind) is not None or not _marker_in_range(kind, value, max_plan_year):
            break

        setattr(heading, kind, value)
        pos = MARKER_SEPARATOR.match(stripped, match.end()).end()

    if heading.marker_count == 0:
        return None
    return heading


def is_out_of_plan_year(line: str, max_plan_year: int | None = None) -> bool:
    """True for a year heading numbered past the plan, such as "Year 4" in a 3-Year Plan."""
    if max_plan_year is None:
        max_plan_year = settings.max_plan_year

    stripped = line.strip()
    if not stripped or len(stripped) > MAX_HEADING_LENGTH:
        return False

    match = YEAR_HEADING.match(stripped, HEADING_PREFIX.match(stripped).end())
    if match is None:
        return False
    return not _marker_in_range("year", int(match.group("number")), max_plan_year)


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace in text."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # Replace multiple whitespace with single space
    text = re.sub(r"[ \t]+", " ", text)
    # Replace multiple newlines with double newline
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def split_section(text: str, chunk_size: int, overlap: int) -> list[str]:
    """
    Split section content into pieces of at most chunk_size characters.

    Breaks at a sentence or line boundary when one falls in the last 30% of
    the window; consecutive pieces overlap by `overlap` characters.
    """
    if len(text) <= chunk_size:
        return [text]

    pieces = []
    start = 0

    while start < len(text):
        end = min(len(text), start + chunk_size)

        # Try to break at sentence boundary
        if end < len(text):
            search_start = start + int(chunk_size * 0.7)
            for i in range(end, search_start, -1):
                if text[i - 1] in ".!?\n":
                    end = i
                    break

        piece = text[start:end].strip()
        if piece:
            pieces.append(piece)

        if end >= len(text):
            break

        new_start = end - overlap
        if new_start <= start:
            new_start = end
        start = new_start

    return pieces


def _content_section_type(year: int | None, month: int | None, week: int | None) -> SectionType:
    if week is not None:
        return "week"
    if month is not None:
        return "month"
    if year is not None:
        return "year"
    return "content"


def chunk_plan_text(
    text: str,
    chunk_size: int | None = None,
    overlap: int | None = None,
    max_plan_year: int | None = None,
) -> tuple[list[ChunkSpec], int, int]:
    """
    Split text into ordered chunks tagged with a (year, month, week) address.

    Every planning heading emits its own chunk and opens a new section; the
    content up to the next heading is chunked under the heading's address.
    Year headings reset the week, month headings reset the week. Text before
    the first heading gets a null address. A year heading past the plan
    ("Year 4") clears the address until the next in-plan year heading.

    Returns:
        (chunks, marker_count, year_marker_count)
    """
    chunk_size = chunk_size or settings.chunk_max_chars
    overlap = settings.chunk_overlap if overlap is None else overlap

    text = normalize_whitespace(text)
    if not text:
        return [], 0, 0

    chunks: list[ChunkSpec] = []
    year: int | None = None
    month: int | None = None
    week: int | None = None
    section_heading: str | None = None
    buffer: list[str] = []
    marker_count = 0
    year_markers = 0

    def emit(chunk_text: str, section_type: SectionType, heading: str | None, part=0, parts=1):
        chunks.append(
            ChunkSpec(
                index=len(chunks),
                text=chunk_text,
                year=year,
                month=month,
                week=week,
                metadata=ChunkMetadata(
                    section_type=section_type,
                    heading=heading[:200] if heading else None,
                    has_year=year is not None,
                    has_month=month is not None,
                    has_week=week is not None,
                    part=part,
                    parts=parts,
                ),
            )
        )

    def flush():
        content = "\n".join(buffer).strip()
        buffer.clear()
        if not content:
            return
        pieces = split_section(content, chunk_size, overlap)
        section_type = _content_section_type(year, month, week)
        for part, piece in enumerate(pieces):
            emit(piece, section_type, section_heading, part, len(pieces))

    # Set after a year heading past the plan; cleared by the next in-plan year
    outside_plan = False

    for line in text.split("\n"):
        heading = parse_heading(line, max_plan_year)
        if heading is None and is_out_of_plan_year(line, max_plan_year):
            flush()
            year = month = week = None
            section_heading = line.strip()
            outside_plan = True
            buffer.append(line)
            continue

        if heading is not None and outside_plan:
            if heading.year is None:
                heading = None
            else:
                outside_plan = False

        if heading is None:
            buffer.append(line)
            continue

        flush()

        if heading.year is not None:
            year = heading.year
            week = None
            year_markers += 1
        if heading.month is not None:
            month = heading.month
            week = None
        if heading.week is not None:
            week = heading.week
        marker_count += heading.marker_count
        section_heading = heading.text

        emit(heading.text, heading.section_type, heading.text)

    flush()
    return chunks, marker_count, year_markers


def is_year_plan(marker_count: int, year_markers: int, min_markers: int | None = None) -> bool:
    """A document is a year plan when it has enough planning markers, including a year."""
    if min_markers is None:
        min_markers = settings.year_plan_min_markers
    return year_markers > 0 and marker_count >= min_markers


def parse_document(data: bytes, media_type: str | None, filename: str) -> ParsedDocument:
    """
    Extract and chunk an uploaded document.

    Raises:
        ParseError: If the type is not supported or the content is corrupt
    """
    extracted = extract_content(data, media_type, filename)
    chunks, marker_count, year_markers = chunk_plan_text(extracted.text)
    year_plan = is_year_plan(marker_count, year_markers)

    logger.info(
        f"Parsed {filename}: {len(chunks)} chunks, {marker_count} plan markers, "
        f"year_plan={year_plan}"
    )
    return ParsedDocument(
        title=extracted.title,
        chunks=chunks,
        is_year_plan=year_plan,
        marker_count=marker_count,
    )
