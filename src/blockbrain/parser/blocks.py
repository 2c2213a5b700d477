"""Markdown block parsing.

A block is a line carrying a trailing ``^id`` marker. The scan tracks fenced
code (which never yields blocks) and heading nesting, so each block gets a
heading path and headings get a line range covering their section.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import yaml
from frontmatter.default_handlers import YAMLHandler

from ..models import Block, BlockType

log = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"^```")
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(\S.*)$")
BULLET_PATTERN = re.compile(r"^[-*+]\s+\S")
NUMBERED_PATTERN = re.compile(r"^\d+\.\s+\S")
HRULE_PATTERN = re.compile(r"^(---|\*\*\*|___)\s*$")
HTML_COMMENT_PATTERN = re.compile(r"^<!--")

# Any ^id on the line; a line matching this is considered stamped
ID_MARKER_PATTERN = re.compile(r"\^([a-z0-9]{4,12})\b", re.IGNORECASE)

# The trailing ^id that makes a line addressable
TRAILING_ID_PATTERN = re.compile(r"(?:^|\s)\^([a-z0-9]{4,12})\s*$", re.IGNORECASE)

# Closing hashes of an ATX heading ("## Title ##")
_HEADING_CLOSE_PATTERN = re.compile(r"\s+#+\s*$")

HEADING_PATH_SEPARATOR = " > "
CONTENT_SEPARATOR = " | "

# Frontmatter must close within this many lines of its opening marker
FRONTMATTER_MAX_LINES = 200


class ParseError(Exception):
    """Raised when a Markdown file cannot be read."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


@dataclass(frozen=True)
class OpenHeading:
    level: int
    title: str
    line: int


@dataclass(frozen=True)
class ScannedLine:
    """A non-blank line outside fenced code and frontmatter."""

    number: int  # 1-based
    text: str
    stripped: str
    heading: OpenHeading | None = None


@dataclass
class ScanState:
    """State threaded through a line scan."""

    in_fence: bool = False
    open_headings: list[OpenHeading] = field(default_factory=list)

    def enter_heading(self, heading: OpenHeading) -> None:
        # Close every section at the same depth or deeper
        while self.open_headings and self.open_headings[-1].level >= heading.level:
            self.open_headings.pop()
        self.open_headings.append(heading)

    def heading_path(self, line: int, *, exclude_line: int | None = None) -> str:
        titles = [
            h.title
            for h in self.open_headings
            if h.line <= line and h.line != exclude_line
        ]
        return HEADING_PATH_SEPARATOR.join(titles)


_FRONTMATTER = YAMLHandler()


def split_lines(text: str) -> list[str]:
    """Split on "\\n" only, so line numbers match what editors show.

    str.splitlines() also breaks on form feeds, U+2028 and friends.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def frontmatter_end(lines: list[str]) -> int | None:
    """Return the 0-based index of the line closing a leading YAML frontmatter.

    The fenced block must hold a non-empty YAML mapping. A note that merely
    opens with a horizontal rule has no frontmatter.
    """
    start = None
    for i, line in enumerate(lines):
        if line.strip() == "":
            continue
        if not _FRONTMATTER.FM_BOUNDARY.match(line.strip()):
            return None
        start = i
        break

    if start is None:
        return None

    for j in range(start + 1, min(len(lines), start + 1 + FRONTMATTER_MAX_LINES)):
        if _FRONTMATTER.FM_BOUNDARY.match(lines[j].strip()):
            try:
                metadata = _FRONTMATTER.load("\n".join(lines[start + 1 : j]))
            except yaml.YAMLError:
                return None
            return j if isinstance(metadata, dict) and metadata else None
    return None


def parse_heading(stripped: str) -> tuple[int, str] | None:
    """Return (level, title) for a heading line, with any ^id marker removed."""
    match = HEADING_PATTERN.match(stripped)
    if not match:
        return None
    title = TRAILING_ID_PATTERN.sub("", match.group(2))
    title = _HEADING_CLOSE_PATTERN.sub("", title).strip()
    return len(match.group(1)), title


def scan_lines(lines: list[str], state: ScanState | None = None) -> Iterator[ScannedLine]:
    """Yield content lines, skipping fenced code, frontmatter and blank lines.

    Fence markers toggle ``state.in_fence``; heading lines update
    ``state.open_headings`` before they are yielded.
    """
    state = state if state is not None else ScanState()
    fm_end = frontmatter_end(lines)
    first = fm_end + 1 if fm_end is not None else 0

    for idx in range(first, len(lines)):
        text = lines[idx]
        stripped = text.strip()

        if FENCE_PATTERN.match(stripped):
            state.in_fence = not state.in_fence
            continue
        if state.in_fence or not stripped:
            continue

        heading = None
        parsed = parse_heading(stripped)
        if parsed is not None:
            heading = OpenHeading(level=parsed[0], title=parsed[1], line=idx + 1)
            state.enter_heading(heading)

        yield ScannedLine(number=idx + 1, text=text, stripped=stripped, heading=heading)


def classify_line(stripped: str) -> BlockType:
    if HEADING_PATTERN.match(stripped):
        return "heading"
    if BULLET_PATTERN.match(stripped) or NUMBERED_PATTERN.match(stripped):
        return "list_item"
    return "line"


def is_block_line(stripped: str) -> bool:
    """Whether a trimmed, non-blank line should be stamped with an ID.

    List items and paragraph lines are blocks. Horizontal rules and HTML
    comments are not. Headings can carry IDs but are not stamped.
    """
    if HRULE_PATTERN.match(stripped):
        return False
    if HTML_COMMENT_PATTERN.match(stripped):
        return False
    if BULLET_PATTERN.match(stripped) or NUMBERED_PATTERN.match(stripped):
        return True
    if HEADING_PATTERN.match(stripped):
        return False
    return True


def extract_block_id(text: str) -> str | None:
    """Return the lowercase trailing ^id of a line, if any."""
    match = TRAILING_ID_PATTERN.search(text)
    return match.group(1).lower() if match else None


def strip_block_id(text: str) -> str:
    return TRAILING_ID_PATTERN.sub("", text).rstrip()


def hash_content(content: str) -> str:
    """Return a stable hash for block content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _section_ends(lines: list[str]) -> dict[int, int]:
    """Map each heading's line number to the last line of its section."""
    headings = [s.heading for s in scan_lines(lines) if s.heading is not None]
    ends: dict[int, int] = {}
    for i, heading in enumerate(headings):
        end = len(lines)
        for later in headings[i + 1 :]:
            if later.level <= heading.level:
                end = later.line - 1
                break
        ends[heading.line] = end
    return ends


def parse_blocks(text: str, file_path: str, now: datetime | None = None) -> list[Block]:
    """Parse addressable blocks out of Markdown text.

    Args:
        text: File contents.
        file_path: Absolute path recorded on each block.
        now: Timestamp for updated_at (defaults to the current UTC time).

    Returns:
        Blocks in file order.
    """
    lines = split_lines(text)
    now = now or datetime.now(UTC)
    section_ends = _section_ends(lines)

    blocks: list[Block] = []
    state = ScanState()
    for scanned in scan_lines(lines, state):
        block_id = extract_block_id(scanned.text)
        if block_id is None:
            continue

        block_type = classify_line(scanned.stripped)
        body = strip_block_id(scanned.text)

        if scanned.heading is not None:
            heading_path = state.heading_path(scanned.number, exclude_line=scanned.number)
            line_end = section_ends.get(scanned.number, scanned.number)
            content = body
        else:
            heading_path = state.heading_path(scanned.number)
            line_end = scanned.number
            content = f"{heading_path}{CONTENT_SEPARATOR}{body}" if heading_path else body

        blocks.append(
            Block(
                id=block_id,
                file_path=file_path,
                line_start=scanned.number,
                line_end=line_end,
                block_type=block_type,
                heading_path=heading_path,
                content=content,
                content_hash=hash_content(content),
                updated_at=now,
            )
        )

    return blocks


def read_markdown(path: Path) -> str:
    """Read a Markdown file as-is (line endings untouched).

    Raises:
        ParseError: On any I/O or decoding failure.
    """
    try:
        with path.open(encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(path, f"Failed reading file: {e}") from e


def parse_file(path: Path, now: datetime | None = None) -> list[Block]:
    """Parse a Markdown file into blocks.

    Raises:
        ParseError: If the file cannot be read.
    """
    resolved = path.resolve()
    blocks = parse_blocks(read_markdown(resolved), str(resolved), now=now)
    log.debug("Parsed %d blocks from %s", len(blocks), resolved)
    return blocks


def block_text(block: Block) -> str:
    """Return a block's own text, without the heading-path prefix."""
    if block.block_type != "heading" and block.heading_path:
        prefix = f"{block.heading_path}{CONTENT_SEPARATOR}"
        if block.content.startswith(prefix):
            return block.content[len(prefix) :]
    return block.content
