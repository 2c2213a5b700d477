"""Append block IDs to unstamped Markdown lines in place.

IDs are unique within a file at stamping time only. Two files may still end
up with the same ID; the index keeps whichever block it upserts last.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Iterable
from pathlib import Path

from .config import BLOCK_ID_HEX_DIGITS, BLOCK_ID_PREFIX, ID_GENERATION_ATTEMPTS
from .errors import BrainError
from .models import StampResult
from .parser import (
    ID_MARKER_PATTERN,
    ParseError,
    is_block_line,
    read_markdown,
    scan_lines,
    split_lines,
)

log = logging.getLogger(__name__)


def generate_id(existing: set[str]) -> str:
    """Generate a block ID not present in ``existing``.

    Falls back to a time-derived ID if every random candidate collides.
    """
    for _ in range(ID_GENERATION_ATTEMPTS):
        candidate = BLOCK_ID_PREFIX + secrets.token_hex(4)[:BLOCK_ID_HEX_DIGITS]
        if candidate not in existing:
            return candidate

    fallback = BLOCK_ID_PREFIX + format(time.time_ns(), "x")[-(BLOCK_ID_HEX_DIGITS + 1) :]
    log.warning("ID generation exhausted %d attempts; using %s", ID_GENERATION_ATTEMPTS, fallback)
    return fallback


def existing_ids(lines: Iterable[str]) -> set[str]:
    """Collect every ^id mentioned anywhere in the given lines."""
    ids: set[str] = set()
    for line in lines:
        ids.update(match.group(1).lower() for match in ID_MARKER_PATTERN.finditer(line))
    return ids


def stamp_text(text: str) -> tuple[str, list[str]]:
    """Stamp eligible lines of Markdown text.

    Returns:
        Tuple of (new_text, ids_added). new_text equals text when nothing
        was added.
    """
    lines = split_lines(text)
    taken = existing_ids(lines)
    added: list[str] = []

    for scanned in scan_lines(lines):
        if ID_MARKER_PATTERN.search(scanned.text):
            continue
        if not is_block_line(scanned.stripped):
            continue

        block_id = generate_id(taken)
        taken.add(block_id)
        added.append(block_id)
        eol = "\r" if scanned.text.endswith("\r") else ""
        lines[scanned.number - 1] = f"{scanned.text.rstrip()} ^{block_id}{eol}"

    if not added:
        return text, []
    return "\n".join(lines) + "\n", added


def stamp_file(path: Path) -> StampResult:
    """Stamp a single file, rewriting it only if an ID was added.

    Raises:
        ParseError: If the file cannot be read or written.
    """
    text = read_markdown(path)
    new_text, added = stamp_text(text)

    if added:
        try:
            path.write_text(new_text, encoding="utf-8", newline="")
        except OSError as e:
            raise ParseError(path, f"Failed writing file: {e}") from e
        log.info("Stamped %d blocks in %s", len(added), path)

    return StampResult(file_path=str(path), changed=bool(added), stamped=len(added), ids=added)


def gather_markdown_files(path: Path) -> list[Path]:
    """Return .md files at or under ``path``, sorted.

    Raises:
        BrainError: If the path does not exist.
    """
    if not path.exists():
        raise BrainError.path_not_found(str(path))

    if path.is_file():
        return [path.resolve()] if path.suffix.lower() == ".md" else []

    return sorted(
        p.resolve() for p in path.rglob("*") if p.is_file() and p.suffix.lower() == ".md"
    )


def stamp_path(path: Path) -> list[StampResult]:
    """Stamp every Markdown file at or under ``path``."""
    return [stamp_file(md_file) for md_file in gather_markdown_files(path)]
