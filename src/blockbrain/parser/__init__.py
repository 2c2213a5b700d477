"""Markdown parsing for blocks and block references."""

from .blocks import (
    ID_MARKER_PATTERN,
    ParseError,
    ScanState,
    classify_line,
    extract_block_id,
    is_block_line,
    parse_blocks,
    parse_file,
    read_markdown,
    scan_lines,
    split_lines,
)
from .refs import extract_ref_targets, extract_references

__all__ = [
    "ID_MARKER_PATTERN",
    "ParseError",
    "ScanState",
    "classify_line",
    "extract_block_id",
    "extract_ref_targets",
    "extract_references",
    "is_block_line",
    "parse_blocks",
    "parse_file",
    "read_markdown",
    "scan_lines",
    "split_lines",
]
