"""Tests for block parsing and reference extraction.

Coverage:
- src/blockbrain/parser/blocks.py - fences, heading nesting, ranges, ids
- src/blockbrain/parser/refs.py - ((^id)) and #^id references
"""

from __future__ import annotations

from pathlib import Path

import pytest

from blockbrain.parser import ParseError, extract_ref_targets, extract_references, parse_file
from blockbrain.parser.blocks import (
    ScanState,
    classify_line,
    frontmatter_end,
    hash_content,
    is_block_line,
    parse_blocks,
    parse_heading,
    scan_lines,
)

from conftest import FIXED_TIME, make_block

NESTED_NOTE = """\
# Physics ^h1a2b3
Intro line ^b00001
## Quantum
- Entangled pairs ^b00002
```
- fake ^b00003
# Not a heading
```
## Optics ^h2c3d4
Lenses ^b00004
# Biology
Cells ^b00005
"""


def _by_id(text: str) -> dict:
    return {b.id: b for b in parse_blocks(text, "/vault/note.md", now=FIXED_TIME)}


# ─────────────────────────────────────────────────────────────────────────────
# Block Parsing
# ─────────────────────────────────────────────────────────────────────────────


class TestParseBlocks:
    def test_only_stamped_lines_become_blocks(self):
        blocks = _by_id(NESTED_NOTE)
        assert set(blocks) == {"h1a2b3", "b00001", "b00002", "h2c3d4", "b00004", "b00005"}

    def test_blocks_are_in_file_order(self):
        ids = [b.id for b in parse_blocks(NESTED_NOTE, "/vault/note.md")]
        assert ids == ["h1a2b3", "b00001", "b00002", "h2c3d4", "b00004", "b00005"]

    def test_fenced_code_yields_no_blocks(self):
        text = "```\n- looks like a block ^b1a2c3\nAnother ^b4d5e6\n```\n"
        assert parse_blocks(text, "/vault/code.md") == []

    def test_heading_inside_fence_does_not_close_section(self):
        blocks = _by_id(NESTED_NOTE)
        # "# Not a heading" sits in a fence, so Physics still ends before "# Biology"
        assert blocks["h1a2b3"].line_end == 10

    def test_heading_range_stops_before_same_level_heading(self):
        blocks = _by_id(NESTED_NOTE)
        assert blocks["h2c3d4"].line_start == 9
        assert blocks["h2c3d4"].line_end == 10

    def test_heading_range_runs_to_end_of_file(self):
        text = "Intro\n## Last ^h9a8b7\nBody\n### Deeper\nMore\n"
        block = _by_id(text)["h9a8b7"]
        assert block.line_start == 2
        assert block.line_end == 5

    def test_non_heading_blocks_span_one_line(self):
        blocks = _by_id(NESTED_NOTE)
        for block_id in ("b00001", "b00002", "b00004", "b00005"):
            assert blocks[block_id].line_start == blocks[block_id].line_end

    def test_heading_path_tracks_nesting(self):
        blocks = _by_id(NESTED_NOTE)
        assert blocks["b00001"].heading_path == "Physics"
        assert blocks["b00002"].heading_path == "Physics > Quantum"
        assert blocks["b00004"].heading_path == "Physics > Optics"
        assert blocks["b00005"].heading_path == "Biology"

    def test_heading_path_of_heading_lists_ancestors_only(self):
        blocks = _by_id(NESTED_NOTE)
        assert blocks["h1a2b3"].heading_path == ""
        assert blocks["h2c3d4"].heading_path == "Physics"

    def test_heading_path_empty_before_first_heading(self):
        block = _by_id("Loose line ^b7e7e7\n# Later\n")["b7e7e7"]
        assert block.heading_path == ""
        assert block.content == "Loose line"

    def test_content_prefixed_with_heading_path(self):
        blocks = _by_id(NESTED_NOTE)
        assert blocks["b00002"].content == "Physics > Quantum | - Entangled pairs"

    def test_heading_content_is_not_prefixed(self):
        blocks = _by_id(NESTED_NOTE)
        assert blocks["h2c3d4"].content == "## Optics"

    def test_block_types(self):
        blocks = _by_id(NESTED_NOTE + "1. Numbered ^b00006\n")
        assert blocks["h1a2b3"].block_type == "heading"
        assert blocks["b00002"].block_type == "list_item"
        assert blocks["b00006"].block_type == "list_item"
        assert blocks["b00001"].block_type == "line"

    def test_ids_matched_case_insensitively_and_stored_lowercase(self):
        blocks = _by_id("Shouty id ^B1A2C3\n")
        assert list(blocks) == ["b1a2c3"]
        assert blocks["b1a2c3"].content == "Shouty id"

    def test_reference_marker_is_not_a_block_id(self):
        text = "See physics.md#^b00001\nAlso ((^b00002))\n"
        assert parse_blocks(text, "/vault/refs.md") == []

    def test_block_with_reference_keeps_its_own_id(self):
        blocks = _by_id("Relates to ((^b00002)) ^b00009\n")
        assert list(blocks) == ["b00009"]
        assert blocks["b00009"].content == "Relates to ((^b00002))"

    def test_content_hash_is_sha256_of_content(self):
        block = _by_id("Hash me ^b0a0b0\n")["b0a0b0"]
        assert block.content_hash == hash_content("Hash me")
        assert len(block.content_hash) == 64

    def test_frontmatter_is_skipped(self):
        text = "---\ntitle: Note ^b11111\n---\nBody ^b22222\n"
        blocks = _by_id(text)
        assert list(blocks) == ["b22222"]
        assert blocks["b22222"].line_start == 4

    def test_leading_horizontal_rule_is_not_frontmatter(self):
        blocks = _by_id("---\n- item a ^b00001\n---\n- item b ^b00002\n")
        assert list(blocks) == ["b00001", "b00002"]

    def test_lines_split_on_newline_only(self):
        text = "a\x0cb ^b00001\nc\u2028d ^b00002\ne ^b00003\n"
        blocks = parse_blocks(text, "/vault/note.md")
        assert [b.line_start for b in blocks] == [1, 2, 3]
        assert blocks[0].content == "a\x0cb"

    def test_crlf_line_endings(self):
        blocks = _by_id("# Top\r\nLine ^b00001\r\n")
        assert blocks["b00001"].content == "Top | Line"
        assert blocks["b00001"].line_start == 2

    def test_indentation_kept_in_content(self):
        block = _by_id("- parent ^b00001\n  - child ^b00002\n")["b00002"]
        assert block.content == "  - child"
        assert block.block_type == "list_item"

    def test_updated_at_uses_given_time(self):
        block = _by_id("Timed ^b3c3c3\n")["b3c3c3"]
        assert block.updated_at == FIXED_TIME


class TestParseFile:
    def test_records_absolute_path(self, tmp_path: Path):
        note = tmp_path / "note.md"
        note.write_text("Line ^b1a2c3\n", encoding="utf-8")

        blocks = parse_file(note)

        assert blocks[0].file_path == str(note.resolve())

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(ParseError):
            parse_file(tmp_path / "missing.md")

    def test_undecodable_file_raises(self, tmp_path: Path):
        note = tmp_path / "binary.md"
        note.write_bytes(b"\xff\xfe\xfa bad ^b1a2c3\n")
        with pytest.raises(ParseError):
            parse_file(note)


# ─────────────────────────────────────────────────────────────────────────────
# Line Classification
# ─────────────────────────────────────────────────────────────────────────────


class TestLineClassification:
    @pytest.mark.parametrize(
        "line,expected",
        [
            ("- bullet", True),
            ("* bullet", True),
            ("+ bullet", True),
            ("12. numbered", True),
            ("Plain paragraph", True),
            ("## Heading", False),
            ("---", False),
            ("***", False),
            ("___", False),
            ("<!-- comment", False),
        ],
    )
    def test_is_block_line(self, line: str, expected: bool):
        assert is_block_line(line) is expected

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("# Title", "heading"),
            ("###### Deep", "heading"),
            ("#hashtag", "line"),
            ("- item", "list_item"),
            ("3. item", "list_item"),
            ("Text", "line"),
        ],
    )
    def test_classify_line(self, line: str, expected: str):
        assert classify_line(line) == expected

    def test_parse_heading_strips_marker_and_closing_hashes(self):
        assert parse_heading("## Topic ^h1a2b3") == (2, "Topic")
        assert parse_heading("### Closed ###") == (3, "Closed")
        assert parse_heading("Not a heading") is None


class TestScanState:
    def test_equal_level_heading_replaces_sibling(self):
        lines = ["# A", "## B", "## C", "### D"]
        state = ScanState()
        list(scan_lines(lines, state))
        assert [h.title for h in state.open_headings] == ["A", "C", "D"]

    def test_shallower_heading_pops_deeper_ones(self):
        lines = ["# A", "## B", "### C", "# E"]
        state = ScanState()
        list(scan_lines(lines, state))
        assert [h.title for h in state.open_headings] == ["E"]

    def test_fence_state_left_open_at_end(self):
        state = ScanState()
        scanned = list(scan_lines(["Text", "```", "code"], state))
        assert [s.stripped for s in scanned] == ["Text"]
        assert state.in_fence is True

    def test_frontmatter_requires_closing_marker(self):
        assert frontmatter_end(["---", "title: x", "---", "body"]) == 2
        assert frontmatter_end(["---", "no close"]) is None
        assert frontmatter_end(["body", "---"]) is None

    def test_frontmatter_must_be_a_yaml_mapping(self):
        assert frontmatter_end(["---", "- a list", "---"]) is None
        assert frontmatter_end(["---", "Just prose", "---"]) is None
        assert frontmatter_end(["---", "key: [unclosed", "---"]) is None
        assert frontmatter_end(["", "---", "tags: [a, b]", "---"]) == 3


# ─────────────────────────────────────────────────────────────────────────────
# Reference Extraction
# ─────────────────────────────────────────────────────────────────────────────


class TestReferences:
    def test_both_syntaxes_every_occurrence(self):
        text = "See ((^B1A2C3)), notes/x.md#^b9f8e7 and again (( ^b1a2c3 ))"
        assert extract_ref_targets(text) == ["b1a2c3", "b1a2c3", "b9f8e7"]

    def test_no_references(self):
        assert extract_ref_targets("Plain text with a caret ^ alone") == []

    def test_edges_point_from_the_containing_block(self):
        blocks = [
            make_block("b00001", "Links ((^b00002)) and ((^zzzz99))"),
            make_block("b00002", "No links"),
        ]
        refs = extract_references(blocks)
        assert [(r.from_block_id, r.to_block_id) for r in refs] == [
            ("b00001", "b00002"),
            ("b00001", "zzzz99"),
        ]

    def test_heading_reference_not_inherited_by_children(self):
        text = "# See ((^b77777)) ^h00001\nChild line ^b00001\n"
        blocks = parse_blocks(text, "/vault/note.md")
        refs = extract_references(blocks)
        assert [(r.from_block_id, r.to_block_id) for r in refs] == [("h00001", "b77777")]
