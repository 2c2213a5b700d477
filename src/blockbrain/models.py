"""Pydantic models for the block index."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

BlockType = Literal["heading", "list_item", "line"]


class Block(BaseModel):
    """An addressable line (or heading section) of a Markdown file."""

    id: str  # Lowercase identifier from the trailing ^id marker
    file_path: str  # Absolute path of the owning file
    line_start: int  # 1-based, inclusive
    line_end: int  # 1-based, inclusive; extends over the section for headings
    block_type: BlockType = "line"
    heading_path: str = ""  # "Topic > Subtopic", empty outside any heading
    content: str  # Marker stripped; non-headings prefixed with heading_path
    content_hash: str
    updated_at: datetime


class Reference(BaseModel):
    """A directed edge between two block ids. The target may not exist."""

    from_block_id: str
    to_block_id: str


class BlockLocation(BaseModel):
    """Where a block lives on disk."""

    id: str
    file_path: str
    line: int

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}"


class LinkSuggestion(BaseModel):
    """A candidate block to link to, scored by lexical overlap."""

    id: str
    file_path: str
    line_start: int
    content: str
    score: float
    shared_terms: list[str] = Field(default_factory=list)  # Overlapping terms, best first


class StampResult(BaseModel):
    """Outcome of stamping a single file."""

    file_path: str
    changed: bool
    stamped: int
    ids: list[str] = Field(default_factory=list)  # IDs appended during this pass


class IndexStats(BaseModel):
    """Aggregate counts from an index rebuild."""

    files: int = 0
    blocks: int = 0
    refs: int = 0


class GraphNode(BaseModel):
    """A node in the exported block graph."""

    id: str
    label: str
    file_path: str | None = None
    line: int | None = None
    block_type: BlockType | None = None
    resolved: bool = True  # False for dangling reference targets


class GraphEdge(BaseModel):
    """A directed edge in the exported block graph."""

    source: str
    target: str


class BlockGraph(BaseModel):
    """Full node/edge dump of the index."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
