"""Block graph export (Graphviz DOT and JSON)."""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Literal

from .models import Block, BlockGraph, GraphEdge, GraphNode, Reference

GraphFormat = Literal["dot", "json"]
GRAPH_FORMATS: tuple[str, ...] = ("dot", "json")


def _node_label(block: Block) -> str:
    return f"{block.id}\n{Path(block.file_path).name}:{block.line_start}"


def build_graph(blocks: Sequence[Block], refs: Sequence[Reference]) -> BlockGraph:
    """Assemble nodes and edges. Dangling targets become unresolved nodes."""
    nodes = [
        GraphNode(
            id=block.id,
            label=_node_label(block),
            file_path=block.file_path,
            line=block.line_start,
            block_type=block.block_type,
        )
        for block in blocks
    ]
    known = {block.id for block in blocks}

    for target in dict.fromkeys(ref.to_block_id for ref in refs):
        if target not in known:
            nodes.append(GraphNode(id=target, label=target, resolved=False))
            known.add(target)

    edges = [GraphEdge(source=ref.from_block_id, target=ref.to_block_id) for ref in refs]
    return BlockGraph(nodes=nodes, edges=edges)


def _dot_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def to_dot(graph: BlockGraph) -> str:
    lines = ["digraph brain {", "  node [shape=box];"]
    for node in graph.nodes:
        attrs = f"label={_dot_quote(node.label)}"
        if not node.resolved:
            attrs += ", style=dashed"
        lines.append(f"  {_dot_quote(node.id)} [{attrs}];")
    for edge in graph.edges:
        lines.append(f"  {_dot_quote(edge.source)} -> {_dot_quote(edge.target)};")
    lines.append("}")
    return "\n".join(lines) + "\n"


def to_json(graph: BlockGraph) -> str:
    return json.dumps(graph.model_dump(), indent=2) + "\n"


def render_graph(graph: BlockGraph, fmt: GraphFormat) -> str:
    """Render a graph in the requested format.

    Raises:
        ValueError: If the format is not one of GRAPH_FORMATS.
    """
    if fmt == "dot":
        return to_dot(graph)
    if fmt == "json":
        return to_json(graph)
    raise ValueError(f"Unknown graph format: {fmt}")
