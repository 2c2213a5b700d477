"""Block reference extraction.

Two inline forms point at another block:

    ((^b63f8a))           embedded block reference
    notes/physics.md#^b63f8a   file-qualified block link

Every occurrence yields one edge. Targets are not checked against the index.
"""

import re
from collections.abc import Iterable

from ..models import Block, Reference
from .blocks import block_text

EMBED_REF_PATTERN = re.compile(r"\(\(\s*\^([a-z0-9]{4,12})\s*\)\)", re.IGNORECASE)
HASH_REF_PATTERN = re.compile(r"#\^([a-z0-9]{4,12})\b", re.IGNORECASE)


def extract_ref_targets(text: str) -> list[str]:
    """Return lowercase target ids in the order: embed refs, then hash refs."""
    targets = [m.lower() for m in EMBED_REF_PATTERN.findall(text)]
    targets.extend(m.lower() for m in HASH_REF_PATTERN.findall(text))
    return targets


def extract_references(blocks: Iterable[Block]) -> list[Reference]:
    """Extract (from, to) references from each block's own text."""
    refs: list[Reference] = []
    for block in blocks:
        for target in extract_ref_targets(block_text(block)):
            refs.append(Reference(from_block_id=block.id, to_block_id=target))
    return refs
