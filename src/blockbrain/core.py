"""Core operations behind each CLI command.

Every function takes an explicitly opened BlockStore; nothing here keeps
module-level state. Errors propagate: an unreadable file or a storage
failure aborts the whole command.
"""

import logging
import shutil
import subprocess
from pathlib import Path

from .config import DEFAULT_FIND_LIMIT, DEFAULT_SUGGEST_LIMIT, DEFAULT_SUGGEST_MIN_SCORE
from .errors import BrainError
from .graph import build_graph
from .models import Block, BlockGraph, BlockLocation, IndexStats, LinkSuggestion
from .parser import extract_references, parse_file
from .similarity import rank_similar
from .stamper import gather_markdown_files
from .store import BlockStore

log = logging.getLogger(__name__)

# Editors that accept "+LINE FILE"
_PLUS_LINE_EDITORS = {"vi", "vim", "nvim", "nano", "emacs", "micro", "hx", "helix", "kak"}


def resolve_target(root: Path, target: str) -> Path:
    """Resolve a user-supplied path against the project root.

    Raises:
        BrainError: If the resolved path does not exist.
    """
    path = Path(target).expanduser()
    if not path.is_absolute():
        path = root / path
    if not path.exists():
        raise BrainError.path_not_found(target)
    return path.resolve()


def init_store(store: BlockStore) -> None:
    store.init_schema()


def rebuild_index(store: BlockStore, vault: Path) -> IndexStats:
    """Replace the whole index with the blocks and references in the vault.

    Runs in one transaction: if any file fails to parse, the previous index
    is left untouched.

    Raises:
        BrainError: If the vault directory does not exist.
        ParseError: If any file cannot be read.
    """
    if not vault.is_dir():
        raise BrainError.vault_not_found(str(vault))

    store.init_schema()
    files = gather_markdown_files(vault)
    stats = IndexStats(files=len(files))

    with store.transaction():
        store.clear()
        for md_file in files:
            blocks = parse_file(md_file)
            stats.blocks += store.upsert_blocks(blocks)
            stats.refs += store.insert_refs(extract_references(blocks))

    log.info("Indexed %d files, %d blocks, %d refs", stats.files, stats.blocks, stats.refs)
    return stats


def find_blocks(store: BlockStore, query: str, limit: int = DEFAULT_FIND_LIMIT) -> list[Block]:
    store.init_schema()
    return store.search(query, limit)


def get_backlinks(store: BlockStore, block_id: str) -> list[Block]:
    store.init_schema()
    return store.backlinks(block_id)


def get_block(store: BlockStore, block_id: str) -> Block:
    """Look up a block by id.

    Raises:
        BrainError: If no block has this id.
    """
    store.init_schema()
    block = store.get_block(block_id)
    if block is None:
        raise BrainError.block_not_found(block_id)
    return block


def suggest_links(
    store: BlockStore,
    block_id: str,
    limit: int = DEFAULT_SUGGEST_LIMIT,
    min_score: float = DEFAULT_SUGGEST_MIN_SCORE,
) -> list[LinkSuggestion]:
    """Suggest blocks to link from block_id, skipping ones it already references.

    Raises:
        BrainError: If the source block is not indexed.
    """
    source = get_block(store, block_id)
    linked = store.outgoing_targets(source.id)
    return rank_similar(source, store.all_blocks(), linked, limit=limit, min_score=min_score)


def locate_block(store: BlockStore, block_id: str) -> BlockLocation:
    block = get_block(store, block_id)
    return BlockLocation(id=block.id, file_path=block.file_path, line=block.line_start)


def editor_command(editor: str, location: BlockLocation) -> list[str]:
    """Build the argv that opens an editor at a block's line."""
    name = Path(editor).name
    if name in ("code", "code-insiders", "codium"):
        return [editor, "--goto", f"{location.file_path}:{location.line}:1"]
    if name in _PLUS_LINE_EDITORS:
        return [editor, f"+{location.line}", location.file_path]
    if name == "subl":
        return [editor, f"{location.file_path}:{location.line}"]
    return [editor, location.file_path]


def open_in_editor(editor: str, location: BlockLocation) -> bool:
    """Start the editor without waiting for it.

    Returns:
        True if the editor was launched, False if it is not on PATH.
    """
    if shutil.which(editor) is None:
        log.debug("Editor %s not found on PATH", editor)
        return False

    argv = editor_command(editor, location)
    log.debug("Launching %s", argv)
    subprocess.Popen(argv)
    return True


def build_block_graph(store: BlockStore) -> BlockGraph:
    store.init_schema()
    return build_graph(store.all_blocks(), store.all_refs())
