"""SQLite-backed block index.

Store location: {project_root}/brain.db (see config.resolve_paths).

Tables:
    blocks      one row per block id (upserted)
    refs        append-only (from_block_id, to_block_id) edges
    blocks_fts  FTS5 index over block content, when SQLite has FTS5
    meta        schema version
"""

from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from .config import MAX_FIND_LIMIT, MIN_FIND_LIMIT
from .models import Block, Reference

log = logging.getLogger(__name__)

SCHEMA_VERSION = 2

_BLOCK_FIELDS = (
    "id",
    "file_path",
    "line_start",
    "line_end",
    "block_type",
    "heading_path",
    "content",
    "content_hash",
    "updated_at",
)
_BLOCK_COLUMNS = ", ".join(_BLOCK_FIELDS)
_JOINED_BLOCK_COLUMNS = ", ".join(f"b.{field}" for field in _BLOCK_FIELDS)

# FTS5 unicode61 token characters
_TOKEN_PATTERN = re.compile(r"[^\W_]+")

# Columns added after the first schema version: name -> DDL type
_ADDED_BLOCK_COLUMNS = {
    "block_type": "TEXT NOT NULL DEFAULT 'line'",
    "heading_path": "TEXT NOT NULL DEFAULT ''",
}


def fts_query(query: str) -> str:
    """Quote each whitespace-separated term so FTS5 syntax never errors."""
    return " ".join('"' + term.replace('"', '""') + '"' for term in query.split())


def contains_terms(content: str, query: str) -> bool:
    """Whether every query term occurs in content as whole tokens.

    Tokens follow the FTS5 unicode61 rule (runs of letters and digits) but
    compare case-sensitively, so a substring hit is never broader than the
    matching full-text query.
    """
    tokens = _TOKEN_PATTERN.findall(content)
    for term in query.split():
        phrase = _TOKEN_PATTERN.findall(term)
        if not phrase:
            return False
        size = len(phrase)
        if not any(tokens[i : i + size] == phrase for i in range(len(tokens) - size + 1)):
            return False
    return True


def _row_to_block(row: sqlite3.Row) -> Block:
    return Block.model_validate(dict(row))


class BlockStore:
    """Index store for blocks, references and full-text search.

    Usage:
        with BlockStore(db_path) as store:
            store.init_schema()
            store.get_block("b63f8a")
    """

    def __init__(self, db_path: Path) -> None:
        self._path = db_path
        self._conn: sqlite3.Connection | None = None
        self._has_fts: bool | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> BlockStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back if the body raises."""
        with self.conn as conn:
            yield conn

    # ─────────────────────────────────────────────────────────────────────
    # Schema
    # ─────────────────────────────────────────────────────────────────────

    def init_schema(self) -> None:
        """Create or upgrade the schema. Safe to call repeatedly."""
        conn = self.conn
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS blocks (
                id TEXT PRIMARY KEY,
                file_path TEXT NOT NULL,
                line_start INTEGER NOT NULL,
                line_end INTEGER NOT NULL,
                block_type TEXT NOT NULL DEFAULT 'line',
                heading_path TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL,
                content_hash TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        existing = {row["name"] for row in conn.execute("PRAGMA table_info(blocks)")}
        for column, ddl in _ADDED_BLOCK_COLUMNS.items():
            if column not in existing:
                log.info("Adding column blocks.%s", column)
                conn.execute(f"ALTER TABLE blocks ADD COLUMN {column} {ddl}")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS refs (
                from_block_id TEXT NOT NULL,
                to_block_id TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_refs_from ON refs (from_block_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_refs_to ON refs (to_block_id)")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        self._init_fts(conn)
        conn.commit()

    def _init_fts(self, conn: sqlite3.Connection) -> None:
        row = conn.execute(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'blocks_fts'"
        ).fetchone()
        # Contentless tables cannot return the id column needed for joins
        if row is not None and "content=''" in (row["sql"] or "").replace(" ", ""):
            log.info("Rebuilding contentless blocks_fts table")
            conn.execute("DROP TABLE blocks_fts")

        try:
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS blocks_fts
                USING fts5(id UNINDEXED, content, file_path UNINDEXED)
                """
            )
        except sqlite3.OperationalError as e:
            log.info("FTS5 unavailable, search falls back to substring matching: %s", e)
        self._has_fts = None

    def has_fts(self) -> bool:
        if self._has_fts is None:
            row = self.conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'blocks_fts'"
            ).fetchone()
            self._has_fts = row is not None
        return self._has_fts

    # ─────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────

    def clear(self) -> None:
        """Delete every block, reference and search row."""
        self.conn.execute("DELETE FROM refs")
        self.conn.execute("DELETE FROM blocks")
        if self.has_fts():
            self.conn.execute("DELETE FROM blocks_fts")

    def upsert_blocks(self, blocks: Iterable[Block]) -> int:
        """Insert blocks, overwriting every column of an existing id."""
        conn = self.conn
        use_fts = self.has_fts()
        count = 0
        for block in blocks:
            conn.execute(
                f"""
                INSERT INTO blocks ({_BLOCK_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    file_path = excluded.file_path,
                    line_start = excluded.line_start,
                    line_end = excluded.line_end,
                    block_type = excluded.block_type,
                    heading_path = excluded.heading_path,
                    content = excluded.content,
                    content_hash = excluded.content_hash,
                    updated_at = excluded.updated_at
                """,
                (
                    block.id,
                    block.file_path,
                    block.line_start,
                    block.line_end,
                    block.block_type,
                    block.heading_path,
                    block.content,
                    block.content_hash,
                    block.updated_at.isoformat(),
                ),
            )
            if use_fts:
                # blocks_fts.rowid mirrors blocks.rowid
                rowid = conn.execute("SELECT rowid FROM blocks WHERE id = ?", (block.id,)).fetchone()[0]
                conn.execute("DELETE FROM blocks_fts WHERE rowid = ?", (rowid,))
                conn.execute(
                    "INSERT INTO blocks_fts (rowid, id, content, file_path) VALUES (?, ?, ?, ?)",
                    (rowid, block.id, block.content, block.file_path),
                )
            count += 1
        return count

    def insert_refs(self, refs: Iterable[Reference]) -> int:
        rows = [(ref.from_block_id, ref.to_block_id) for ref in refs]
        if rows:
            self.conn.executemany(
                "INSERT INTO refs (from_block_id, to_block_id) VALUES (?, ?)", rows
            )
        return len(rows)

    # ─────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────

    def get_block(self, block_id: str) -> Block | None:
        row = self.conn.execute(
            f"SELECT {_BLOCK_COLUMNS} FROM blocks WHERE id = ? LIMIT 1",
            (block_id.lower(),),
        ).fetchone()
        return _row_to_block(row) if row else None

    def search(self, query: str, limit: int) -> list[Block]:
        """Full-text search over content, or substring search without FTS5."""
        limit = max(MIN_FIND_LIMIT, min(limit, MAX_FIND_LIMIT))

        if self.has_fts():
            match = fts_query(query)
            if not match:
                return []
            rows = self.conn.execute(
                f"""
                SELECT {_JOINED_BLOCK_COLUMNS}
                FROM (
                    SELECT id, rank FROM blocks_fts WHERE blocks_fts MATCH ?
                ) f
                JOIN blocks b ON b.id = f.id
                ORDER BY f.rank, b.id
                LIMIT ?
                """,
                (match, limit),
            ).fetchall()
        else:
            # instr() is case-sensitive, unlike LIKE
            candidates = self.conn.execute(
                f"""
                SELECT {_BLOCK_COLUMNS} FROM blocks
                WHERE instr(content, ?) > 0
                ORDER BY file_path, line_start
                """,
                (query,),
            ).fetchall()
            rows = [row for row in candidates if contains_terms(row["content"], query)][:limit]
        return [_row_to_block(row) for row in rows]

    def backlinks(self, block_id: str) -> list[Block]:
        """Blocks that reference ``block_id``, ordered by file then line."""
        rows = self.conn.execute(
            f"""
            SELECT DISTINCT {_JOINED_BLOCK_COLUMNS}
            FROM refs r
            JOIN blocks b ON b.id = r.from_block_id
            WHERE r.to_block_id = ?
            ORDER BY b.file_path, b.line_start
            """,
            (block_id.lower(),),
        ).fetchall()
        return [_row_to_block(row) for row in rows]

    def outgoing_targets(self, block_id: str) -> set[str]:
        rows = self.conn.execute(
            "SELECT to_block_id FROM refs WHERE from_block_id = ?", (block_id.lower(),)
        ).fetchall()
        return {row["to_block_id"] for row in rows}

    def all_blocks(self) -> list[Block]:
        rows = self.conn.execute(
            f"SELECT {_BLOCK_COLUMNS} FROM blocks ORDER BY file_path, line_start"
        ).fetchall()
        return [_row_to_block(row) for row in rows]

    def all_refs(self) -> list[Reference]:
        rows = self.conn.execute(
            "SELECT from_block_id, to_block_id FROM refs ORDER BY rowid"
        ).fetchall()
        return [Reference(from_block_id=r["from_block_id"], to_block_id=r["to_block_id"]) for r in rows]

    def counts(self) -> tuple[int, int]:
        """Return (block_count, ref_count)."""
        blocks = self.conn.execute("SELECT COUNT(*) FROM blocks").fetchone()[0]
        refs = self.conn.execute("SELECT COUNT(*) FROM refs").fetchone()[0]
        return int(blocks), int(refs)
