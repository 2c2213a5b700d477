"""Shared test fixtures for the blockbrain test suite.

Design:
- project: isolated project root (vault/ + brain.db) selected via BRAIN_ROOT
- runner / cli_invoke: CliRunner bound to that project
- make_block: build Block models without touching disk
"""

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Generator

import pytest
from click.testing import CliRunner

from blockbrain.cli import cli
from blockbrain.models import Block
from blockbrain.parser.blocks import hash_content

FIXED_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


def fts5_available() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("CREATE VIRTUAL TABLE t USING fts5(content)")
        return True
    except sqlite3.OperationalError:
        return False
    finally:
        conn.close()


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create an isolated project root with an empty vault/ directory.

    Usage:
        def test_something(project):
            (project / "vault" / "note.md").write_text("Line ^b1a2c3\\n")
    """
    root = tmp_path / "project"
    (root / "vault").mkdir(parents=True)

    monkeypatch.setenv("BRAIN_ROOT", str(root))
    monkeypatch.delenv("BRAIN_VAULT", raising=False)
    monkeypatch.delenv("BRAIN_DB", raising=False)
    monkeypatch.delenv("BRAIN_EDITOR", raising=False)

    yield root


@pytest.fixture
def vault(project: Path) -> Path:
    return project / "vault"


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def cli_invoke(runner: CliRunner, project: Path):
    """Helper for invoking the CLI against the isolated project.

    Usage:
        def test_find(cli_invoke):
            result = cli_invoke(["find", "quantum"])
            assert result.exit_code == 0
    """

    def _invoke(args: list[str], catch_exceptions: bool = False):
        return runner.invoke(
            cli,
            args,
            catch_exceptions=catch_exceptions,
            env={
                "BRAIN_ROOT": str(project),
                "BRAIN_VAULT": None,
                "BRAIN_DB": None,
                "BRAIN_EDITOR": None,
            },
        )

    return _invoke


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions (for test code, not fixtures)
# ─────────────────────────────────────────────────────────────────────────────


def write_note(vault: Path, rel_path: str, content: str) -> Path:
    """Write a Markdown note under the vault, creating parent directories."""
    path = vault / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def make_block(
    block_id: str,
    content: str,
    file_path: str = "/vault/note.md",
    line: int = 1,
    block_type: str = "line",
    heading_path: str = "",
) -> Block:
    return Block(
        id=block_id,
        file_path=file_path,
        line_start=line,
        line_end=line,
        block_type=block_type,
        heading_path=heading_path,
        content=content,
        content_hash=hash_content(content),
        updated_at=FIXED_TIME,
    )
