#!/usr/bin/env python3
"""
brain: CLI for a block-addressable Markdown vault

Usage:
    brain init                       # Create the index store
    brain stamp vault/               # Append ^ids to unstamped lines
    brain index                      # Rebuild the index from the vault
    brain find "query"               # Search block content
    brain backlinks b63f8a           # Blocks referencing a block
    brain suggest-links b63f8a       # Lexically similar blocks
    brain graph --format=dot         # Dump the block graph
    brain open b63f8a                # Jump to a block in an editor
"""

from __future__ import annotations

import difflib
import json
import sqlite3
import sys
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as BRAIN_VERSION
from .config import (
    DEFAULT_FIND_LIMIT,
    DEFAULT_SUGGEST_LIMIT,
    DEFAULT_SUGGEST_MIN_SCORE,
    FIND_SNIPPET_LENGTH,
    BrainPaths,
    ConfigurationError,
    get_default_editor,
    resolve_paths,
)
from .errors import BrainError, ErrorCode, format_error_json
from .graph import GRAPH_FORMATS
from .parser import ParseError
from .store import BlockStore


# ─────────────────────────────────────────────────────────────────────────────
# Output Formatting
# ─────────────────────────────────────────────────────────────────────────────


def output(data: Any, as_json: bool = False) -> None:
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def truncate(text: str, limit: int = FIND_SNIPPET_LENGTH) -> str:
    text = text.strip()
    return text[:limit] + "…" if len(text) > limit else text


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Report an error on stderr and exit.

    With --json-errors the error is written as {"error": {...}}.
    """
    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, BrainError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
            suggestion = error.details.get("suggestion")
            if suggestion:
                click.echo(f"Hint: {suggestion}", err=True)
    else:
        code = _infer_error_code(error)
        if json_errors:
            click.echo(format_error_json(code, str(error)), err=True)
        else:
            click.echo(f"Error: {error}", err=True)

    sys.exit(exit_code)


def _infer_error_code(error: Exception) -> ErrorCode:
    if isinstance(error, ParseError):
        return ErrorCode.FILE_READ_ERROR
    if isinstance(error, ConfigurationError):
        return ErrorCode.CONFIG_ERROR
    if isinstance(error, sqlite3.Error):
        return ErrorCode.STORE_ERROR
    if isinstance(error, FileNotFoundError):
        return ErrorCode.PATH_NOT_FOUND
    if isinstance(error, ValueError):
        return ErrorCode.INVALID_ARGUMENT
    return ErrorCode.FILE_READ_ERROR


# Errors reported as "Error: ..." with exit code 1
_REPORTED_ERRORS = (BrainError, ParseError, ConfigurationError, sqlite3.Error, OSError, ValueError)


@contextmanager
def _command_errors(ctx: click.Context) -> Iterator[None]:
    try:
        yield
    except _REPORTED_ERRORS as e:
        _handle_error(ctx, e)


def _paths(ctx: click.Context) -> BrainPaths:
    ctx.ensure_object(dict)
    if "paths" not in ctx.obj:
        with _command_errors(ctx):
            ctx.obj["paths"] = resolve_paths()
    return ctx.obj["paths"]


@contextmanager
def _open_store(ctx: click.Context) -> Iterator[BlockStore]:
    """Open the store for one command and report failures uniformly."""
    paths = _paths(ctx)
    with _command_errors(ctx), BlockStore(paths.db) as store:
        yield store


def get_error_code_for_exception(exc: Exception) -> str:
    """Map Click exceptions to error codes."""
    if isinstance(exc, click.BadParameter):
        return "INVALID_ARGUMENT"
    elif isinstance(exc, click.MissingParameter):
        return "MISSING_ARGUMENT"
    elif isinstance(exc, click.NoSuchOption):
        return "UNKNOWN_OPTION"
    elif isinstance(exc, UsageError):
        return "USAGE_ERROR"
    return "CLI_ERROR"


class JsonErrorGroup(click.Group):
    """Click group that suggests commands for typos and supports --json-errors."""

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            cmd_name = args[0] if args else ""
            if cmd_name and "No such command" in str(e):
                matches = difflib.get_close_matches(
                    cmd_name, self.list_commands(ctx), n=1, cutoff=0.6
                )
                if matches:
                    raise UsageError(f"No such command '{cmd_name}'. Did you mean '{matches[0]}'?")
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Format argument-parsing errors as JSON when --json-errors is present."""
        argv = list(args) if args is not None else list(sys.argv[1:])
        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        # Treat a misplaced --json-errors as the global flag
        argv = ["--json-errors"] + [a for a in argv if a != "--json-errors"]
        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            click.echo(format_error_json(get_error_code_for_exception(e), e.format_message()), err=True)
            raise SystemExit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=BRAIN_VERSION, prog_name="brain")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="BRAIN_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, quiet: bool):
    """brain: Markdown blocks with ^ids and a SQLite index.

    \b
    A block is a non-empty line (list item or paragraph line) ending in an
    ID marker such as ^b63f8a. Headings are indexed when they carry an ID
    but are never stamped automatically.

    \b
    References inside content:
      ((^b63f8a))                    # Embedded block reference
      notes/physics.md#^b63f8a       # File-qualified block link

    \b
    Configuration:
      BRAIN_ROOT     Project root (default: nearest .brainconfig, else cwd)
      BRAIN_VAULT    Vault directory (default: <root>/vault)
      BRAIN_DB       Index store (default: <root>/brain.db)
    """
    from ._logging import set_quiet_mode

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet

    if quiet:
        set_quiet_mode(True)


@cli.command()
@click.pass_context
def init(ctx: click.Context):
    """Create or upgrade the index store."""
    from .core import init_store

    with _open_store(ctx) as store:
        init_store(store)
    click.echo(f"Initialized DB at: {store.path}")


@cli.command()
@click.argument("target")
@click.pass_context
def stamp(ctx: click.Context, target: str):
    """Append block IDs to unstamped lines of Markdown files.

    TARGET is a .md file or a directory searched recursively. Lines inside
    fenced code, headings, horizontal rules and HTML comments are skipped.

    \b
    Examples:
      brain stamp vault/
      brain stamp vault/physics.md
    """
    from .core import resolve_target
    from .stamper import stamp_path

    paths = _paths(ctx)
    with _command_errors(ctx):
        results = stamp_path(resolve_target(paths.root, target))

    for result in results:
        if result.changed:
            click.echo(f"Stamped {result.stamped} blocks in: {result.file_path}")

    total = sum(r.stamped for r in results)
    click.echo(f"Done. Files scanned: {len(results)}, blocks stamped: {total}")


@cli.command()
@click.pass_context
def index(ctx: click.Context):
    """Rebuild the index from every Markdown file in the vault."""
    from .core import rebuild_index

    paths = _paths(ctx)
    with _open_store(ctx) as store:
        stats = rebuild_index(store, paths.vault)

    click.echo(f"Indexed files: {stats.files}")
    click.echo(f"Indexed blocks: {stats.blocks}")
    click.echo(f"Indexed refs: {stats.refs}")


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", default=DEFAULT_FIND_LIMIT, type=int, help="Max results (1-200)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def find(ctx: click.Context, query: str, limit: int, as_json: bool):
    """Search block content.

    Uses the SQLite FTS5 index when available, otherwise a case-sensitive
    substring match.

    \b
    Examples:
      brain find "entanglement"
      brain find "bell inequality" --limit=5
    """
    from .core import find_blocks

    if not query.strip():
        raise UsageError("find requires a query string.")

    with _open_store(ctx) as store:
        blocks = find_blocks(store, query, limit)

    if as_json:
        output([b.model_dump(mode="json") for b in blocks], as_json=True)
        return

    if not blocks:
        click.echo("No matches.")
        return

    for block in blocks:
        click.echo(f"{block.id}  {block.file_path}:{block.line_start}")
        click.echo(f"  {truncate(block.content)}\n")


@cli.command()
@click.argument("block_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def backlinks(ctx: click.Context, block_id: str, as_json: bool):
    """List blocks that reference BLOCK_ID, by file then line."""
    from .core import get_backlinks

    with _open_store(ctx) as store:
        blocks = get_backlinks(store, block_id)

    if as_json:
        output([b.model_dump(mode="json") for b in blocks], as_json=True)
        return

    if not blocks:
        click.echo(f"No backlinks to {block_id.lower()}.")
        return

    for block in blocks:
        click.echo(f"{block.id}  {block.file_path}:{block.line_start}")
        click.echo(f"  {truncate(block.content)}\n")


@cli.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(GRAPH_FORMATS),
    default="dot",
    show_default=True,
    help="Output format",
)
@click.option("--output", "-o", "output_file", type=click.Path(dir_okay=False), help="Write to file")
@click.pass_context
def graph(ctx: click.Context, fmt: str, output_file: str | None):
    """Dump every block and reference as a graph.

    \b
    Examples:
      brain graph --format=dot | dot -Tsvg > brain.svg
      brain graph --format=json -o graph.json
    """
    from .core import build_block_graph
    from .graph import render_graph

    with _open_store(ctx) as store:
        block_graph = build_block_graph(store)

    if not block_graph.nodes:
        click.echo("No blocks indexed.", err=True)

    rendered = render_graph(block_graph, fmt)  # type: ignore[arg-type]
    if output_file:
        with _command_errors(ctx):
            Path(output_file).write_text(rendered, encoding="utf-8")
        click.echo(f"Wrote {len(block_graph.nodes)} nodes, {len(block_graph.edges)} edges to {output_file}")
    else:
        click.echo(rendered, nl=False)


@cli.command("suggest-links")
@click.argument("block_id")
@click.option("--limit", "-n", default=DEFAULT_SUGGEST_LIMIT, type=int, help="Max suggestions (1-100)")
@click.option(
    "--min-score",
    default=DEFAULT_SUGGEST_MIN_SCORE,
    type=float,
    help="Drop candidates scoring below this",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def suggest_links(ctx: click.Context, block_id: str, limit: int, min_score: float, as_json: bool):
    """Suggest blocks to link to from BLOCK_ID by shared terms.

    Blocks already referenced from BLOCK_ID are not suggested.

    \b
    Examples:
      brain suggest-links b63f8a
      brain suggest-links b63f8a --limit=5 --min-score=0.3
    """
    from .core import suggest_links as core_suggest_links

    with _open_store(ctx) as store:
        suggestions = core_suggest_links(store, block_id, limit=limit, min_score=min_score)

    if as_json:
        output([s.model_dump() for s in suggestions], as_json=True)
        return

    if not suggestions:
        click.echo("No link suggestions found.")
        return

    click.echo(f"Suggested links for {block_id.lower()}:\n")
    for s in suggestions:
        click.echo(f"  {s.id} ({s.score:.3f})  {s.file_path}:{s.line_start}")
        click.echo(f"    {truncate(s.content)}")


@cli.command("open")
@click.argument("block_id")
@click.option("--editor", default=None, help="Editor command (default: $BRAIN_EDITOR or code)")
@click.option("--print", "print_only", is_flag=True, help="Only print file:line")
@click.option("--json", "as_json", is_flag=True, help="Output location as JSON")
@click.pass_context
def open_cmd(ctx: click.Context, block_id: str, editor: str | None, print_only: bool, as_json: bool):
    """Resolve BLOCK_ID to file:line and open it in an editor.

    Prints the location instead when the editor is not installed.

    \b
    Examples:
      brain open b63f8a
      brain open b63f8a --editor=nvim
      brain open b63f8a --print
    """
    from .core import locate_block, open_in_editor

    with _open_store(ctx) as store:
        location = locate_block(store, block_id)

    if as_json:
        output(location.model_dump(), as_json=True)
        return

    editor = editor or get_default_editor()
    if not print_only:
        with _command_errors(ctx):
            launched = open_in_editor(editor, location)
        if launched:
            click.echo(f"Opened {location} in {editor}")
            return

    click.echo(str(location))


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for brain CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()
