"""Configuration management for blockbrain.

This module contains all configurable constants and the project-root
discovery logic. Magic numbers are documented here rather than scattered
throughout the codebase.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

CONFIG_FILENAME = ".brainconfig"
DEFAULT_VAULT_DIRNAME = "vault"
DEFAULT_DB_FILENAME = "brain.db"


class ConfigurationError(Exception):
    """Raised when configuration is missing or malformed."""

    pass


@dataclass(frozen=True)
class BrainPaths:
    """Resolved locations for one invocation."""

    root: Path
    vault: Path
    db: Path


def _discover_project_config(start_dir: Path | None = None, max_depth: int = 10) -> Path | None:
    """Walk up from start_dir looking for a .brainconfig file.

    Args:
        start_dir: Directory to start from (defaults to cwd).
        max_depth: Maximum directories to traverse up.

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        config_file = current / CONFIG_FILENAME
        if config_file.is_file():
            return config_file

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def _load_config_file(config_file: Path) -> dict:
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_file} must contain a YAML mapping")
    return data


def get_project_root(start_dir: Path | None = None) -> Path:
    """Get the project root directory.

    Discovery order:
    1. BRAIN_ROOT environment variable (explicit override)
    2. Walk up from cwd looking for .brainconfig
    3. The current working directory
    """
    root = os.environ.get("BRAIN_ROOT")
    if root:
        return Path(root).resolve()

    config_file = _discover_project_config(start_dir)
    if config_file:
        return config_file.parent

    return Path(start_dir or os.getcwd()).resolve()


def resolve_paths(start_dir: Path | None = None) -> BrainPaths:
    """Resolve the project root, vault directory and store file.

    BRAIN_VAULT and BRAIN_DB override the individual locations. Otherwise
    vault_path/db_path from .brainconfig apply, relative to the project root.

    Raises:
        ConfigurationError: If .brainconfig exists but cannot be parsed.
    """
    root = get_project_root(start_dir)

    data: dict = {}
    config_file = root / CONFIG_FILENAME
    if config_file.is_file():
        data = _load_config_file(config_file)

    vault = root / str(data.get("vault_path", DEFAULT_VAULT_DIRNAME))
    db = root / str(data.get("db_path", DEFAULT_DB_FILENAME))

    if os.environ.get("BRAIN_VAULT"):
        vault = Path(os.environ["BRAIN_VAULT"])
    if os.environ.get("BRAIN_DB"):
        db = Path(os.environ["BRAIN_DB"])

    return BrainPaths(root=root, vault=vault.resolve(), db=db.resolve())


def get_default_editor() -> str:
    """Editor used by `open` when --editor is not given."""
    return os.environ.get("BRAIN_EDITOR", "code")


# =============================================================================
# Block Identifiers
# =============================================================================

# Stamped IDs are a fixed letter plus hex digits, e.g. "b63f8a"
BLOCK_ID_PREFIX = "b"
BLOCK_ID_HEX_DIGITS = 5

# Random candidates tried before falling back to a time-derived ID
ID_GENERATION_ATTEMPTS = 50


# =============================================================================
# Search Limits
# =============================================================================

DEFAULT_FIND_LIMIT = 20
MIN_FIND_LIMIT = 1
MAX_FIND_LIMIT = 200

# Characters of content shown per `find` result
FIND_SNIPPET_LENGTH = 140


# =============================================================================
# Link Suggestions
# =============================================================================

DEFAULT_SUGGEST_LIMIT = 10
MAX_SUGGEST_LIMIT = 100

# Any overlap scores above zero, so 0.0 keeps every overlapping candidate
DEFAULT_SUGGEST_MIN_SCORE = 0.0
