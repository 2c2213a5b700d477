"""Structured errors for blockbrain commands."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    BLOCK_NOT_FOUND = "BLOCK_NOT_FOUND"
    PATH_NOT_FOUND = "PATH_NOT_FOUND"
    VAULT_NOT_FOUND = "VAULT_NOT_FOUND"
    FILE_READ_ERROR = "FILE_READ_ERROR"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    STORE_ERROR = "STORE_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"


def format_error_json(code: ErrorCode | str, message: str, details: dict | None = None) -> str:
    """Format an error as JSON for --json-errors output."""
    code_value = code.value if isinstance(code, ErrorCode) else code
    error: dict[str, dict[str, Any]] = {"error": {"code": code_value, "message": message}}
    if details:
        error["error"]["details"] = details
    return json.dumps(error)


class BrainError(Exception):
    """An error reported to the user with a stable error code."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def block_not_found(cls, block_id: str) -> BrainError:
        return cls(ErrorCode.BLOCK_NOT_FOUND, f"Block not found: {block_id}", {"id": block_id})

    @classmethod
    def path_not_found(cls, path: str) -> BrainError:
        return cls(ErrorCode.PATH_NOT_FOUND, f"Path not found: {path}", {"path": path})

    @classmethod
    def vault_not_found(cls, path: str) -> BrainError:
        return cls(
            ErrorCode.VAULT_NOT_FOUND,
            f"Vault dir not found: {path}",
            {"path": path, "suggestion": "Create the vault directory or set BRAIN_VAULT"},
        )
