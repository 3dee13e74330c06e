"""Structured errors for mdvault.

Every error raised across a module boundary is an ``MdvaultError`` carrying
an ``ErrorCode``, a human message and optional details. The CLI renders them
as plain text or, with ``--json-errors``, as::

    {"error": {"code": "AMBIGUOUS_TARGET", "message": "...", "details": {...}}}
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for programmatic consumers."""

    AMBIGUOUS_TARGET = "AMBIGUOUS_TARGET"
    UNRESOLVABLE_TARGET = "UNRESOLVABLE_TARGET"
    SUBPROCESS_UNAVAILABLE = "SUBPROCESS_UNAVAILABLE"
    WRITE_FAILURE = "WRITE_FAILURE"
    RENAME_FAILED = "RENAME_FAILED"
    CANCELLED = "CANCELLED"
    INVALID_PATH = "INVALID_PATH"
    INVALID_QUERY = "INVALID_QUERY"
    INVALID_STRATEGY = "INVALID_STRATEGY"
    PARSE_ERROR = "PARSE_ERROR"
    TASK_FAILED = "TASK_FAILED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


def format_error_json(code: ErrorCode | str, message: str, details: dict | None = None) -> str:
    """Format an error as a JSON document for --json-errors output."""
    error: dict[str, dict[str, Any]] = {
        "error": {"code": code.value if isinstance(code, ErrorCode) else code, "message": message}
    }
    if details:
        error["error"]["details"] = details
    return json.dumps(error, default=str)


class MdvaultError(Exception):
    """Base class for all mdvault errors."""

    def __init__(self, code: ErrorCode, message: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class AmbiguousResolutionError(MdvaultError):
    """More than one vault file ties for the best match of a link target."""

    def __init__(self, target: str, candidates: list[str]):
        self.target = target
        self.candidates = sorted(candidates)
        super().__init__(
            ErrorCode.AMBIGUOUS_TARGET,
            f"Ambiguous link target '{target}': matches {', '.join(self.candidates)}",
            {"target": target, "candidates": self.candidates},
        )


class UnresolvableTargetError(MdvaultError):
    """A link target does not point at any known vault file."""

    def __init__(self, target: str, source: str | None = None):
        self.target = target
        self.source = source
        where = f" (linked from {source})" if source else ""
        super().__init__(
            ErrorCode.UNRESOLVABLE_TARGET,
            f"Link target not found in vault: '{target}'{where}",
            {"target": target, "source": source},
        )


class SubprocessUnavailableError(MdvaultError):
    """The external search tool is missing or failed."""

    def __init__(self, tool: str, reason: str):
        self.tool = tool
        self.reason = reason
        super().__init__(
            ErrorCode.SUBPROCESS_UNAVAILABLE,
            f"{tool} unavailable: {reason}",
            {"tool": tool, "reason": reason},
        )


class WriteFailureError(MdvaultError):
    """One or more files could not be written.

    Attributes:
        failures: Mapping of vault-relative path to the error message.
    """

    def __init__(self, failures: dict[str, str]):
        self.failures = dict(failures)
        paths = ", ".join(sorted(self.failures))
        super().__init__(
            ErrorCode.WRITE_FAILURE,
            f"Failed to write {len(self.failures)} file(s): {paths}",
            {"failures": self.failures},
        )


class RenameFailureError(MdvaultError):
    """The final source to target rename failed after links were rewritten."""

    def __init__(self, source: str, target: str, reason: str, rolled_back: bool):
        self.source = source
        self.target = target
        self.rolled_back = rolled_back
        state = (
            "link updates were rolled back"
            if rolled_back
            else "updated links now point at a path that does not exist"
        )
        super().__init__(
            ErrorCode.RENAME_FAILED,
            f"Failed to rename {source} to {target}: {reason} ({state})",
            {"source": source, "target": target, "reason": reason, "rolled_back": rolled_back},
        )


class OperationCancelledError(MdvaultError):
    """The operation was cancelled or its deadline passed.

    Attributes:
        partial: Whatever result had been accumulated when cancellation was seen.
    """

    def __init__(self, reason: str = "operation cancelled", partial: Any = None):
        self.partial = partial
        super().__init__(ErrorCode.CANCELLED, reason)


class InvalidPathError(MdvaultError):
    """A path is missing, already taken, or escapes the vault."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(ErrorCode.INVALID_PATH, message, {"path": path} if path else None)


class QueryParseError(MdvaultError):
    """A filter query could not be parsed."""

    def __init__(self, query: str, reason: str):
        super().__init__(
            ErrorCode.INVALID_QUERY,
            f"Invalid query '{query}': {reason}",
            {"query": query},
        )


class InvalidStrategyError(MdvaultError):
    """An unknown link rewrite strategy was requested."""

    def __init__(self, name: str, valid: list[str]):
        super().__init__(
            ErrorCode.INVALID_STRATEGY,
            f"Invalid link strategy '{name}'. Valid strategies: {', '.join(valid)}",
            {"strategy": name, "valid": valid},
        )


class ParseError(MdvaultError):
    """A markdown file could not be read or its frontmatter parsed."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(ErrorCode.PARSE_ERROR, f"{path}: {message}", {"path": path})


class TaskError(MdvaultError):
    """A worker task failed while the caller asked to stop on the first error."""

    def __init__(self, label: str, cause: BaseException):
        self.label = label
        self.cause = cause
        super().__init__(
            ErrorCode.TASK_FAILED,
            f"Task failed for {label}: {cause}",
            {"item": label, "cause": str(cause)},
        )
