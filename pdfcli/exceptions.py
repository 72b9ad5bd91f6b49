"""
Custom exceptions and the error taxonomy for pdfcli.

Components raise the exceptions below; the orchestrator translates each of
them (and every failed execution outcome) into exactly one
:class:`~pdfcli.types.ClassifiedError` carrying an :class:`ErrorKind`.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed taxonomy of failures surfaced to callers."""

    INVALID_INPUT = "invalid-input"
    TOOL_UNAVAILABLE = "tool-unavailable"
    TOOL_PROBE_FAILED = "tool-probe-failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    TOOL_FAILED = "tool-failed"
    PARSE_ERROR = "parse-error"
    INTERNAL = "internal"

    @property
    def exit_status(self) -> int:
        return _EXIT_STATUS[self]


_EXIT_STATUS = {
    ErrorKind.INVALID_INPUT: 2,
    ErrorKind.TOOL_UNAVAILABLE: 3,
    ErrorKind.TOOL_PROBE_FAILED: 3,
    ErrorKind.TOOL_FAILED: 4,
    ErrorKind.PARSE_ERROR: 4,
    ErrorKind.TIMEOUT: 5,
    ErrorKind.CANCELLED: 6,
    ErrorKind.INTERNAL: 1,
}


class PdfCliError(Exception):
    """Base exception for all pdfcli errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown pdfcli error occurred."


class InvalidInputError(PdfCliError):
    """Raised when caller-supplied parameters fail validation."""

    kind = ErrorKind.INVALID_INPUT

    @property
    def default_message(self) -> str:
        return "Invalid input parameters."


class ToolUnavailableError(PdfCliError):
    """Raised when no candidate executable is found or none is recent enough."""

    kind = ErrorKind.TOOL_UNAVAILABLE

    def __init__(self, message: str = "", *, tool: str | None = None) -> None:
        super().__init__(message)
        self.tool = tool

    @property
    def default_message(self) -> str:
        return "Required external tool is not available."


class ToolProbeFailedError(PdfCliError):
    """Raised when a found executable fails its version probe."""

    kind = ErrorKind.TOOL_PROBE_FAILED

    def __init__(self, message: str = "", *, tool: str | None = None) -> None:
        super().__init__(message)
        self.tool = tool

    @property
    def default_message(self) -> str:
        return "External tool version probe failed."


class ParseError(PdfCliError):
    """Raised when a tool exits successfully but its output cannot be parsed."""

    kind = ErrorKind.PARSE_ERROR

    @property
    def default_message(self) -> str:
        return "Unable to parse external tool output."


class OperationCancelledError(PdfCliError):
    """Raised when an invocation is cancelled before a tool result exists."""

    kind = ErrorKind.CANCELLED

    @property
    def default_message(self) -> str:
        return "Operation cancelled."


class UnknownOperationError(PdfCliError):
    """Raised for operations or tool pairings missing from the static tables."""

    kind = ErrorKind.INTERNAL

    @property
    def default_message(self) -> str:
        return "Unknown operation."


__all__ = [
    "ErrorKind",
    "PdfCliError",
    "InvalidInputError",
    "ToolUnavailableError",
    "ToolProbeFailedError",
    "ParseError",
    "OperationCancelledError",
    "UnknownOperationError",
]
