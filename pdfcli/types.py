"""
Type definitions and dataclasses for pdfcli.

This module defines the data structures passed between the registry,
locator, builder, executor, parsers, classifier and orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Tuple, Union

from pdfcli.exceptions import ErrorKind

if TYPE_CHECKING:  # pragma: no cover
    from pdfcli.executor import CancellationToken


class OperationKind(str, Enum):
    """Operations exposed by the CLI, one per subcommand."""

    VALIDATE = "validate"
    INSPECT = "inspect"
    LINEARIZE = "linearize"
    DECRYPT = "decrypt"
    TOTEXT = "totext"
    COMPRESS = "compress"
    RENDER = "render"

    @property
    def produces_output(self) -> bool:
        return self not in (OperationKind.VALIDATE, OperationKind.INSPECT)


Version = Tuple[int, ...]


@dataclass(frozen=True)
class ToolSpec:
    """
    Static description of a logical tool.

    Attributes:
        name: Logical tool name, also the key of its parser and override
        candidates: Platform key ("posix" or "windows") to ordered executable names
        min_version: Lowest acceptable version
        probe_args: Arguments that make the executable print its version
        install_hint: Guidance shown when the tool cannot be found
    """
    name: str
    candidates: Mapping[str, Tuple[str, ...]]
    min_version: Version
    probe_args: Tuple[str, ...] = ("--version",)
    install_hint: str = ""

    def executables(self, platform: str) -> Tuple[str, ...]:
        return tuple(self.candidates.get(platform, ()))


@dataclass(frozen=True)
class ResolvedTool:
    """A logical tool bound to a runnable executable."""
    name: str
    path: str
    version: Version
    version_text: str = ""


@dataclass
class OperationParams:
    """
    Caller-supplied parameters for one operation.

    Attributes:
        input_path: Source PDF
        output_path: Destination file for producing operations
        password: Password for encrypted inputs
        level: Compression level (1-9)
        page: 1-indexed page to render
        dpi: Render resolution
        deep: Run the structural check during validation
    """
    input_path: Union[str, Path]
    output_path: Optional[Union[str, Path]] = None
    password: Optional[str] = None
    level: Optional[int] = None
    page: Optional[int] = None
    dpi: Optional[int] = None
    deep: bool = False


@dataclass
class ExecutionRequest:
    """A fully built, validated invocation of one external tool."""
    tool: ResolvedTool
    argv: Tuple[str, ...]
    timeout: float
    cwd: Optional[Path] = None
    inputs: Tuple[Path, ...] = ()
    output_path: Optional[Path] = None
    cancel: Optional["CancellationToken"] = None
    env: Dict[str, str] = field(default_factory=dict)


class OutcomeStatus(str, Enum):
    """How an execution ended, independent of the tool's exit code."""

    COMPLETED = "completed"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"
    SPAWN_FAILED = "spawn-failed"


@dataclass
class ExecutionOutcome:
    """Raw result of running one ExecutionRequest."""
    status: OutcomeStatus
    exit_code: Optional[int] = None
    stdout: bytes = b""
    stderr: bytes = b""
    duration: float = 0.0
    truncated: bool = False
    spawn_error: Optional[OSError] = None

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Validated:
    """Result of the validate operation."""
    path: Path
    size_bytes: int
    checked: bool = False


@dataclass(frozen=True)
class DocumentInfo:
    """Document metadata reported by the inspect operation."""
    path: Path
    page_count: int
    pdf_version: str
    encrypted: bool
    tool: str
    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    creator: Optional[str] = None
    producer: Optional[str] = None


@dataclass(frozen=True)
class FileProduced:
    """Result of an operation that writes an output file."""
    operation: OperationKind
    output_path: Path
    size_bytes: int
    tool: str


OperationResult = Union[Validated, DocumentInfo, FileProduced]


@dataclass(frozen=True)
class ClassifiedError:
    """A failure mapped onto the :class:`ErrorKind` taxonomy."""
    kind: ErrorKind
    detail: str
    exit_code: Optional[int] = None
    diagnostic: Optional[str] = None
    tool: Optional[str] = None

    @property
    def cli_exit_status(self) -> int:
        return self.kind.exit_status

    def __str__(self) -> str:
        return f"error[{self.kind.value}]: {self.detail}"


__all__ = [
    "OperationKind",
    "Version",
    "ToolSpec",
    "ResolvedTool",
    "OperationParams",
    "ExecutionRequest",
    "OutcomeStatus",
    "ExecutionOutcome",
    "Validated",
    "DocumentInfo",
    "FileProduced",
    "OperationResult",
    "ClassifiedError",
]
