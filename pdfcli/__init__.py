"""
pdfcli - PDF operations delegated to external native tools.

pdfcli does not parse PDFs itself. It finds qpdf, poppler and Ghostscript on
the host, validates parameters, runs the right tool under timeout and
cancellation control, and reports either a structured result or a
classified error.

Quick Start:
    >>> from pdfcli import Orchestrator, OperationKind, OperationParams
    >>> orchestrator = Orchestrator()
    >>> result = orchestrator.run(OperationKind.INSPECT, OperationParams("input.pdf"))

Main Classes:
    - Orchestrator: Runs operations and batches of operations
    - ToolRegistry / ToolLocator: Tool candidates and their resolution
    - CommandBuilder / ProcessExecutor: Argv construction and execution
    - ErrorClassifier: Maps failures onto ErrorKind

For CLI usage, use the 'pdfcli' command after installation.
"""

__version__ = "0.1.0"

from pdfcli.builder import CommandBuilder
from pdfcli.classifier import ErrorClassifier
from pdfcli.config import Settings, get_settings
from pdfcli.exceptions import (
    ErrorKind,
    InvalidInputError,
    OperationCancelledError,
    ParseError,
    PdfCliError,
    ToolProbeFailedError,
    ToolUnavailableError,
    UnknownOperationError,
)
from pdfcli.executor import CancellationToken, ProcessExecutor
from pdfcli.locator import ResolutionCache, ToolLocator
from pdfcli.orchestrator import BatchItem, BatchJob, Invocation, InvocationState, Orchestrator
from pdfcli.registry import ToolRegistry, registry
from pdfcli.types import (
    ClassifiedError,
    DocumentInfo,
    ExecutionOutcome,
    ExecutionRequest,
    FileProduced,
    OperationKind,
    OperationParams,
    OperationResult,
    OutcomeStatus,
    ResolvedTool,
    ToolSpec,
    Validated,
)

__all__ = [
    # Main classes
    "Orchestrator",
    "Invocation",
    "InvocationState",
    "BatchJob",
    "BatchItem",
    "ToolRegistry",
    "registry",
    "ToolLocator",
    "ResolutionCache",
    "CommandBuilder",
    "ProcessExecutor",
    "CancellationToken",
    "ErrorClassifier",
    "Settings",
    "get_settings",
    # Data types
    "OperationKind",
    "OperationParams",
    "OperationResult",
    "ToolSpec",
    "ResolvedTool",
    "ExecutionRequest",
    "ExecutionOutcome",
    "OutcomeStatus",
    "Validated",
    "DocumentInfo",
    "FileProduced",
    "ClassifiedError",
    # Exceptions
    "ErrorKind",
    "PdfCliError",
    "InvalidInputError",
    "ToolUnavailableError",
    "ToolProbeFailedError",
    "ParseError",
    "OperationCancelledError",
    "UnknownOperationError",
    # Version info
    "__version__",
]
