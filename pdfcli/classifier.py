"""Centralized error classification.

Maps executor outcomes and component failures onto the closed
:class:`~pdfcli.exceptions.ErrorKind` taxonomy. When several signals are
present the strongest wins, in this order:

1. timeout / cancellation reported by the executor
2. tool unavailable / probe failed reported by the locator
3. invalid input reported by the builder
4. nonzero exit matched by the tool's stderr-pattern or exit-code table
5. any other nonzero exit (``TOOL_FAILED``)
6. unparsable output despite a successful exit (``PARSE_ERROR``)

Classification is a pure function of its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from .exceptions import (
    ErrorKind,
    InvalidInputError,
    ParseError,
    PdfCliError,
    ToolProbeFailedError,
    ToolUnavailableError,
)
from .types import ClassifiedError, ExecutionOutcome, OutcomeStatus
from .utils import excerpt


@dataclass(frozen=True)
class ToolRules:
    """Exit-code and stderr-pattern table for one tool family."""

    success_codes: FrozenSet[int] = frozenset({0})
    # (lower-case stderr substring, kind, detail), checked in order
    stderr_patterns: Tuple[Tuple[str, ErrorKind, str], ...] = ()
    exit_codes: Dict[int, str] = field(default_factory=dict)


QPDF_RULES = ToolRules(
    # qpdf exits 3 when the output was written but warnings were issued
    success_codes=frozenset({0, 3}),
    stderr_patterns=(
        ("invalid password", ErrorKind.INVALID_INPUT, "the supplied password is incorrect"),
        ("not a pdf file", ErrorKind.TOOL_FAILED, "input is not a PDF"),
        ("can't find pdf header", ErrorKind.TOOL_FAILED, "input is not a PDF"),
    ),
    exit_codes={2: "qpdf reported errors"},
)

POPPLER_RULES = ToolRules(
    stderr_patterns=(
        ("incorrect password", ErrorKind.INVALID_INPUT, "the supplied password is incorrect"),
        ("may not be a pdf file", ErrorKind.TOOL_FAILED, "input is not a PDF"),
    ),
    exit_codes={
        1: "error opening the PDF",
        2: "error opening an output file",
        3: "permissions do not allow this operation",
        99: "unspecified error",
    },
)

GHOSTSCRIPT_RULES = ToolRules(
    stderr_patterns=(
        ("this file requires a password", ErrorKind.INVALID_INPUT, "a password is required to open the PDF"),
        ("password did not work", ErrorKind.INVALID_INPUT, "the supplied password is incorrect"),
        ("unrecoverable error", ErrorKind.TOOL_FAILED, "ghostscript hit an unrecoverable error"),
    ),
    exit_codes={1: "ghostscript reported an error"},
)

DEFAULT_RULES: Dict[str, ToolRules] = {
    "qpdf": QPDF_RULES,
    "pdfinfo": POPPLER_RULES,
    "pdftotext": POPPLER_RULES,
    "pdftoppm": POPPLER_RULES,
    "ghostscript": GHOSTSCRIPT_RULES,
}


class ErrorClassifier:
    """Deterministic mapper from failure signals to :class:`ClassifiedError`."""

    def __init__(self, rules: Dict[str, ToolRules] | None = None, *, excerpt_chars: int = 800) -> None:
        self.rules = dict(DEFAULT_RULES if rules is None else rules)
        self.excerpt_chars = excerpt_chars

    def rules_for(self, tool: Optional[str]) -> ToolRules:
        return self.rules.get(tool or "", ToolRules())

    def is_success(self, tool: Optional[str], outcome: ExecutionOutcome) -> bool:
        return (
            outcome.status is OutcomeStatus.COMPLETED
            and outcome.exit_code in self.rules_for(tool).success_codes
        )

    def classify(
        self,
        *,
        outcome: ExecutionOutcome | None = None,
        failure: BaseException | None = None,
        tool: str | None = None,
    ) -> ClassifiedError:
        tool = tool or getattr(failure, "tool", None)

        if outcome is not None and outcome.status is OutcomeStatus.TIMED_OUT:
            return ClassifiedError(
                ErrorKind.TIMEOUT,
                f"{tool or 'tool'} did not finish within its time limit after {outcome.duration:.1f}s",
                diagnostic=self._diagnostic(outcome),
                tool=tool,
            )
        if outcome is not None and outcome.status is OutcomeStatus.CANCELLED:
            return ClassifiedError(ErrorKind.CANCELLED, "operation cancelled", tool=tool)

        if isinstance(failure, (ToolUnavailableError, ToolProbeFailedError)):
            return ClassifiedError(failure.kind, failure.message, tool=tool)
        if isinstance(failure, InvalidInputError):
            return ClassifiedError(ErrorKind.INVALID_INPUT, failure.message, tool=tool)

        if outcome is not None and outcome.status is OutcomeStatus.SPAWN_FAILED:
            error = outcome.spawn_error
            kind = (
                ErrorKind.TOOL_UNAVAILABLE
                if isinstance(error, (FileNotFoundError, PermissionError))
                else ErrorKind.TOOL_FAILED
            )
            return ClassifiedError(kind, f"could not start {tool or 'tool'}: {error}", tool=tool)

        if outcome is not None and not self.is_success(tool, outcome):
            return self._classify_exit(tool, outcome)

        if isinstance(failure, ParseError):
            return ClassifiedError(
                ErrorKind.PARSE_ERROR,
                failure.message,
                exit_code=outcome.exit_code if outcome is not None else None,
                diagnostic=self._diagnostic(outcome),
                tool=tool,
            )
        if isinstance(failure, PdfCliError):
            return ClassifiedError(failure.kind, failure.message, tool=tool)
        if failure is not None:
            return ClassifiedError(ErrorKind.INTERNAL, f"{type(failure).__name__}: {failure}", tool=tool)
        return ClassifiedError(ErrorKind.INTERNAL, "no failure signal to classify", tool=tool)

    def _classify_exit(self, tool: Optional[str], outcome: ExecutionOutcome) -> ClassifiedError:
        rules = self.rules_for(tool)
        stderr = outcome.stderr_text.lower()
        name = tool or "tool"
        for pattern, kind, detail in rules.stderr_patterns:
            if pattern in stderr:
                return ClassifiedError(
                    kind,
                    f"{name}: {detail}",
                    exit_code=outcome.exit_code,
                    diagnostic=self._diagnostic(outcome),
                    tool=tool,
                )
        detail = rules.exit_codes.get(outcome.exit_code)
        if detail is None:
            detail = f"exited with status {outcome.exit_code}"
        return ClassifiedError(
            ErrorKind.TOOL_FAILED,
            f"{name}: {detail}",
            exit_code=outcome.exit_code,
            diagnostic=self._diagnostic(outcome),
            tool=tool,
        )

    def _diagnostic(self, outcome: ExecutionOutcome | None) -> Optional[str]:
        if outcome is None:
            return None
        return excerpt(outcome.stderr_text, self.excerpt_chars)


__all__ = ["ErrorClassifier", "ToolRules", "DEFAULT_RULES", "QPDF_RULES", "POPPLER_RULES", "GHOSTSCRIPT_RULES"]
