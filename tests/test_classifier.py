from __future__ import annotations

import pytest

from pdfcli.classifier import ErrorClassifier
from pdfcli.exceptions import (
    ErrorKind,
    InvalidInputError,
    ParseError,
    ToolProbeFailedError,
    ToolUnavailableError,
    UnknownOperationError,
)
from pdfcli.types import ExecutionOutcome, OutcomeStatus


@pytest.fixture()
def classifier() -> ErrorClassifier:
    return ErrorClassifier(excerpt_chars=60)


def _exited(code: int, stderr: bytes = b"") -> ExecutionOutcome:
    return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=code, stderr=stderr, duration=0.2)


def test_timeout_outranks_everything(classifier) -> None:
    outcome = ExecutionOutcome(OutcomeStatus.TIMED_OUT, stderr=b"invalid password", duration=30.0)
    error = classifier.classify(outcome=outcome, failure=ParseError("bad"), tool="qpdf")
    assert error.kind is ErrorKind.TIMEOUT
    assert error.exit_code is None
    assert error.kind.exit_status == 5


def test_cancellation(classifier) -> None:
    error = classifier.classify(outcome=ExecutionOutcome(OutcomeStatus.CANCELLED), tool="gs")
    assert error.kind is ErrorKind.CANCELLED
    assert error.cli_exit_status == 6


def test_locator_failures_keep_their_kind(classifier) -> None:
    unavailable = classifier.classify(failure=ToolUnavailableError("qpdf not found", tool="qpdf"))
    assert (unavailable.kind, unavailable.tool, unavailable.detail) == (ErrorKind.TOOL_UNAVAILABLE, "qpdf", "qpdf not found")
    probe = classifier.classify(failure=ToolProbeFailedError("probe crashed", tool="pdfinfo"))
    assert probe.kind is ErrorKind.TOOL_PROBE_FAILED
    assert probe.cli_exit_status == unavailable.cli_exit_status == 3


def test_invalid_input(classifier) -> None:
    error = classifier.classify(failure=InvalidInputError("level must be between 1 and 9, got 99"))
    assert error.kind is ErrorKind.INVALID_INPUT
    assert str(error) == "error[invalid-input]: level must be between 1 and 9, got 99"


@pytest.mark.parametrize(
    "tool, stderr, kind",
    [
        ("qpdf", b"qpdf: present.pdf: invalid password\n", ErrorKind.INVALID_INPUT),
        ("pdfinfo", b"Command Line Error: Incorrect password\n", ErrorKind.INVALID_INPUT),
        ("ghostscript", b"   **** This file requires a password for access.\n", ErrorKind.INVALID_INPUT),
        ("qpdf", b"qpdf: x.pdf: not a PDF file\n", ErrorKind.TOOL_FAILED),
    ],
)
def test_stderr_patterns(classifier, tool, stderr, kind) -> None:
    error = classifier.classify(outcome=_exited(2, stderr), tool=tool)
    assert error.kind is kind
    assert error.exit_code == 2
    assert error.diagnostic == stderr.decode().strip()


def test_exit_code_table(classifier) -> None:
    error = classifier.classify(outcome=_exited(3, b"Permission Error\n"), tool="pdftoppm")
    assert error.kind is ErrorKind.TOOL_FAILED
    assert "permissions do not allow" in error.detail


def test_unknown_exit_code(classifier) -> None:
    error = classifier.classify(outcome=_exited(139), tool="ghostscript")
    assert error.kind is ErrorKind.TOOL_FAILED
    assert error.detail == "ghostscript: exited with status 139"
    assert error.diagnostic is None


def test_qpdf_warnings_exit_is_success(classifier) -> None:
    assert classifier.is_success("qpdf", _exited(3, b"WARNING: xref not found"))
    assert not classifier.is_success("pdftotext", _exited(3))
    assert not classifier.is_success("qpdf", ExecutionOutcome(OutcomeStatus.TIMED_OUT))


def test_spawn_failures(classifier) -> None:
    missing = ExecutionOutcome(OutcomeStatus.SPAWN_FAILED, spawn_error=FileNotFoundError(2, "No such file"))
    assert classifier.classify(outcome=missing, tool="gs").kind is ErrorKind.TOOL_UNAVAILABLE
    busy = ExecutionOutcome(OutcomeStatus.SPAWN_FAILED, spawn_error=OSError(26, "Text file busy"))
    assert classifier.classify(outcome=busy, tool="gs").kind is ErrorKind.TOOL_FAILED


def test_parse_error_after_successful_exit(classifier) -> None:
    error = classifier.classify(outcome=_exited(0, b"note"), failure=ParseError("qpdf: missing 'pages'"), tool="qpdf")
    assert error.kind is ErrorKind.PARSE_ERROR
    assert error.exit_code == 0
    assert error.cli_exit_status == 4


def test_nonzero_exit_outranks_parse_error(classifier) -> None:
    error = classifier.classify(outcome=_exited(2), failure=ParseError("empty"), tool="qpdf")
    assert error.kind is ErrorKind.TOOL_FAILED


def test_programmer_errors_are_internal(classifier) -> None:
    assert classifier.classify(failure=UnknownOperationError("no template")).kind is ErrorKind.INTERNAL
    error = classifier.classify(failure=KeyError("boom"))
    assert error.kind is ErrorKind.INTERNAL
    assert error.cli_exit_status == 1


def test_diagnostic_excerpt_is_bounded(classifier) -> None:
    stderr = ("x" * 500 + "final line").encode()
    error = classifier.classify(outcome=_exited(1, stderr), tool="ghostscript")
    assert error.diagnostic.endswith("final line")
    assert len(error.diagnostic) == 63


def test_classification_is_deterministic(classifier) -> None:
    outcome = _exited(2, b"qpdf: invalid password")
    assert classifier.classify(outcome=outcome, tool="qpdf") == classifier.classify(outcome=outcome, tool="qpdf")
