"""Invocation orchestration.

The :class:`Orchestrator` is the single entry point used by the CLI. For one
operation it walks::

    VALIDATING -> LOCATING -> BUILDING -> EXECUTING -> PARSING -> DONE | FAILED

and returns either an :data:`~pdfcli.types.OperationResult` or a
:class:`~pdfcli.types.ClassifiedError`, never both. When a candidate tool
cannot be used the next registry candidate gets a fresh
LOCATING..PARSING pass; the number of passes is bounded by the candidate
list.

Concurrent invocations share nothing except the locator's resolution cache.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from . import parsers
from .builder import CommandBuilder, ValidatedParams
from .classifier import ErrorClassifier
from .config import Settings, get_settings
from .exceptions import (
    ErrorKind,
    InvalidInputError,
    OperationCancelledError,
    ParseError,
    ToolProbeFailedError,
    ToolUnavailableError,
)
from .executor import CancellationToken, ProcessExecutor
from .locator import ResolutionCache, ToolLocator
from .registry import ToolRegistry, registry as default_registry
from .types import (
    ClassifiedError,
    OperationKind,
    OperationParams,
    OperationResult,
    ToolSpec,
    Validated,
)
from .utils import resolve_path

_LOGGER = logging.getLogger("pdfcli.orchestrator")

_ALWAYS_FALL_BACK = (ErrorKind.TOOL_UNAVAILABLE, ErrorKind.TOOL_PROBE_FAILED)
_FALL_BACK_ON_TOOL_FAILURE = (ErrorKind.TOOL_FAILED, ErrorKind.PARSE_ERROR)


class InvocationState(str, Enum):
    VALIDATING = "validating"
    LOCATING = "locating"
    BUILDING = "building"
    EXECUTING = "executing"
    PARSING = "parsing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Invocation:
    """State and trace of one orchestrated operation."""

    operation: OperationKind
    params: OperationParams
    trace: List[Tuple[InvocationState, Optional[str]]] = field(default_factory=list)
    result: Optional[OperationResult] = None
    error: Optional[ClassifiedError] = None

    @property
    def state(self) -> Optional[InvocationState]:
        return self.trace[-1][0] if self.trace else None

    @property
    def finished(self) -> bool:
        return self.state in (InvocationState.DONE, InvocationState.FAILED)

    @property
    def outcome(self) -> Union[OperationResult, ClassifiedError]:
        if self.result is not None:
            return self.result
        if self.error is not None:
            return self.error
        raise RuntimeError("invocation has not finished")

    def enter(self, state: InvocationState, tool: Optional[str] = None) -> None:
        if self.finished:
            raise RuntimeError(f"invocation already finished in state {self.state}")
        _LOGGER.debug("%s: -> %s%s", self.operation.value, state.value, f" ({tool})" if tool else "")
        self.trace.append((state, tool))

    def done(self, result: OperationResult) -> "Invocation":
        self.result = result
        self.enter(InvocationState.DONE)
        return self

    def fail(self, error: ClassifiedError) -> "Invocation":
        self.error = error
        self.enter(InvocationState.FAILED, error.tool)
        return self


@dataclass(frozen=True)
class BatchJob:
    operation: OperationKind
    params: OperationParams


@dataclass(frozen=True)
class BatchItem:
    job: BatchJob
    outcome: Union[OperationResult, ClassifiedError]

    @property
    def ok(self) -> bool:
        return not isinstance(self.outcome, ClassifiedError)


def _cancelled(tool: Optional[str] = None) -> ClassifiedError:
    return ClassifiedError(ErrorKind.CANCELLED, "operation cancelled", tool=tool)


def _output_conflicts(jobs: Sequence[BatchJob]) -> Dict[int, ClassifiedError]:
    """Fail every job whose output path an earlier job already writes."""
    claimed: Dict[Path, int] = {}
    conflicts: Dict[int, ClassifiedError] = {}
    for index, job in enumerate(jobs):
        if job.params.output_path is None:
            continue
        output = resolve_path(job.params.output_path)
        if output in claimed:
            conflicts[index] = ClassifiedError(
                ErrorKind.INVALID_INPUT,
                f"output path {output} is already written by job {claimed[output] + 1} "
                f"({jobs[claimed[output]].params.input_path})",
            )
            _LOGGER.warning("Skipping job %d: %s", index + 1, conflicts[index].detail)
        else:
            claimed[output] = index
    return conflicts


class Orchestrator:
    """Sequences validation, tool resolution, execution and parsing."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        registry: ToolRegistry | None = None,
        executor: ProcessExecutor | None = None,
        locator: ToolLocator | None = None,
        builder: CommandBuilder | None = None,
        classifier: ErrorClassifier | None = None,
        cache: ResolutionCache | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry or default_registry
        self.executor = executor or ProcessExecutor.from_settings(self.settings)
        self.locator = locator or ToolLocator(self.executor, settings=self.settings, cache=cache)
        self.builder = builder or CommandBuilder()
        self.classifier = classifier or ErrorClassifier(excerpt_chars=self.settings.diagnostic_excerpt_chars)

    @property
    def cache(self) -> ResolutionCache:
        return self.locator.cache

    def reset_cache(self) -> None:
        self.locator.cache.reset()

    def run(
        self,
        operation: OperationKind,
        params: OperationParams,
        *,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> Union[OperationResult, ClassifiedError]:
        """Run *operation* and return its result or its classified error."""
        return self.invoke(operation, params, cancel=cancel, timeout=timeout).outcome

    def invoke(
        self,
        operation: OperationKind,
        params: OperationParams,
        *,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> Invocation:
        invocation = Invocation(operation=operation, params=params)
        timeout = timeout if timeout is not None else self.settings.timeout_seconds
        try:
            return self._invoke(invocation, cancel, timeout)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.exception("Unexpected failure during %s", operation.value)
            if invocation.finished:
                raise
            return invocation.fail(self.classifier.classify(failure=exc))

    def _invoke(self, invocation: Invocation, cancel: CancellationToken | None, timeout: float) -> Invocation:
        operation = invocation.operation
        invocation.enter(InvocationState.VALIDATING)
        if cancel is not None and cancel.cancelled:
            return invocation.fail(_cancelled())
        try:
            validated = self.builder.validate(operation, invocation.params)
        except InvalidInputError as exc:
            return invocation.fail(self.classifier.classify(failure=exc))

        if operation is OperationKind.VALIDATE and not validated.deep:
            source = validated.input_path
            return invocation.done(Validated(path=source, size_bytes=source.stat().st_size))

        errors: List[ClassifiedError] = []
        candidates = self.registry.lookup(operation)
        for index, spec in enumerate(candidates):
            if cancel is not None and cancel.cancelled:
                return invocation.fail(_cancelled(spec.name))
            error = self._attempt(invocation, spec, validated, cancel, timeout)
            if error is None:
                return invocation
            errors.append(error)
            if index + 1 < len(candidates) and self._falls_back(error):
                _LOGGER.warning(
                    "%s via %s failed (%s); trying %s",
                    operation.value,
                    spec.name,
                    error.kind.value,
                    candidates[index + 1].name,
                )
                continue
            break
        return invocation.fail(self._final_error(operation, errors))

    def _attempt(
        self,
        invocation: Invocation,
        spec: ToolSpec,
        params: ValidatedParams,
        cancel: CancellationToken | None,
        timeout: float,
    ) -> Optional[ClassifiedError]:
        operation = invocation.operation
        invocation.enter(InvocationState.LOCATING, spec.name)
        try:
            tool = self.locator.resolve(spec, cancel=cancel)
        except OperationCancelledError:
            return _cancelled(spec.name)
        except (ToolUnavailableError, ToolProbeFailedError) as exc:
            return self.classifier.classify(failure=exc, tool=spec.name)
        if cancel is not None and cancel.cancelled:
            return _cancelled(spec.name)

        invocation.enter(InvocationState.BUILDING, spec.name)
        try:
            request = self.builder.build(operation, tool, params, timeout=timeout, cancel=cancel)
        except InvalidInputError as exc:
            return self.classifier.classify(failure=exc, tool=spec.name)

        invocation.enter(InvocationState.EXECUTING, spec.name)
        outcome = self.executor.execute(request)
        if not self.classifier.is_success(tool.name, outcome):
            return self.classifier.classify(outcome=outcome, tool=tool.name)

        invocation.enter(InvocationState.PARSING, spec.name)
        try:
            result = parsers.parse(operation, request, outcome)
        except ParseError as exc:
            return self.classifier.classify(outcome=outcome, failure=exc, tool=tool.name)
        invocation.done(result)
        return None

    def _falls_back(self, error: ClassifiedError) -> bool:
        if error.kind in _ALWAYS_FALL_BACK:
            return True
        return self.settings.fallback_on_tool_failure and error.kind in _FALL_BACK_ON_TOOL_FAILURE

    @staticmethod
    def _final_error(operation: OperationKind, errors: Sequence[ClassifiedError]) -> ClassifiedError:
        if len(errors) > 1 and all(error.kind is ErrorKind.TOOL_UNAVAILABLE for error in errors):
            detail = "; ".join(error.detail for error in errors)
            return ClassifiedError(
                ErrorKind.TOOL_UNAVAILABLE,
                f"no tool available for {operation.value}: {detail}",
                tool=errors[0].tool,
            )
        return errors[-1]

    def run_batch(
        self,
        jobs: Iterable[BatchJob],
        *,
        cancel: CancellationToken | None = None,
        max_workers: int | None = None,
        timeout: float | None = None,
    ) -> List[BatchItem]:
        """Run independent *jobs* on a bounded worker pool, results in job order.

        Cancelling *cancel* makes jobs that have not started fail as
        cancelled immediately and terminates the processes of running ones.
        """
        jobs = list(jobs)
        batch_token = cancel or CancellationToken()
        workers = max_workers or self.settings.max_workers
        conflicts = _output_conflicts(jobs)
        _LOGGER.info("Running %d jobs on %d workers", len(jobs), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pdfcli-batch") as pool:
            futures = [
                None
                if index in conflicts
                else pool.submit(self.run, job.operation, job.params, cancel=batch_token.child(), timeout=timeout)
                for index, job in enumerate(jobs)
            ]
            try:
                outcomes = [
                    conflicts[index] if future is None else future.result()
                    for index, future in enumerate(futures)
                ]
            except BaseException:
                batch_token.cancel()
                raise
        return [BatchItem(job=job, outcome=outcome) for job, outcome in zip(jobs, outcomes)]


__all__ = ["Orchestrator", "Invocation", "InvocationState", "BatchJob", "BatchItem"]
