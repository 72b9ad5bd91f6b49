"""Resolve logical tools to runnable executables.

Resolution walks a :class:`~pdfcli.types.ToolSpec`'s candidates in order,
probes each one that exists for its version and accepts the first that
meets the minimum. Successful resolutions live in a :class:`ResolutionCache`
for as long as its owner keeps it.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .config import Settings, get_settings
from .exceptions import OperationCancelledError, PdfCliError, ToolProbeFailedError, ToolUnavailableError
from .executor import CancellationToken, ProcessExecutor
from .types import ExecutionRequest, OutcomeStatus, ResolvedTool, ToolSpec
from .utils import (
    current_platform,
    format_version,
    is_executable,
    parse_labelled_version,
    parse_version,
    resolve_path,
    which,
)

_LOGGER = logging.getLogger("pdfcli.locator")


@dataclass(frozen=True)
class _Entry:
    tool: ResolvedTool
    override: Optional[str]


class ResolutionCache:
    """Read-mostly map of logical tool name to :class:`ResolvedTool`.

    Reads of populated entries take no lock. The first resolution of a name
    registers an in-flight future under a short lock and runs outside it;
    concurrent callers for the same name wait on that future instead of
    probing again. Failures are handed to the waiters but never stored. A
    waiter whose owner was cancelled takes over the resolution itself.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._pending: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def get(self, name: str, override: Optional[str] = None) -> Optional[ResolvedTool]:
        entry = self._entries.get(name)
        if entry is None or entry.override != override:
            return None
        return entry.tool

    def get_or_resolve(
        self,
        name: str,
        override: Optional[str],
        resolver: Callable[[], ResolvedTool],
    ) -> ResolvedTool:
        while True:
            cached = self.get(name, override)
            if cached is not None:
                return cached

            with self._lock:
                cached = self.get(name, override)
                if cached is not None:
                    return cached
                future = self._pending.get(name)
                owner = future is None
                if owner:
                    future = Future()
                    self._pending[name] = future

            if owner:
                break
            try:
                return future.result()
            except OperationCancelledError:
                continue

        try:
            tool = resolver()
        except BaseException as exc:
            with self._lock:
                self._pending.pop(name, None)
            future.set_exception(exc)
            raise
        with self._lock:
            self._entries[name] = _Entry(tool=tool, override=override)
            self._pending.pop(name, None)
        future.set_result(tool)
        return tool

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class ToolStatus:
    """Resolution state of one logical tool, as reported by ``pdfcli tools``."""

    name: str
    resolved: Optional[ResolvedTool]
    error: Optional[PdfCliError]
    min_version: str


class ToolLocator:
    """Finds and version-checks executables for logical tools."""

    def __init__(
        self,
        executor: ProcessExecutor,
        *,
        settings: Settings | None = None,
        cache: ResolutionCache | None = None,
        platform: str | None = None,
    ) -> None:
        self.executor = executor
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else ResolutionCache()
        self.platform = platform or current_platform()

    def resolve(self, spec: ToolSpec, cancel: CancellationToken | None = None) -> ResolvedTool:
        override = self.settings.tool_override(spec.name)
        return self.cache.get_or_resolve(spec.name, override, lambda: self._resolve_uncached(spec, override, cancel))

    def status(self, specs) -> list[ToolStatus]:
        report = []
        for spec in specs:
            try:
                report.append(ToolStatus(spec.name, self.resolve(spec), None, format_version(spec.min_version)))
            except (ToolUnavailableError, ToolProbeFailedError) as exc:
                report.append(ToolStatus(spec.name, None, exc, format_version(spec.min_version)))
        return report

    def _resolve_uncached(
        self, spec: ToolSpec, override: Optional[str], cancel: CancellationToken | None = None
    ) -> ResolvedTool:
        if override:
            path = str(resolve_path(override))
            if not is_executable(path):
                raise ToolUnavailableError(
                    f"{spec.name}: configured path '{override}' is not an executable file "
                    f"(set by PDFCLI_{spec.name.upper()}_PATH)",
                    tool=spec.name,
                )
            _LOGGER.debug("Using %s override for %s", path, spec.name)
            candidates = [path]
        else:
            candidates = [found for found in (which(name) for name in spec.executables(self.platform)) if found]
            if not candidates:
                raise ToolUnavailableError(
                    f"{spec.name} not found on PATH (tried {', '.join(spec.executables(self.platform)) or 'nothing'}); "
                    f"{spec.install_hint}",
                    tool=spec.name,
                )

        too_old: list[str] = []
        probe_failure: ToolProbeFailedError | None = None
        seen: set[str] = set()
        for path in candidates:
            if path in seen:
                continue
            seen.add(path)
            try:
                version, text = self._probe(spec, path, cancel)
            except ToolProbeFailedError as exc:
                _LOGGER.warning("%s", exc)
                probe_failure = probe_failure or exc
                continue
            if version < spec.min_version:
                _LOGGER.info(
                    "Skipping %s %s: older than required %s",
                    path,
                    format_version(version),
                    format_version(spec.min_version),
                )
                too_old.append(f"{path} ({format_version(version)})")
                continue
            tool = ResolvedTool(name=spec.name, path=path, version=version, version_text=text)
            _LOGGER.debug("Resolved %s -> %s %s", spec.name, path, format_version(version))
            return tool

        if probe_failure is not None and not too_old:
            raise probe_failure
        raise ToolUnavailableError(
            f"{spec.name} {format_version(spec.min_version)} or newer is required; found only "
            f"{', '.join(too_old)}; {spec.install_hint}",
            tool=spec.name,
        )

    def _probe(self, spec: ToolSpec, path: str, cancel: CancellationToken | None = None) -> tuple:
        if cancel is not None and cancel.cancelled:
            raise OperationCancelledError(f"{spec.name}: cancelled before the version probe of {path}")
        request = ExecutionRequest(
            tool=ResolvedTool(name=spec.name, path=path, version=()),
            argv=(path, *spec.probe_args),
            timeout=self.settings.probe_timeout_seconds,
            env={"LC_ALL": "C"},
            cancel=cancel,
        )
        outcome = self.executor.execute(request)
        if outcome.status is OutcomeStatus.CANCELLED:
            raise OperationCancelledError(f"{spec.name}: version probe of {path} cancelled")
        if outcome.status is OutcomeStatus.TIMED_OUT:
            raise ToolProbeFailedError(
                f"{spec.name}: version probe of {path} timed out after {request.timeout:g}s",
                tool=spec.name,
            )
        if outcome.status is not OutcomeStatus.COMPLETED:
            reason = outcome.spawn_error or outcome.status.value
            raise ToolProbeFailedError(f"{spec.name}: version probe of {path} failed: {reason}", tool=spec.name)

        # poppler prints its version on stderr and older releases exit 99,
        # so a nonzero exit only counts with an explicit "version N.N"
        extract = parse_version if outcome.exit_code == 0 else parse_labelled_version
        for text in (outcome.stdout_text, outcome.stderr_text):
            version = extract(text)
            if version is not None:
                first_line = text.strip().splitlines()[0] if text.strip() else ""
                return version, first_line
        raise ToolProbeFailedError(
            f"{spec.name}: could not read a version from '{path} {' '.join(spec.probe_args)}' "
            f"(exit {outcome.exit_code})",
            tool=spec.name,
        )


__all__ = ["ResolutionCache", "ToolLocator", "ToolStatus"]
