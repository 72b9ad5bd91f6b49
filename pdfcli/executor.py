"""Process execution with bounded capture, timeouts and cancellation.

:class:`ProcessExecutor` runs one :class:`~pdfcli.types.ExecutionRequest` and
reports an :class:`~pdfcli.types.ExecutionOutcome`. It never raises for
tool-level problems and never retries: a timeout, a cancellation or a spawn
failure is reported through :attr:`ExecutionOutcome.status` and left to the
classifier.

Every spawned process is owned by :func:`_reaped`, which terminates and
reaps it on all exit paths, including ``KeyboardInterrupt``. On POSIX the
child is started in its own session so that termination signals reach any
helper processes it forks.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from typing import IO, Iterator, Optional

from .types import ExecutionOutcome, ExecutionRequest, OutcomeStatus

_LOGGER = logging.getLogger("pdfcli.executor")

_READ_CHUNK = 64 * 1024
_POSIX = os.name == "posix"


class CancellationToken:
    """Cooperative cancellation handle.

    A token created with a *parent* reports itself cancelled as soon as the
    parent is, which is how a batch propagates cancellation to its jobs.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def wait(self, timeout: float, interval: float = 0.05) -> bool:
        """Block up to *timeout* seconds; return ``True`` once cancelled."""
        deadline = time.monotonic() + timeout
        while not self.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(interval, remaining))
        return True

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)


class BoundedBuffer:
    """Byte sink that keeps at most *limit* bytes and flags the overflow."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._chunks: list[bytes] = []
        self._size = 0
        self.truncated = False

    def write(self, data: bytes) -> None:
        if not data:
            return
        room = self._limit - self._size
        if room <= 0:
            self.truncated = True
            return
        if len(data) > room:
            data = data[:room]
            self.truncated = True
        self._chunks.append(data)
        self._size += len(data)

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)

    def __len__(self) -> int:
        return self._size


def _drain(stream: IO[bytes], sink: BoundedBuffer) -> None:
    try:
        while True:
            chunk = stream.read1(_READ_CHUNK)  # type: ignore[attr-defined]
            if not chunk:
                break
            sink.write(chunk)
    except (OSError, ValueError):
        # stream closed underneath us while the process was being killed
        pass
    finally:
        with contextlib.suppress(OSError):
            stream.close()


class ProcessExecutor:
    """Runs external commands under timeout and cancellation control."""

    def __init__(
        self,
        *,
        capture_limit: int = 4 * 1024 * 1024,
        kill_grace: float = 5.0,
        poll_interval: float = 0.05,
    ) -> None:
        self.capture_limit = capture_limit
        self.kill_grace = kill_grace
        self.poll_interval = poll_interval

    @classmethod
    def from_settings(cls, settings) -> "ProcessExecutor":
        return cls(
            capture_limit=settings.capture_limit_bytes,
            kill_grace=settings.kill_grace_seconds,
        )

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        cancel = request.cancel
        if cancel is not None and cancel.cancelled:
            _LOGGER.info("Skipping %s: cancelled before spawn", request.tool.name)
            return ExecutionOutcome(status=OutcomeStatus.CANCELLED)

        started = time.monotonic()
        _LOGGER.debug("Executing command: %s", shlex.join(request.argv))
        try:
            proc = self._spawn(request)
        except OSError as exc:
            _LOGGER.warning("Failed to spawn %s: %s", request.argv[0], exc)
            return ExecutionOutcome(
                status=OutcomeStatus.SPAWN_FAILED,
                duration=time.monotonic() - started,
                spawn_error=exc,
            )

        stdout = BoundedBuffer(self.capture_limit)
        stderr = BoundedBuffer(self.capture_limit)
        readers = [
            self._start_reader(proc.stdout, stdout, f"{request.tool.name}-stdout"),
            self._start_reader(proc.stderr, stderr, f"{request.tool.name}-stderr"),
        ]
        with _reaped(proc, self):
            status = self._supervise(proc, request, started)
        for reader in readers:
            reader.join(timeout=max(self.kill_grace, 1.0))

        outcome = ExecutionOutcome(
            status=status,
            exit_code=proc.returncode if status is OutcomeStatus.COMPLETED else None,
            stdout=stdout.getvalue(),
            stderr=stderr.getvalue(),
            duration=time.monotonic() - started,
            truncated=stdout.truncated or stderr.truncated,
        )
        _LOGGER.debug(
            "Command %s finished: status=%s exit=%s duration=%.3fs truncated=%s",
            request.argv[0],
            outcome.status.value,
            outcome.exit_code,
            outcome.duration,
            outcome.truncated,
        )
        return outcome

    def _spawn(self, request: ExecutionRequest) -> subprocess.Popen:
        environment = os.environ.copy()
        environment.update(request.env)
        return subprocess.Popen(
            list(request.argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=str(request.cwd) if request.cwd is not None else None,
            env=environment,
            start_new_session=_POSIX,
        )

    @staticmethod
    def _start_reader(stream: IO[bytes] | None, sink: BoundedBuffer, name: str) -> threading.Thread:
        thread = threading.Thread(target=_drain, args=(stream, sink), name=f"pdfcli-{name}", daemon=True)
        thread.start()
        return thread

    def _supervise(self, proc: subprocess.Popen, request: ExecutionRequest, started: float) -> OutcomeStatus:
        deadline = started + request.timeout
        cancel = request.cancel
        while True:
            remaining = deadline - time.monotonic()
            try:
                proc.wait(timeout=max(min(self.poll_interval, remaining), 0))
                return OutcomeStatus.COMPLETED
            except subprocess.TimeoutExpired:
                pass
            if cancel is not None and cancel.cancelled:
                _LOGGER.info("Cancelling %s (pid %s)", request.tool.name, proc.pid)
                self.terminate(proc)
                return OutcomeStatus.CANCELLED
            if time.monotonic() >= deadline:
                _LOGGER.warning("%s exceeded its %.1fs timeout, terminating", request.tool.name, request.timeout)
                self.terminate(proc)
                return OutcomeStatus.TIMED_OUT

    def terminate(self, proc: subprocess.Popen) -> None:
        """Stop *proc*: graceful signal first, forced kill after the grace period."""
        _signal(proc, graceful=True)
        try:
            proc.wait(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            _LOGGER.warning("Process %s ignored SIGTERM, killing", proc.pid)
            _signal(proc, graceful=False)
            proc.wait()
        if _POSIX:
            # reap helpers the leader may have left behind in its group
            _signal(proc, graceful=False)


def _signal(proc: subprocess.Popen, *, graceful: bool) -> None:
    with contextlib.suppress(ProcessLookupError, PermissionError):
        if _POSIX:
            os.killpg(proc.pid, signal.SIGTERM if graceful else signal.SIGKILL)
        elif graceful:
            proc.terminate()
        else:
            proc.kill()


@contextlib.contextmanager
def _reaped(proc: subprocess.Popen, executor: ProcessExecutor) -> Iterator[subprocess.Popen]:
    try:
        yield proc
    finally:
        if proc.poll() is None:
            executor.terminate(proc)
        proc.wait()


__all__ = ["CancellationToken", "BoundedBuffer", "ProcessExecutor"]
