"""Utility helpers for :mod:`pdfcli`."""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path

from .types import Version

_LOGGER = logging.getLogger("pdfcli.utils")

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")
_LABELLED_VERSION_RE = re.compile(r"\bversion\s+(\d+)\.(\d+)(?:\.(\d+))?", re.IGNORECASE)


def resolve_path(path: os.PathLike[str] | str) -> Path:
    """Resolve *path* into an absolute :class:`~pathlib.Path`."""

    resolved = Path(path).expanduser().resolve()
    _LOGGER.debug("Resolved path '%s' to '%s'", path, resolved)
    return resolved


def current_platform() -> str:
    """Return the platform key used in tool candidate tables."""

    return "windows" if os.name == "nt" else "posix"


def which(executable: str) -> str | None:
    """Return the absolute path of *executable* on ``PATH``."""

    found = shutil.which(executable)
    if found:
        _LOGGER.debug("Detected external tool: %s -> %s", executable, found)
        return str(Path(found).resolve())
    return None


def is_executable(path: str | Path) -> bool:
    candidate = Path(path)
    return candidate.is_file() and os.access(candidate, os.X_OK)


def parse_version(text: str) -> Version | None:
    """Extract the first dotted version number from *text*.

    ``"qpdf version 11.6.3"`` gives ``(11, 6, 3)``; ``"10.02"`` gives
    ``(10, 2)``.
    """

    match = _VERSION_RE.search(text or "")
    if not match:
        return None
    return tuple(int(part) for part in match.groups() if part is not None)


def parse_labelled_version(text: str) -> Version | None:
    """Like :func:`parse_version` but only accepts a number after the word ``version``."""

    match = _LABELLED_VERSION_RE.search(text or "")
    if not match:
        return None
    return tuple(int(part) for part in match.groups() if part is not None)


def format_version(version: Version) -> str:
    return ".".join(str(part) for part in version)


def excerpt(text: str, limit: int) -> str | None:
    """Return the last *limit* characters of *text*, or ``None`` when blank."""

    cleaned = (text or "").strip()
    if not cleaned:
        return None
    if len(cleaned) <= limit:
        return cleaned
    return "..." + cleaned[-limit:]


def sizeof_fmt(num_bytes: int) -> str:
    """Format *num_bytes* into a human-friendly string."""

    step_unit = 1024.0
    value = float(num_bytes)
    for unit in ("bytes", "KiB", "MiB", "GiB"):
        if value < step_unit:
            return f"{value:3.1f} {unit}"
        value /= step_unit
    return f"{value:3.1f} TiB"


__all__ = [
    "resolve_path",
    "current_platform",
    "which",
    "is_executable",
    "parse_version",
    "parse_labelled_version",
    "format_version",
    "excerpt",
    "sizeof_fmt",
]
