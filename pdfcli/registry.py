"""Static table of external tools and the operations they serve."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Sequence

from .exceptions import UnknownOperationError
from .types import OperationKind, ToolSpec

QPDF = ToolSpec(
    name="qpdf",
    candidates={"posix": ("qpdf",), "windows": ("qpdf.exe", "qpdf")},
    min_version=(11, 0),
    probe_args=("--version",),
    install_hint="install qpdf 11 or newer (e.g. 'apt install qpdf' or 'brew install qpdf')",
)

PDFINFO = ToolSpec(
    name="pdfinfo",
    candidates={"posix": ("pdfinfo",), "windows": ("pdfinfo.exe", "pdfinfo")},
    min_version=(0, 62),
    probe_args=("-v",),
    install_hint="install poppler-utils (e.g. 'apt install poppler-utils' or 'brew install poppler')",
)

PDFTOTEXT = ToolSpec(
    name="pdftotext",
    candidates={"posix": ("pdftotext",), "windows": ("pdftotext.exe", "pdftotext")},
    min_version=(0, 62),
    probe_args=("-v",),
    install_hint=PDFINFO.install_hint,
)

PDFTOPPM = ToolSpec(
    name="pdftoppm",
    candidates={"posix": ("pdftoppm",), "windows": ("pdftoppm.exe", "pdftoppm")},
    min_version=(0, 62),
    probe_args=("-v",),
    install_hint=PDFINFO.install_hint,
)

GHOSTSCRIPT = ToolSpec(
    name="ghostscript",
    candidates={"posix": ("gs",), "windows": ("gswin64c", "gswin32c", "gs")},
    min_version=(9, 50),
    probe_args=("--version",),
    install_hint="install Ghostscript 9.50 or newer (e.g. 'apt install ghostscript')",
)

DEFAULT_TOOLS: Sequence[ToolSpec] = (QPDF, PDFINFO, PDFTOTEXT, PDFTOPPM, GHOSTSCRIPT)

DEFAULT_OPERATIONS: Mapping[OperationKind, Sequence[str]] = {
    OperationKind.VALIDATE: ("qpdf",),
    OperationKind.INSPECT: ("qpdf", "pdfinfo"),
    OperationKind.LINEARIZE: ("qpdf",),
    OperationKind.DECRYPT: ("qpdf",),
    OperationKind.TOTEXT: ("pdftotext", "ghostscript"),
    OperationKind.COMPRESS: ("ghostscript", "qpdf"),
    OperationKind.RENDER: ("pdftoppm", "ghostscript"),
}


class ToolRegistry:
    """Registry mapping operations to ordered tool candidates."""

    def __init__(
        self,
        tools: Iterable[ToolSpec] = DEFAULT_TOOLS,
        operations: Mapping[OperationKind, Sequence[str]] = DEFAULT_OPERATIONS,
    ) -> None:
        self._tools: Dict[str, ToolSpec] = {}
        for spec in tools:
            if spec.name in self._tools:
                raise ValueError(f"Tool '{spec.name}' is already registered")
            self._tools[spec.name] = spec
        for operation, names in operations.items():
            missing = [name for name in names if name not in self._tools]
            if missing:
                raise ValueError(f"Operation '{operation.value}' references unknown tools: {missing}")
        self._operations = {operation: tuple(names) for operation, names in operations.items()}

    def lookup(self, operation: OperationKind) -> list[ToolSpec]:
        """Return the candidate tools for *operation*, most preferred first."""
        try:
            names = self._operations[operation]
        except KeyError as exc:
            raise UnknownOperationError(f"No tools registered for operation '{operation}'") from exc
        return [self._tools[name] for name in names]

    def spec(self, name: str) -> ToolSpec:
        try:
            return self._tools[name]
        except KeyError as exc:
            raise UnknownOperationError(f"Tool '{name}' is not registered") from exc

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())


registry = ToolRegistry()


__all__ = [
    "ToolRegistry",
    "registry",
    "QPDF",
    "PDFINFO",
    "PDFTOTEXT",
    "PDFTOPPM",
    "GHOSTSCRIPT",
    "DEFAULT_TOOLS",
    "DEFAULT_OPERATIONS",
]
