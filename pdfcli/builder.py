"""Parameter validation and argv construction for external tools.

Each (operation, tool) pair has one argv template below. Arguments are kept
as discrete list elements and paths are always absolute, so nothing the
caller passes can be read as a flag or reach a shell.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .exceptions import InvalidInputError, UnknownOperationError
from .types import ExecutionRequest, OperationKind, OperationParams, ResolvedTool
from .utils import resolve_path

_LOGGER = logging.getLogger("pdfcli.builder")

LEVEL_RANGE = (1, 9)
DPI_RANGE = (18, 2400)
DEFAULT_LEVEL = 6
DEFAULT_DPI = 150
DEFAULT_PAGE = 1

# Tool messages are matched in English by the classifier
_TOOL_ENV = {"LC_ALL": "C"}


@dataclass(frozen=True)
class ValidatedParams:
    """Parameters after validation, with defaults applied."""

    input_path: Path
    output_path: Optional[Path]
    password: Optional[str]
    level: int
    page: int
    dpi: int
    deep: bool


def _check_range(name: str, value: int, bounds: Tuple[int, int]) -> int:
    low, high = bounds
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise InvalidInputError(f"{name} must be between {low} and {high}, got {value}")
    return value


def _validate_input(path) -> Path:
    if path is None or str(path) == "":
        raise InvalidInputError("an input path is required")
    source = resolve_path(path)
    if not source.exists():
        raise InvalidInputError(f"input file does not exist: {path}")
    if not source.is_file():
        raise InvalidInputError(f"input path is not a regular file: {path}")
    if not os.access(source, os.R_OK):
        raise InvalidInputError(f"input file is not readable: {path}")
    return source


def _validate_output(path, source: Path) -> Path:
    if path is None or str(path) == "":
        raise InvalidInputError("an output path is required")
    destination = resolve_path(path)
    parent = destination.parent
    if not parent.is_dir():
        raise InvalidInputError(f"output directory does not exist: {parent}")
    if not os.access(parent, os.W_OK):
        raise InvalidInputError(f"output directory is not writable: {parent}")
    if destination.is_dir():
        raise InvalidInputError(f"output path is a directory: {path}")
    if destination == source:
        raise InvalidInputError("output path must differ from the input path")
    return destination


def validate_params(operation: OperationKind, params: OperationParams) -> ValidatedParams:
    """Check *params* for *operation* without touching any external tool."""

    source = _validate_input(params.input_path)
    destination = _validate_output(params.output_path, source) if operation.produces_output else None

    password = params.password
    if password is not None and any(ch in password for ch in ("\x00", "\n", "\r")):
        raise InvalidInputError("password must not contain NUL or newline characters")

    level = _check_range("level", DEFAULT_LEVEL if params.level is None else params.level, LEVEL_RANGE)
    dpi = _check_range("dpi", DEFAULT_DPI if params.dpi is None else params.dpi, DPI_RANGE)
    page = DEFAULT_PAGE if params.page is None else params.page
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise InvalidInputError(f"page must be a positive integer, got {page!r}")

    if operation is OperationKind.RENDER and destination is not None and destination.suffix.lower() != ".png":
        raise InvalidInputError(f"render output must be a .png file: {params.output_path}")

    return ValidatedParams(
        input_path=source,
        output_path=destination,
        password=password,
        level=level,
        page=page,
        dpi=dpi,
        deep=bool(params.deep),
    )


# --- argv templates ----------------------------------------------------------

_GS_COMMON = ("-q", "-dNOPAUSE", "-dBATCH", "-dSAFER")


def _pdf_settings(level: int) -> str:
    if level <= 3:
        return "/prepress"
    if level <= 6:
        return "/printer"
    if level <= 8:
        return "/ebook"
    return "/screen"


def _qpdf_password(p: ValidatedParams) -> list[str]:
    return [f"--password={p.password}"] if p.password else []


def _poppler_password(p: ValidatedParams) -> list[str]:
    return ["-upw", p.password] if p.password else []


def _gs_password(p: ValidatedParams) -> list[str]:
    return [f"-sPDFPassword={p.password}"] if p.password else []


def _qpdf_validate(exe: str, p: ValidatedParams) -> list[str]:
    return [exe, *_qpdf_password(p), "--check", str(p.input_path)]


def _qpdf_inspect(exe: str, p: ValidatedParams) -> list[str]:
    return [
        exe,
        *_qpdf_password(p),
        "--json=2",
        "--json-key=pages",
        "--json-key=encrypt",
        "--json-key=qpdf",
        str(p.input_path),
    ]


def _qpdf_linearize(exe: str, p: ValidatedParams) -> list[str]:
    return [exe, *_qpdf_password(p), "--linearize", str(p.input_path), str(p.output_path)]


def _qpdf_decrypt(exe: str, p: ValidatedParams) -> list[str]:
    return [exe, *_qpdf_password(p), "--decrypt", str(p.input_path), str(p.output_path)]


def _qpdf_compress(exe: str, p: ValidatedParams) -> list[str]:
    return [
        exe,
        *_qpdf_password(p),
        "--object-streams=generate",
        "--recompress-flate",
        f"--compression-level={p.level}",
        str(p.input_path),
        str(p.output_path),
    ]


def _pdfinfo_inspect(exe: str, p: ValidatedParams) -> list[str]:
    return [exe, "-enc", "UTF-8", *_poppler_password(p), str(p.input_path)]


def _pdftotext_totext(exe: str, p: ValidatedParams) -> list[str]:
    return [exe, "-enc", "UTF-8", "-layout", *_poppler_password(p), str(p.input_path), str(p.output_path)]


def _pdftoppm_render(exe: str, p: ValidatedParams) -> list[str]:
    # pdftoppm appends the extension itself
    prefix = p.output_path.with_suffix("")
    return [
        exe,
        "-png",
        "-r",
        str(p.dpi),
        "-f",
        str(p.page),
        "-l",
        str(p.page),
        "-singlefile",
        *_poppler_password(p),
        str(p.input_path),
        str(prefix),
    ]


def _gs_output_file(p: ValidatedParams) -> str:
    # gs reads %d and friends in the output name as a page number format
    return "-sOutputFile=" + str(p.output_path).replace("%", "%%")


def _gs_totext(exe: str, p: ValidatedParams) -> list[str]:
    return [exe, *_GS_COMMON, "-sDEVICE=txtwrite", *_gs_password(p), _gs_output_file(p), str(p.input_path)]


def _gs_compress(exe: str, p: ValidatedParams) -> list[str]:
    return [
        exe,
        *_GS_COMMON,
        "-sDEVICE=pdfwrite",
        "-dCompatibilityLevel=1.5",
        f"-dPDFSETTINGS={_pdf_settings(p.level)}",
        *_gs_password(p),
        _gs_output_file(p),
        str(p.input_path),
    ]


def _gs_render(exe: str, p: ValidatedParams) -> list[str]:
    return [
        exe,
        *_GS_COMMON,
        "-sDEVICE=png16m",
        f"-r{p.dpi}",
        f"-dFirstPage={p.page}",
        f"-dLastPage={p.page}",
        *_gs_password(p),
        _gs_output_file(p),
        str(p.input_path),
    ]


ArgvTemplate = Callable[[str, ValidatedParams], list]

ARGV_TABLE: Dict[Tuple[OperationKind, str], ArgvTemplate] = {
    (OperationKind.VALIDATE, "qpdf"): _qpdf_validate,
    (OperationKind.INSPECT, "qpdf"): _qpdf_inspect,
    (OperationKind.LINEARIZE, "qpdf"): _qpdf_linearize,
    (OperationKind.DECRYPT, "qpdf"): _qpdf_decrypt,
    (OperationKind.COMPRESS, "qpdf"): _qpdf_compress,
    (OperationKind.INSPECT, "pdfinfo"): _pdfinfo_inspect,
    (OperationKind.TOTEXT, "pdftotext"): _pdftotext_totext,
    (OperationKind.RENDER, "pdftoppm"): _pdftoppm_render,
    (OperationKind.TOTEXT, "ghostscript"): _gs_totext,
    (OperationKind.COMPRESS, "ghostscript"): _gs_compress,
    (OperationKind.RENDER, "ghostscript"): _gs_render,
}


class CommandBuilder:
    """Turns validated parameters into an :class:`ExecutionRequest`."""

    def __init__(self, table: Dict[Tuple[OperationKind, str], ArgvTemplate] | None = None) -> None:
        self._table = dict(ARGV_TABLE if table is None else table)

    def validate(self, operation: OperationKind, params: OperationParams) -> ValidatedParams:
        return validate_params(operation, params)

    def supports(self, operation: OperationKind, tool_name: str) -> bool:
        return (operation, tool_name) in self._table

    def build(
        self,
        operation: OperationKind,
        tool: ResolvedTool,
        params: ValidatedParams,
        *,
        timeout: float,
        cancel=None,
    ) -> ExecutionRequest:
        try:
            template = self._table[(operation, tool.name)]
        except KeyError as exc:
            raise UnknownOperationError(
                f"{tool.name} cannot perform '{operation.value}'"
            ) from exc

        argv = tuple(str(arg) for arg in template(tool.path, params))
        inputs = (params.input_path,)
        request = ExecutionRequest(
            tool=tool,
            argv=argv,
            timeout=timeout,
            cwd=params.input_path.parent,
            inputs=inputs,
            output_path=params.output_path,
            cancel=cancel,
            env=dict(_TOOL_ENV),
        )
        _LOGGER.debug("Built %s request for %s with %d arguments", operation.value, tool.name, len(argv) - 1)
        return request


__all__ = [
    "CommandBuilder",
    "ValidatedParams",
    "validate_params",
    "ARGV_TABLE",
    "LEVEL_RANGE",
    "DPI_RANGE",
    "DEFAULT_LEVEL",
    "DEFAULT_DPI",
    "DEFAULT_PAGE",
]
