"""Parsers turning captured tool output into :data:`~pdfcli.types.OperationResult` values.

One parser per tool family, selected by the resolved tool's logical name
through :data:`PARSERS`. Parsing is strict: malformed structured output or a
missing expected field raises :class:`~pdfcli.exceptions.ParseError` rather
than producing a partial result.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

from .exceptions import ParseError, UnknownOperationError
from .types import (
    DocumentInfo,
    ExecutionOutcome,
    ExecutionRequest,
    FileProduced,
    OperationKind,
    OperationResult,
    Validated,
)

_LOGGER = logging.getLogger("pdfcli.parsers")

_INFO_KEYS = {
    "/Title": "title",
    "/Author": "author",
    "/Subject": "subject",
    "/Creator": "creator",
    "/Producer": "producer",
}


def _output_file(operation: OperationKind, request: ExecutionRequest, outcome: ExecutionOutcome) -> FileProduced:
    output = request.output_path
    if output is None:
        raise ParseError(f"{request.tool.name}: no output path recorded for '{operation.value}'")
    if not output.is_file():
        raise ParseError(f"{request.tool.name} exited successfully but did not create {output}")
    size = output.stat().st_size
    if size == 0:
        raise ParseError(f"{request.tool.name} exited successfully but {output} is empty")
    return FileProduced(operation=operation, output_path=output, size_bytes=size, tool=request.tool.name)


# --- qpdf ----------------------------------------------------------------------


def _qpdf_string(value: Any) -> Optional[str]:
    """Decode a qpdf JSON v2 string value (``u:`` text or ``b:`` hex bytes)."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(f"qpdf: expected a string in document info, got {type(value).__name__}")
    if value.startswith("u:"):
        return value[2:]
    if value.startswith("b:"):
        try:
            raw = bytes.fromhex(value[2:])
        except ValueError as exc:
            raise ParseError(f"qpdf: malformed binary string {value!r}") from exc
        if raw.startswith(b"\xfe\xff"):
            return raw[2:].decode("utf-16-be", errors="replace")
        return raw.decode("latin-1")
    return value


def _require(mapping: Any, key: str, expected: type, where: str) -> Any:
    if not isinstance(mapping, dict) or key not in mapping:
        raise ParseError(f"qpdf: missing '{key}' in {where}")
    value = mapping[key]
    if isinstance(value, bool) and expected is not bool:
        raise ParseError(f"qpdf: '{key}' in {where} has unexpected type bool")
    if not isinstance(value, expected):
        raise ParseError(f"qpdf: '{key}' in {where} is not a {expected.__name__}")
    return value


def _qpdf_document_info(objects: dict) -> Dict[str, Optional[str]]:
    trailer = _require(objects, "trailer", dict, "qpdf objects")
    trailer_value = _require(trailer, "value", dict, "trailer")
    info = trailer_value.get("/Info")
    if info is None:
        return {}
    if isinstance(info, str):
        info_object = _require(objects, f"obj:{info}", dict, "qpdf objects")
        info = _require(info_object, "value", dict, f"object {info}")
    if not isinstance(info, dict):
        raise ParseError("qpdf: document info is not a dictionary")
    return {field: _qpdf_string(info.get(key)) for key, field in _INFO_KEYS.items()}


def _qpdf_inspect(request: ExecutionRequest, outcome: ExecutionOutcome) -> DocumentInfo:
    try:
        data = json.loads(outcome.stdout)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        hint = " (output was truncated)" if outcome.truncated else ""
        raise ParseError(f"qpdf: malformed JSON output{hint}: {exc}") from exc

    version = _require(data, "version", int, "top level")
    if version != 2:
        raise ParseError(f"qpdf: unsupported JSON version {version}")
    pages = _require(data, "pages", list, "top level")
    encrypt = _require(data, "encrypt", dict, "top level")
    encrypted = _require(encrypt, "encrypted", bool, "encrypt")
    sections = _require(data, "qpdf", list, "top level")
    if len(sections) != 2:
        raise ParseError("qpdf: expected header and objects in 'qpdf'")
    header, objects = sections
    pdf_version = _require(header, "pdfversion", str, "qpdf header")
    if not isinstance(objects, dict):
        raise ParseError("qpdf: object table is not a dictionary")

    return DocumentInfo(
        path=request.inputs[0],
        page_count=len(pages),
        pdf_version=pdf_version,
        encrypted=encrypted,
        tool=request.tool.name,
        **_qpdf_document_info(objects),
    )


_QPDF_CHECK_CLEAN = "No syntax or stream encoding errors found"
_QPDF_CHECK_WARNED = "succeeded with warnings"


def _qpdf_check(request: ExecutionRequest, outcome: ExecutionOutcome) -> Validated:
    clean = _QPDF_CHECK_CLEAN in outcome.stdout_text
    warned = any(
        line.startswith("WARNING:") or _QPDF_CHECK_WARNED in line
        for line in (outcome.stdout_text + "\n" + outcome.stderr_text).splitlines()
    )
    if not (clean or warned):
        raise ParseError("qpdf: --check output does not report a check result")
    source = request.inputs[0]
    return Validated(path=source, size_bytes=source.stat().st_size, checked=True)


def parse_qpdf(operation: OperationKind, request: ExecutionRequest, outcome: ExecutionOutcome) -> OperationResult:
    if operation is OperationKind.INSPECT:
        return _qpdf_inspect(request, outcome)
    if operation is OperationKind.VALIDATE:
        return _qpdf_check(request, outcome)
    return _output_file(operation, request, outcome)


# --- poppler -------------------------------------------------------------------

_PDFINFO_FIELDS = {
    "Title": "title",
    "Author": "author",
    "Subject": "subject",
    "Creator": "creator",
    "Producer": "producer",
}


def _pdfinfo_fields(text: str) -> Dict[str, str]:
    """Split pdfinfo's ``Key:   value`` lines; the key ends at the first colon."""
    fields: Dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        key, sep, value = line.partition(":")
        if not sep:
            # continuation of a multi-line metadata value
            continue
        fields.setdefault(key.strip(), value.strip())
    return fields


def parse_pdfinfo(operation: OperationKind, request: ExecutionRequest, outcome: ExecutionOutcome) -> OperationResult:
    if operation is not OperationKind.INSPECT:
        raise UnknownOperationError(f"pdfinfo cannot perform '{operation.value}'")
    fields = _pdfinfo_fields(outcome.stdout_text)
    for required in ("Pages", "PDF version", "Encrypted"):
        if required not in fields:
            raise ParseError(f"pdfinfo: missing '{required}' field")
    try:
        page_count = int(fields["Pages"])
    except ValueError as exc:
        raise ParseError(f"pdfinfo: page count {fields['Pages']!r} is not a number") from exc

    encrypted_flag = fields["Encrypted"].split(" ", 1)[0].lower()
    if encrypted_flag not in ("yes", "no"):
        raise ParseError(f"pdfinfo: unexpected Encrypted value {fields['Encrypted']!r}")

    metadata = {attr: (fields.get(key) or None) for key, attr in _PDFINFO_FIELDS.items()}
    return DocumentInfo(
        path=request.inputs[0],
        page_count=page_count,
        pdf_version=fields["PDF version"],
        encrypted=encrypted_flag == "yes",
        tool=request.tool.name,
        **metadata,
    )


def parse_output_file(operation: OperationKind, request: ExecutionRequest, outcome: ExecutionOutcome) -> OperationResult:
    if not operation.produces_output:
        raise UnknownOperationError(f"{request.tool.name} cannot perform '{operation.value}'")
    return _output_file(operation, request, outcome)


Parser = Callable[[OperationKind, ExecutionRequest, ExecutionOutcome], OperationResult]

PARSERS: Dict[str, Parser] = {
    "qpdf": parse_qpdf,
    "pdfinfo": parse_pdfinfo,
    "pdftotext": parse_output_file,
    "pdftoppm": parse_output_file,
    "ghostscript": parse_output_file,
}


def parse(operation: OperationKind, request: ExecutionRequest, outcome: ExecutionOutcome) -> OperationResult:
    """Dispatch to the parser of the tool that produced *outcome*."""
    try:
        parser = PARSERS[request.tool.name]
    except KeyError as exc:
        raise UnknownOperationError(f"No parser registered for tool '{request.tool.name}'") from exc
    try:
        return parser(operation, request, outcome)
    except ParseError as exc:
        _LOGGER.error(
            "Could not parse %s %s output (%s); its output format may have changed: %s",
            request.tool.name,
            request.tool.version_text or "",
            operation.value,
            exc,
        )
        raise


__all__ = ["PARSERS", "parse", "parse_qpdf", "parse_pdfinfo", "parse_output_file"]
