from __future__ import annotations

import json
from pathlib import Path

import pytest

from pdfcli.exceptions import ParseError, UnknownOperationError
from pdfcli.parsers import parse, parse_pdfinfo, parse_qpdf
from pdfcli.types import (
    DocumentInfo,
    ExecutionOutcome,
    ExecutionRequest,
    FileProduced,
    OperationKind,
    OutcomeStatus,
    ResolvedTool,
    Validated,
)

QPDF = ResolvedTool("qpdf", "/usr/bin/qpdf", (11, 6, 3), "qpdf version 11.6.3")
PDFINFO = ResolvedTool("pdfinfo", "/usr/bin/pdfinfo", (22, 2, 0), "pdfinfo version 22.02.0")
GS = ResolvedTool("ghostscript", "/usr/bin/gs", (10, 2, 1), "10.02.1")


def _request(tool: ResolvedTool, source: Path, output: Path | None = None) -> ExecutionRequest:
    return ExecutionRequest(tool=tool, argv=(tool.path,), timeout=5.0, inputs=(source,), output_path=output)


def _completed(stdout: bytes, *, truncated: bool = False) -> ExecutionOutcome:
    return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=0, stdout=stdout, truncated=truncated)


def test_qpdf_json_inspect(sample_pdf: Path, qpdf_json: dict) -> None:
    result = parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(json.dumps(qpdf_json).encode()))

    assert isinstance(result, DocumentInfo)
    assert result.page_count == 2
    assert result.pdf_version == "1.7"
    assert result.encrypted is False
    assert result.title == "Quarterly Report"
    assert result.producer == "pypdf"
    assert result.author is None
    assert result.tool == "qpdf"
    assert result.path == sample_pdf


def test_qpdf_binary_strings_decoded(sample_pdf: Path, qpdf_json: dict) -> None:
    info = qpdf_json["qpdf"][1]["obj:7 0 R"]["value"]
    info["/Title"] = "b:feff00c9007400e9"  # UTF-16BE "Été"
    info["/Author"] = "b:" + "Zoë".encode("latin-1").hex()
    result = parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(json.dumps(qpdf_json).encode()))
    assert result.title == "Été"
    assert result.author == "Zoë"


def test_qpdf_without_document_info(sample_pdf: Path, qpdf_json: dict) -> None:
    del qpdf_json["qpdf"][1]["trailer"]["value"]["/Info"]
    qpdf_json["encrypt"]["encrypted"] = True
    result = parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(json.dumps(qpdf_json).encode()))
    assert result.encrypted is True
    assert result.title is None


def test_malformed_json_is_parse_error(sample_pdf: Path) -> None:
    with pytest.raises(ParseError, match="malformed JSON"):
        parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(b"{\"version\": 2, \"pages\": ["))


def test_truncated_json_mentions_truncation(sample_pdf: Path, qpdf_json: dict) -> None:
    payload = json.dumps(qpdf_json).encode()[:100]
    with pytest.raises(ParseError, match="truncated"):
        parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(payload, truncated=True))


@pytest.mark.parametrize("missing", ["pages", "encrypt", "qpdf", "version"])
def test_missing_json_key_is_parse_error(sample_pdf: Path, qpdf_json: dict, missing: str) -> None:
    del qpdf_json[missing]
    with pytest.raises(ParseError, match=missing):
        parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(json.dumps(qpdf_json).encode()))


def test_unsupported_json_version(sample_pdf: Path, qpdf_json: dict) -> None:
    qpdf_json["version"] = 1
    with pytest.raises(ParseError, match="unsupported JSON version"):
        parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(json.dumps(qpdf_json).encode()))


def test_wrongly_typed_field(sample_pdf: Path, qpdf_json: dict) -> None:
    qpdf_json["encrypt"]["encrypted"] = "no"
    with pytest.raises(ParseError, match="encrypted"):
        parse_qpdf(OperationKind.INSPECT, _request(QPDF, sample_pdf), _completed(json.dumps(qpdf_json).encode()))


def test_qpdf_check_output(sample_pdf: Path) -> None:
    stdout = b"checking present.pdf\nPDF Version: 1.3\nFile is not encrypted\nNo syntax or stream encoding errors found\n"
    result = parse_qpdf(OperationKind.VALIDATE, _request(QPDF, sample_pdf), _completed(stdout))
    assert result == Validated(path=sample_pdf, size_bytes=sample_pdf.stat().st_size, checked=True)

    with pytest.raises(ParseError):
        parse_qpdf(OperationKind.VALIDATE, _request(QPDF, sample_pdf), _completed(b"checking present.pdf\n"))


def test_qpdf_check_requires_a_check_result(sample_pdf: Path) -> None:
    version_only = b"checking present.pdf\nPDF Version: 1.3\nFile is not encrypted\n"
    with pytest.raises(ParseError, match="check result"):
        parse_qpdf(OperationKind.VALIDATE, _request(QPDF, sample_pdf), _completed(version_only))

    warned = ExecutionOutcome(
        OutcomeStatus.COMPLETED,
        exit_code=3,
        stdout=version_only,
        stderr=b"WARNING: present.pdf: file is damaged\nqpdf: operation succeeded with warnings\n",
    )
    result = parse_qpdf(OperationKind.VALIDATE, _request(QPDF, sample_pdf), warned)
    assert result.checked is True


def test_pdfinfo_output(sample_pdf: Path, pdfinfo_output: bytes) -> None:
    result = parse_pdfinfo(OperationKind.INSPECT, _request(PDFINFO, sample_pdf), _completed(pdfinfo_output))
    assert result.page_count == 2
    assert result.pdf_version == "1.7"
    assert result.encrypted is False
    assert result.title == "Quarterly Report"
    assert result.tool == "pdfinfo"


def test_pdfinfo_encrypted_with_details(sample_pdf: Path, pdfinfo_output: bytes) -> None:
    stdout = pdfinfo_output.replace(b"Encrypted:       no", b"Encrypted:       yes (print:yes copy:no change:no addNotes:no)")
    result = parse_pdfinfo(OperationKind.INSPECT, _request(PDFINFO, sample_pdf), _completed(stdout))
    assert result.encrypted is True


def test_pdfinfo_title_containing_colon(sample_pdf: Path, pdfinfo_output: bytes) -> None:
    stdout = pdfinfo_output.replace(b"Quarterly Report", b"Report: Q3")
    result = parse_pdfinfo(OperationKind.INSPECT, _request(PDFINFO, sample_pdf), _completed(stdout))
    assert result.title == "Report: Q3"


def test_pdfinfo_missing_pages(sample_pdf: Path, pdfinfo_output: bytes) -> None:
    stdout = pdfinfo_output.replace(b"Pages:           2\n", b"")
    with pytest.raises(ParseError, match="Pages"):
        parse_pdfinfo(OperationKind.INSPECT, _request(PDFINFO, sample_pdf), _completed(stdout))


def test_pdfinfo_non_numeric_pages(sample_pdf: Path, pdfinfo_output: bytes) -> None:
    stdout = pdfinfo_output.replace(b"Pages:           2", b"Pages:           two")
    with pytest.raises(ParseError, match="not a number"):
        parse_pdfinfo(OperationKind.INSPECT, _request(PDFINFO, sample_pdf), _completed(stdout))


def test_produced_file(sample_pdf: Path, tmp_path: Path) -> None:
    output = tmp_path / "small.pdf"
    output.write_bytes(b"%PDF-1.5\n")
    result = parse(OperationKind.COMPRESS, _request(GS, sample_pdf, output), _completed(b""))
    assert result == FileProduced(OperationKind.COMPRESS, output, 9, "ghostscript")


def test_missing_or_empty_output_file(sample_pdf: Path, tmp_path: Path) -> None:
    output = tmp_path / "small.pdf"
    with pytest.raises(ParseError, match="did not create"):
        parse(OperationKind.COMPRESS, _request(GS, sample_pdf, output), _completed(b""))
    output.touch()
    with pytest.raises(ParseError, match="is empty"):
        parse(OperationKind.COMPRESS, _request(GS, sample_pdf, output), _completed(b""))


def test_unknown_tool_has_no_parser(sample_pdf: Path) -> None:
    mutool = ResolvedTool("mutool", "/usr/bin/mutool", (1, 23))
    with pytest.raises(UnknownOperationError):
        parse(OperationKind.INSPECT, _request(mutool, sample_pdf), _completed(b""))
