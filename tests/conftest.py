from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
import sys

import pytest
from pypdf import PdfWriter

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pdfcli.config import Settings  # noqa: E402
from pdfcli.exceptions import PdfCliError  # noqa: E402
from pdfcli.executor import ProcessExecutor  # noqa: E402
from pdfcli.locator import ToolLocator  # noqa: E402
from pdfcli.orchestrator import Orchestrator  # noqa: E402
from pdfcli.registry import registry  # noqa: E402
from pdfcli.types import ExecutionOutcome, ExecutionRequest, OutcomeStatus  # noqa: E402

# (stdout, stderr) printed by each executable's version probe
VERSION_OUTPUT: Dict[str, Tuple[bytes, bytes]] = {
    "qpdf": (b"qpdf version 11.6.3\nRun qpdf --copyright to see copyright and license information.\n", b""),
    "pdfinfo": (b"", b"pdfinfo version 22.02.0\nCopyright 2005-2022 The Poppler Developers\n"),
    "pdftotext": (b"", b"pdftotext version 22.02.0\n"),
    "pdftoppm": (b"", b"pdftoppm version 22.02.0\n"),
    "gs": (b"10.02.1\n", b""),
}

QPDF_JSON = {
    "version": 2,
    "parameters": {"decodelevel": "generalized"},
    "pages": [
        {"contents": ["4 0 R"], "images": [], "label": None, "object": "3 0 R", "outlines": [], "pageposfrom1": 1},
        {"contents": ["6 0 R"], "images": [], "label": None, "object": "5 0 R", "outlines": [], "pageposfrom1": 2},
    ],
    "encrypt": {
        "capabilities": {"accessibility": True, "extract": True},
        "encrypted": False,
        "ownerpasswordmatched": False,
        "parameters": {"method": "none"},
        "recovereduserpassword": None,
        "userpasswordmatched": False,
    },
    "qpdf": [
        {
            "jsonversion": 2,
            "pdfversion": "1.7",
            "pushedinheritedpageresources": False,
            "calledgetallpages": True,
            "maxobjectid": 7,
        },
        {
            "obj:1 0 R": {"value": {"/Pages": "2 0 R", "/Type": "/Catalog"}},
            "obj:7 0 R": {"value": {"/Title": "u:Quarterly Report", "/Producer": "u:pypdf"}},
            "trailer": {"value": {"/Info": "7 0 R", "/Root": "1 0 R", "/Size": 8}},
        },
    ],
}

PDFINFO_OUTPUT = (
    b"Title:           Quarterly Report\n"
    b"Producer:        pypdf\n"
    b"Tagged:          no\n"
    b"Form:            none\n"
    b"Pages:           2\n"
    b"Encrypted:       no\n"
    b"Page size:       612 x 792 pts (letter)\n"
    b"Page rot:        0\n"
    b"File size:       1024 bytes\n"
    b"Optimized:       no\n"
    b"PDF version:     1.7\n"
)


def _write_output(request: ExecutionRequest) -> ExecutionOutcome:
    if request.output_path is not None:
        request.output_path.write_bytes(b"%PDF-1.5\n% produced by a fake tool\n")
    return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=0, duration=0.01)


def _default_response(request: ExecutionRequest) -> ExecutionOutcome:
    if request.tool.name == "qpdf" and "--json=2" in request.argv:
        return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=0, stdout=json.dumps(QPDF_JSON).encode())
    if request.tool.name == "qpdf" and "--check" in request.argv:
        stdout = b"checking in.pdf\nPDF Version: 1.7\nFile is not encrypted\nNo syntax or stream encoding errors found\n"
        return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=0, stdout=stdout)
    if request.tool.name == "pdfinfo":
        return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=0, stdout=PDFINFO_OUTPUT)
    return _write_output(request)


class SpyExecutor:
    """Stands in for ProcessExecutor and records what would have been spawned."""

    def __init__(self) -> None:
        self.probes: list[ExecutionRequest] = []
        self.requests: list[ExecutionRequest] = []
        self.versions = dict(VERSION_OUTPUT)
        self.responses: Dict[str, Callable[[ExecutionRequest], ExecutionOutcome]] = {}

    @property
    def spawns(self) -> int:
        return len(self.probes) + len(self.requests)

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        if request.cancel is not None and request.cancel.cancelled:
            return ExecutionOutcome(OutcomeStatus.CANCELLED)
        if not request.inputs:
            self.probes.append(request)
            name = Path(request.argv[0]).name
            if name not in self.versions:
                return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=1, stderr=b"unknown option\n")
            stdout, stderr = self.versions[name]
            return ExecutionOutcome(OutcomeStatus.COMPLETED, exit_code=0, stdout=stdout, stderr=stderr)
        self.requests.append(request)
        handler = self.responses.get(request.tool.name, _default_response)
        return handler(request)


class FakePath:
    """Controls which executables ``shutil.which`` can see."""

    def __init__(self) -> None:
        self.available: Dict[str, str] = {}
        self.lookups: list[str] = []

    def install(self, *names: str) -> None:
        for name in names:
            self.available[name] = f"/opt/fake/bin/{name}"

    def remove(self, *names: str) -> None:
        for name in names:
            self.available.pop(name, None)

    def __call__(self, name: str) -> Optional[str]:
        self.lookups.append(name)
        return self.available.get(name)


@pytest.fixture()
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    for name in registry.names():
        monkeypatch.delenv(f"PDFCLI_{name.upper()}_PATH", raising=False)
    return Settings(_env_file=None, kill_grace_seconds=0.5)


@pytest.fixture()
def fake_path(monkeypatch: pytest.MonkeyPatch) -> FakePath:
    path = FakePath()
    monkeypatch.setattr("pdfcli.locator.which", path)
    return path


@pytest.fixture()
def spy_executor() -> SpyExecutor:
    return SpyExecutor()


@pytest.fixture()
def orchestrator(settings: Settings, spy_executor: SpyExecutor, fake_path: FakePath) -> Orchestrator:
    return Orchestrator(settings=settings, executor=spy_executor)


@pytest.fixture()
def sample_pdf(tmp_path: Path) -> Path:
    pdf_path = tmp_path / "present.pdf"
    writer = PdfWriter()
    for _ in range(2):
        writer.add_blank_page(width=612, height=792)
    writer.add_metadata({"/Producer": "pdfcli-tests", "/Title": "Sample"})
    with pdf_path.open("wb") as stream:
        writer.write(stream)
    return pdf_path


@pytest.fixture()
def requires_tool(settings: Settings) -> Callable[[str], None]:
    """Skip the calling test unless the real external tool is installed."""

    locator = ToolLocator(ProcessExecutor(), settings=settings)

    def _require(name: str) -> None:
        try:
            locator.resolve(registry.spec(name))
        except PdfCliError as exc:
            pytest.skip(f"{name} unavailable: {exc}")

    return _require


@pytest.fixture()
def qpdf_json() -> dict:
    return copy.deepcopy(QPDF_JSON)


@pytest.fixture()
def pdfinfo_output() -> bytes:
    return PDFINFO_OUTPUT
