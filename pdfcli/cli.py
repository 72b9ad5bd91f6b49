"""
Command-line interface for pdfcli.

Exit codes: 0 success, 2 invalid input, 3 tool unavailable, 4 tool failure,
5 timeout, 6 cancelled, 1 internal error.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from pdfcli import __version__
from pdfcli.exceptions import ErrorKind
from pdfcli.orchestrator import BatchJob, Orchestrator
from pdfcli.types import (
    ClassifiedError,
    DocumentInfo,
    FileProduced,
    OperationKind,
    OperationParams,
    Validated,
)
from pdfcli.utils import format_version, resolve_path, sizeof_fmt

console = Console()
err_console = Console(stderr=True)

_BATCH_SUFFIX = {
    OperationKind.TOTEXT: ".txt",
    OperationKind.RENDER: ".png",
}


@dataclass
class CliState:
    orchestrator: Optional[Orchestrator] = None
    timeout: Optional[float] = None
    show_diagnostics: bool = False

    def get_orchestrator(self) -> Orchestrator:
        if self.orchestrator is None:
            self.orchestrator = Orchestrator()
        return self.orchestrator


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("pdfcli")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=err_console, show_path=False, show_time=verbose))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _report_error(state: CliState, error: ClassifiedError) -> None:
    err_console.print(Text(str(error), style="bold red"), soft_wrap=True)
    if state.show_diagnostics and error.diagnostic:
        err_console.print(Text(error.diagnostic, style="dim"), soft_wrap=True)


def _report_result(result) -> None:
    if isinstance(result, Validated):
        suffix = " (structure checked)" if result.checked else ""
        console.print(f"OK: {result.path}{suffix}", soft_wrap=True, highlight=False)
    elif isinstance(result, DocumentInfo):
        table = Table(title=f"PDF Information: {result.path.name}", show_header=False)
        table.add_column("Property", style="cyan", no_wrap=True)
        table.add_column("Value", style="green")
        table.add_row("File Path", str(result.path))
        table.add_row("Pages", str(result.page_count))
        table.add_row("PDF Version", result.pdf_version)
        table.add_row("Encrypted", "Yes" if result.encrypted else "No")
        for label, value in (
            ("Title", result.title),
            ("Author", result.author),
            ("Subject", result.subject),
            ("Creator", result.creator),
            ("Producer", result.producer),
        ):
            if value:
                table.add_row(label, value)
        table.add_row("Reported By", result.tool)
        console.print(table)
    elif isinstance(result, FileProduced):
        console.print(
            f"[bold green]✓[/bold green] Wrote {result.output_path} "
            f"({sizeof_fmt(result.size_bytes)}) using {result.tool}",
            soft_wrap=True,
            highlight=False,
        )


def _run(ctx: click.Context, operation: OperationKind, params: OperationParams) -> None:
    state: CliState = ctx.obj
    try:
        outcome = state.get_orchestrator().run(operation, params, timeout=state.timeout)
    except KeyboardInterrupt:
        outcome = ClassifiedError(ErrorKind.CANCELLED, "interrupted")

    if isinstance(outcome, ClassifiedError):
        _report_error(state, outcome)
        ctx.exit(outcome.cli_exit_status)
    _report_result(outcome)


@click.group()
@click.version_option(version=__version__, prog_name="pdfcli")
@click.option("--verbose", "-v", is_flag=True, help="Log tool resolution and command lines")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-operation timeout in seconds",
)
@click.option("--show-diagnostics", is_flag=True, help="Print the tool's stderr excerpt on failure")
@click.pass_context
def cli(ctx, verbose, timeout, show_diagnostics):
    """
    pdfcli - PDF operations delegated to qpdf, poppler and Ghostscript.
    """
    _configure_logging(verbose)
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState()
    ctx.obj.timeout = timeout
    ctx.obj.show_diagnostics = show_diagnostics


@cli.command()
@click.argument("path", type=click.Path())
@click.option("--deep", is_flag=True, help="Also run qpdf's structural check")
@click.pass_context
def validate(ctx, path, deep):
    """
    Check that PATH is an existing, readable file.

    Example:

        pdfcli validate input.pdf --deep
    """
    _run(ctx, OperationKind.VALIDATE, OperationParams(input_path=path, deep=deep))


@cli.command()
@click.argument("path", type=click.Path())
@click.option("--password", default=None, help="Password of an encrypted PDF")
@click.pass_context
def inspect(ctx, path, password):
    """
    Show page count, version, encryption and document metadata.
    """
    _run(ctx, OperationKind.INSPECT, OperationParams(input_path=path, password=password))


@cli.command()
@click.argument("input_pdf", type=click.Path())
@click.argument("output_pdf", type=click.Path())
@click.option("--password", default=None, help="Password of an encrypted PDF")
@click.pass_context
def linearize(ctx, input_pdf, output_pdf, password):
    """
    Rewrite INPUT_PDF optimized for fast web view.
    """
    _run(
        ctx,
        OperationKind.LINEARIZE,
        OperationParams(input_path=input_pdf, output_path=output_pdf, password=password),
    )


@cli.command()
@click.argument("input_pdf", type=click.Path())
@click.argument("output_pdf", type=click.Path())
@click.option("--password", default=None, help="User or owner password")
@click.pass_context
def decrypt(ctx, input_pdf, output_pdf, password):
    """
    Remove encryption from INPUT_PDF.
    """
    _run(
        ctx,
        OperationKind.DECRYPT,
        OperationParams(input_path=input_pdf, output_path=output_pdf, password=password),
    )


@cli.command()
@click.argument("input_pdf", type=click.Path())
@click.argument("output_txt", type=click.Path())
@click.option("--password", default=None, help="Password of an encrypted PDF")
@click.pass_context
def totext(ctx, input_pdf, output_txt, password):
    """
    Extract the text of INPUT_PDF into OUTPUT_TXT.
    """
    _run(
        ctx,
        OperationKind.TOTEXT,
        OperationParams(input_path=input_pdf, output_path=output_txt, password=password),
    )


@cli.command()
@click.argument("input_pdf", type=click.Path())
@click.argument("output_pdf", type=click.Path())
@click.option("--level", default=None, type=int, help="Compression level from 1 (light) to 9 (smallest)")
@click.option("--password", default=None, help="Password of an encrypted PDF")
@click.pass_context
def compress(ctx, input_pdf, output_pdf, level, password):
    """
    Write a smaller copy of INPUT_PDF.

    Example:

        pdfcli compress input.pdf small.pdf --level 8
    """
    _run(
        ctx,
        OperationKind.COMPRESS,
        OperationParams(input_path=input_pdf, output_path=output_pdf, level=level, password=password),
    )


@cli.command()
@click.argument("input_pdf", type=click.Path())
@click.argument("output_png", type=click.Path())
@click.option("--page", default=None, type=int, help="Page to render (1-indexed, default 1)")
@click.option("--dpi", default=None, type=int, help="Resolution in dots per inch (default 150)")
@click.option("--password", default=None, help="Password of an encrypted PDF")
@click.pass_context
def render(ctx, input_pdf, output_png, page, dpi, password):
    """
    Render one page of INPUT_PDF to a PNG image.
    """
    _run(
        ctx,
        OperationKind.RENDER,
        OperationParams(input_path=input_pdf, output_path=output_png, page=page, dpi=dpi, password=password),
    )


@cli.command(name="tools")
@click.pass_context
def show_tools(ctx):
    """
    List the external tools and where they were found.
    """
    orchestrator = ctx.obj.get_orchestrator()
    table = Table(title="External Tools")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Path")
    table.add_column("Version")
    table.add_column("Required", style="dim")

    missing = 0
    for status in orchestrator.locator.status(orchestrator.registry.specs()):
        if status.resolved is not None:
            table.add_row(
                status.name,
                "[green]available[/green]",
                status.resolved.path,
                format_version(status.resolved.version),
                status.min_version,
            )
        else:
            missing += 1
            table.add_row(status.name, "[red]missing[/red]", "-", "-", status.min_version)
            if ctx.obj.show_diagnostics:
                err_console.print(Text(status.error.message, style="dim"), soft_wrap=True)
    console.print(table)
    if missing:
        console.print(f"[yellow]{missing} tool(s) unavailable; operations needing them exit with status 3[/yellow]")


def _batch_output(operation: OperationKind, source: str, output_dir: Optional[str]) -> Optional[Path]:
    if not operation.produces_output:
        return None
    directory = Path(output_dir) if output_dir else Path(source).parent
    stem = Path(source).stem
    suffix = _BATCH_SUFFIX.get(operation, ".pdf")
    target = directory / f"{stem}{suffix}"
    if resolve_path(target) == resolve_path(source):
        # never rewrite an input in place
        target = directory / f"{stem}.{operation.value}{suffix}"
    return target


@cli.command()
@click.argument("operation", type=click.Choice([kind.value for kind in OperationKind]))
@click.argument("inputs", nargs=-1, required=True, type=click.Path())
@click.option("--output-dir", "-o", default=None, type=click.Path(), help="Directory for produced files")
@click.option("--jobs", "-j", default=None, type=click.IntRange(min=1), help="Concurrent external processes")
@click.option("--level", default=None, type=int, help="Compression level (compress)")
@click.option("--page", default=None, type=int, help="Page to render (render)")
@click.option("--dpi", default=None, type=int, help="Resolution (render)")
@click.option("--password", default=None, help="Password for encrypted inputs")
@click.pass_context
def batch(ctx, operation, inputs, output_dir, jobs, level, page, dpi, password):
    """
    Run OPERATION over many INPUTS concurrently.

    Example:

        pdfcli batch compress *.pdf -o compressed/ --level 7
    """
    state: CliState = ctx.obj
    kind = OperationKind(operation)
    batch_jobs = [
        BatchJob(
            kind,
            OperationParams(
                input_path=source,
                output_path=_batch_output(kind, source, output_dir),
                password=password,
                level=level,
                page=page,
                dpi=dpi,
            ),
        )
        for source in inputs
    ]
    try:
        items = state.get_orchestrator().run_batch(batch_jobs, max_workers=jobs, timeout=state.timeout)
    except KeyboardInterrupt:
        _report_error(state, ClassifiedError(ErrorKind.CANCELLED, "interrupted"))
        ctx.exit(ErrorKind.CANCELLED.exit_status)

    table = Table(title=f"Batch {kind.value}: {len(items)} file(s)")
    table.add_column("Input", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    exit_status = 0
    for item in items:
        source = str(item.job.params.input_path)
        if item.ok:
            result = item.outcome
            detail = str(getattr(result, "output_path", None) or getattr(result, "path", ""))
            table.add_row(source, "[green]ok[/green]", detail)
        else:
            error = item.outcome
            table.add_row(source, f"[red]{error.kind.value}[/red]", error.detail)
            if state.show_diagnostics and error.diagnostic:
                err_console.print(Text(f"{source}: {error.diagnostic}", style="dim"), soft_wrap=True)
            exit_status = exit_status or error.cli_exit_status
    console.print(table)
    ctx.exit(exit_status)


def main() -> None:
    cli(prog_name="pdfcli")


if __name__ == "__main__":  # pragma: no cover
    main()
