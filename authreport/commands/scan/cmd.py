"""CLI command for the scan stage."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from authreport.helpers.console import console

FORMATS = ("text", "json", "yaml")


def output_format(fmt: str, output: str | None) -> str:
    """The serialization to use; a text request written to a file follows its suffix."""
    if fmt != "text" or output is None:
        return fmt
    return "yaml" if Path(output).suffix.lower() in (".yaml", ".yml") else "json"


@click.command()
@click.argument(
    "classpath", nargs=-1, required=True, type=click.Path(exists=True)
)
@click.option("-p", "--package", default="", help="Base package to scan (default: everything)")
@click.option(
    "-f", "--format", "fmt", type=click.Choice(FORMATS), default="text", help="Output format"
)
@click.option("-o", "--output", default=None, help="Write the report to this file")
@click.option(
    "--api-key-header",
    default=None,
    help="Header name assumed when an API key filter does not reveal one",
)
def scan(
    classpath: tuple[str, ...],
    package: str,
    fmt: str,
    output: str | None,
    api_key_header: str | None,
) -> None:
    """Scan compiled classes and report endpoint authorization."""
    from authreport.commands.scan.pipeline import build_report_from_classpath
    from authreport.commands.scan.steps import StepValidationError
    from authreport.formats.auth_report import dump_model
    from authreport.helpers.classpath import ClassPath
    from authreport.helpers.settings import AnalysisSettings
    from authreport.report.render import render_report

    settings = AnalysisSettings.from_env()
    if api_key_header:
        settings = settings.model_copy(update={"default_api_key_header": api_key_header})

    fmt = output_format(fmt, output)
    chatty = fmt == "text" or output is not None

    def on_progress(msg: str) -> None:
        if chatty:
            console.print(f"  {msg}")

    if chatty:
        console.print(f"[bold]Scanning:[/bold] {', '.join(classpath)}")
    with ClassPath(list(classpath)) as cp:
        try:
            report = asyncio.run(
                build_report_from_classpath(
                    cp, package=package, settings=settings, on_progress=on_progress
                )
            )
        except StepValidationError as e:
            raise click.ClickException(f"Step {e.step} failed: {e}") from e

    if fmt == "text":
        console.print()
        render_report(report, console)
        return

    text = dump_model(report, fmt)
    if output is None:
        click.echo(text)
        return
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text)
    console.print(f"[green]Report written to {output}[/green]")
