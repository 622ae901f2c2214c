"""CLI command comparing two saved authorization reports."""

from __future__ import annotations

from pathlib import Path

import click
from pydantic import ValidationError
import yaml

from authreport.helpers.console import console


def _load(path: str):
    from authreport.formats.auth_report import load_report

    try:
        return load_report(path)
    except (OSError, ValidationError, yaml.YAMLError) as e:
        raise click.ClickException(f"Cannot read report {path}: {e}") from e


@click.command()
@click.argument("old", type=click.Path(exists=True, dir_okay=False))
@click.argument("new", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(["text", "json", "yaml"]),
    default="text",
    help="Output format",
)
@click.option("-o", "--output", default=None, help="Write the differential report to this file")
@click.option(
    "--by-path",
    is_flag=True,
    default=False,
    help="Match endpoints on path alone, ignoring the HTTP verb",
)
def diff(old: str, new: str, fmt: str, output: str | None, by_path: bool) -> None:
    """Compare two reports and list added, removed and changed endpoints."""
    from authreport.commands.scan.cmd import output_format
    from authreport.formats.auth_report import dump_model
    from authreport.report.diff import DiffKey, diff_reports
    from authreport.report.render import render_diff

    result = diff_reports(
        _load(old), _load(new), DiffKey.PATH if by_path else DiffKey.PATH_AND_VERB
    )

    fmt = output_format(fmt, output)
    if fmt == "text":
        render_diff(result, console)
        return

    text = dump_model(result, fmt)
    if output is None:
        click.echo(text)
        return
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text)
    console.print(f"[green]Differential report written to {output}[/green]")
