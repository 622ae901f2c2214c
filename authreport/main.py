"""CLI entry point for authreport."""

from __future__ import annotations

import click
from dotenv import load_dotenv

from authreport.commands.diff.cmd import diff
from authreport.commands.scan.cmd import scan
from authreport.commands.trace.cmd import trace
from authreport.helpers.log import configure_logging

load_dotenv()


@click.group()
@click.version_option(version="0.1.0", prog_name="authreport")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log analysis details")
def cli(verbose: bool) -> None:
    """Report the authorization posture of compiled Spring web applications."""
    configure_logging(verbose)


cli.add_command(scan)
cli.add_command(diff)
cli.add_command(trace)


if __name__ == "__main__":
    cli()
