"""CLI command printing the instruction trace of one method."""

from __future__ import annotations

import click
from rich.markup import escape

from authreport.helpers.console import console


@click.command()
@click.argument("classpath", type=click.Path(exists=True))
@click.argument("type_name")
@click.argument("method_name")
@click.option(
    "--no-lambdas",
    is_flag=True,
    default=False,
    help="Do not splice in the bodies of lambdas defined in the same class",
)
def trace(classpath: str, type_name: str, method_name: str, no_lambdas: bool) -> None:
    """Print the invocations, constants and branches seen in a method.

    Useful to understand why a configuration or filter was classified the
    way it was.
    """
    from authreport.commands.scan.interpreter import (
        BranchPolarity,
        ConstantLoad,
        trace_method,
    )
    from authreport.formats.classfile import AnalysisUnavailable
    from authreport.helpers.classpath import ClassPath

    with ClassPath([classpath]) as cp:
        try:
            events = trace_method(cp, type_name, method_name, inline_lambdas=not no_lambdas)
        except AnalysisUnavailable as e:
            raise click.ClickException(str(e)) from e

    console.print(f"[bold]{type_name}.{method_name}[/bold] ({len(events)} events)")
    for i, event in enumerate(events):
        if isinstance(event, ConstantLoad):
            line = f"[green]const[/green]  {escape(repr(event.value))}"
        elif isinstance(event, BranchPolarity):
            line = f"[yellow]branch[/yellow] {'negated' if event.negated else 'direct'}"
        else:
            target = escape(event.owner + "." + event.name + event.descriptor)
            line = f"[cyan]call[/cyan]   {target}"
        console.print(f"  {i:4d}  {line}", highlight=False)
