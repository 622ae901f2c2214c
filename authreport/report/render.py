"""Terminal rendering of authorization and differential reports."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from authreport.formats.auth_report import (
    AuthorizationReport,
    DifferentialReport,
    EndpointDiff,
    EndpointEntry,
)
from authreport.helpers.console import shorten_path


def _yes_no(flag: bool) -> str:
    return "[green]yes[/green]" if flag else "no"


def _api_key(entry: EndpointEntry) -> str:
    if not entry.api_key_required:
        return "no"
    if entry.api_key_header:
        return f"[green]yes[/green] ({escape(entry.api_key_header)})"
    return _yes_no(True)


def _session(entry: EndpointEntry) -> str:
    policy = entry.session_management_policy
    return policy.value if policy is not None else "-"


def _features(entry: EndpointEntry) -> str:
    return "\n".join(escape(f) for f in entry.security_features) or "-"


def render_report(report: AuthorizationReport, console: Console) -> None:
    """Print a report as one table per authorization expression."""
    console.print("[bold]Authorization Report[/bold]")
    console.print(f"  Generated: {report.generated_at.isoformat()}")
    console.print(f"  Endpoints: {report.total_endpoints}")
    console.print(f"  Authorization expressions: {report.unique_auth_expressions}")
    console.print()

    for group in report.groups:
        table = Table(title=f"{escape(group.auth_expression)} ({group.endpoint_count})")
        table.add_column("Verb", style="cyan")
        table.add_column("Path")
        table.add_column("API Key")
        table.add_column("Basic")
        table.add_column("CSRF")
        table.add_column("Session")
        table.add_column("Features")
        for entry in group.endpoints:
            table.add_row(
                entry.verb.value,
                escape(shorten_path(entry.path, 60)),
                _api_key(entry),
                _yes_no(entry.basic_auth_required),
                "enabled" if entry.csrf_enabled else "[red]disabled[/red]",
                _session(entry),
                _features(entry),
            )
        console.print(table)
        console.print()


def describe_changes(diff: EndpointDiff) -> list[str]:
    """Human-readable field changes of a changed endpoint."""
    old, new = diff.old, diff.new
    if old is None or new is None:
        return []
    changes: list[str] = []
    for name in (
        "auth_expression",
        "verb",
        "api_key_required",
        "basic_auth_required",
        "csrf_enabled",
        "session_management_policy",
    ):
        before, after = getattr(old, name), getattr(new, name)
        if before != after:
            changes.append(f"{name}: {_plain(before)} → {_plain(after)}")
    gained = sorted(set(new.security_features) - set(old.security_features))
    lost = sorted(set(old.security_features) - set(new.security_features))
    changes.extend(f"+ {f}" for f in gained)
    changes.extend(f"- {f}" for f in lost)
    return changes


def _plain(value: object) -> str:
    if value is None:
        return "-"
    return str(getattr(value, "value", value))


def render_diff(diff: DifferentialReport, console: Console) -> None:
    """Print added, removed and changed endpoints."""
    if diff.is_empty:
        console.print("[green]No authorization changes.[/green]")
        return

    table = Table(title="Authorization Changes")
    table.add_column("Change", style="cyan")
    table.add_column("Endpoint")
    table.add_column("Authorization")
    table.add_column("Details")
    for d in diff.added:
        assert d.new is not None
        table.add_row(
            "[green]added[/green]",
            escape(d.new.label),
            escape(d.new.auth_expression),
            _features(d.new),
        )
    for d in diff.removed:
        assert d.old is not None
        table.add_row(
            "[red]removed[/red]", escape(d.old.label), escape(d.old.auth_expression), "-"
        )
    for d in diff.changed:
        assert d.new is not None
        table.add_row(
            "[yellow]changed[/yellow]",
            escape(d.new.label),
            escape(d.new.auth_expression),
            "\n".join(escape(c) for c in describe_changes(d)),
        )
    console.print(table)
    console.print(
        f"  {len(diff.added)} added, {len(diff.removed)} removed, {len(diff.changed)} changed"
    )
