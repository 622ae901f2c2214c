"""Group endpoint records into an AuthorizationReport."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from authreport.commands.scan.steps.types import EndpointRecord
from authreport.formats.auth_report import (
    AuthorizationGroup,
    AuthorizationReport,
    EndpointEntry,
)


def group_entries(entries: Iterable[EndpointEntry]) -> list[AuthorizationGroup]:
    """Partition entries by authorization expression.

    Groups appear in the order their expression is first seen; entries
    keep their input order inside a group.
    """
    buckets: dict[str, list[EndpointEntry]] = {}
    for entry in entries:
        buckets.setdefault(entry.auth_expression, []).append(entry)
    return [
        AuthorizationGroup(auth_expression=expression, endpoints=tuple(members))
        for expression, members in buckets.items()
    ]


def build_report(
    records: Iterable[EndpointRecord], generated_at: datetime | None = None
) -> AuthorizationReport:
    """Snapshot *records* and group them into a report stamped in UTC."""
    return AuthorizationReport(
        generated_at=generated_at or datetime.now(timezone.utc),
        groups=tuple(group_entries(r.snapshot() for r in records)),
    )
