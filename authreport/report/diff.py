"""Differential reports: what changed between two authorization reports."""

from __future__ import annotations

from enum import Enum
import logging

from authreport.formats.auth_report import (
    AuthorizationReport,
    DifferentialReport,
    EndpointDiff,
    EndpointEntry,
)

logger = logging.getLogger(__name__)


class DiffKey(str, Enum):
    """How endpoints are matched between two reports.

    ``PATH_AND_VERB`` treats ``GET /x`` and ``POST /x`` as distinct
    endpoints. ``PATH`` matches on the path alone; when a report maps a
    path to several verbs, the last one listed wins.
    """

    PATH_AND_VERB = "path_and_verb"
    PATH = "path"


def _key(entry: EndpointEntry, key: DiffKey) -> tuple[str, ...]:
    if key is DiffKey.PATH:
        return (entry.path,)
    return (entry.path, entry.verb.value)


def index_endpoints(
    report: AuthorizationReport, key: DiffKey = DiffKey.PATH_AND_VERB
) -> dict[tuple[str, ...], EndpointEntry]:
    indexed: dict[tuple[str, ...], EndpointEntry] = {}
    for entry in report.endpoints():
        k = _key(entry, key)
        if k in indexed:
            logger.debug("Duplicate endpoint key %s; keeping the later entry", k)
        indexed[k] = entry
    return indexed


def has_changed(old: EndpointEntry, new: EndpointEntry) -> bool:
    return old.comparison_key() != new.comparison_key()


def diff_reports(
    old: AuthorizationReport,
    new: AuthorizationReport,
    key: DiffKey = DiffKey.PATH_AND_VERB,
) -> DifferentialReport:
    """Compare two reports endpoint by endpoint.

    Added and changed entries follow the new report's order; removed
    entries follow the old report's order.
    """
    old_index = index_endpoints(old, key)
    new_index = index_endpoints(new, key)

    added: list[EndpointDiff] = []
    changed: list[EndpointDiff] = []
    for k, entry in new_index.items():
        previous = old_index.get(k)
        if previous is None:
            added.append(EndpointDiff(new=entry))
        elif has_changed(previous, entry):
            changed.append(EndpointDiff(new=entry, old=previous))
    removed = [EndpointDiff(old=entry) for k, entry in old_index.items() if k not in new_index]

    return DifferentialReport(
        added=tuple(added), removed=tuple(removed), changed=tuple(changed)
    )
