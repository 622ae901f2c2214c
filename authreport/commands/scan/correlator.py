"""Endpoint-filter correlation: merge filter-derived requirements into endpoints."""

from __future__ import annotations

from collections.abc import Iterable
import logging

from authreport.commands.scan.classifier import API_KEY_AUTH
from authreport.commands.scan.filters import WILDCARD, FilterApplicability
from authreport.commands.scan.steps.types import EndpointRecord
from authreport.helpers.naming import normalize_path, squash
from authreport.helpers.settings import AnalysisSettings

logger = logging.getLogger(__name__)

API_KEY_UNRESOLVED = "API Key Authentication potentially required (check implementation)"


def pattern_matches(pattern: str, path: str) -> bool:
    """Whether a filter path literal covers *path*.

    Equal paths match, and so do path-segment prefixes (``/admin`` covers
    ``/admin/users`` but not ``/administrator``). A trailing ``/**`` or
    ``/*`` is treated as a prefix marker; ``/`` alone is the root only.
    """
    if pattern == WILDCARD:
        return True
    path = normalize_path(path)
    for suffix in ("/**", "/*"):
        if pattern.endswith(suffix):
            pattern = pattern[: -len(suffix)] or "/"
            break
    literal = normalize_path(pattern)
    if literal == "/":
        return path == "/"
    return path == literal or path.startswith(literal + "/")


def filter_applies(applicability: FilterApplicability, path: str) -> bool:
    return any(pattern_matches(p, path) for p in applicability.patterns)


def _matched_label(applicability: FilterApplicability, path: str) -> str:
    if applicability.is_wildcard:
        return "all paths"
    literals = sorted(p for p in applicability.patterns if pattern_matches(p, path))
    return ", ".join(literals)


def filter_family(filter_type: str) -> str:
    """Classify a filter type by name: api_key, jwt, basic or custom."""
    name = squash(filter_type.rsplit(".", 1)[-1])
    if "apikey" in name or "tokenauth" in name:
        return "api_key"
    if "jwt" in name:
        return "jwt"
    if "basicauth" in name:
        return "basic"
    return "custom"


def apply_filter(
    record: EndpointRecord,
    applicability: FilterApplicability,
    settings: AnalysisSettings,
) -> bool:
    """Merge one filter's effect into *record* if it applies. Returns whether it did."""
    family = filter_family(applicability.filter_type)
    if not applicability.patterns:
        if family == "api_key":
            record.security_features.add(API_KEY_UNRESOLVED)
        return False
    if not filter_applies(applicability, record.path):
        return False

    label = _matched_label(applicability, record.path)
    if family == "api_key":
        record.api_key_required = True
        record.api_key_header = applicability.header_name or settings.default_api_key_header
        record.security_features.add(f"{API_KEY_AUTH} required for {label}")
    elif family == "jwt":
        record.security_features.add(f"JWT Authentication required for {label}")
    elif family == "basic":
        record.basic_auth_required = True
        record.security_features.add(f"Basic Authentication required for {label}")
    else:
        record.security_features.add(f"{applicability.filter_name} applies to {label}")
    logger.debug("Filter %s applies to %s", applicability.filter_name, record.label)
    return True


def correlate(
    records: Iterable[EndpointRecord],
    applicabilities: Iterable[FilterApplicability],
    settings: AnalysisSettings | None = None,
) -> int:
    """Run every (endpoint × filter) pair; returns the number of matches."""
    settings = settings or AnalysisSettings()
    filters = list(applicabilities)
    matches = 0
    for record in records:
        for applicability in filters:
            if apply_filter(record, applicability, settings):
                matches += 1
    return matches
