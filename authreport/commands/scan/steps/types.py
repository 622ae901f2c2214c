"""Intermediate types passed between scan pipeline steps.

Every dataclass here represents data flowing from one step to the next.
Centralised in one file so the pipeline's data flow is readable without
opening each step module.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from authreport.formats.auth_report import (
    NO_AUTH_EXPRESSION,
    EndpointEntry,
    HttpVerb,
    SessionPolicy,
)
from authreport.helpers.classpath import ClassPath
from authreport.helpers.naming import normalize_path

# -- Endpoint records ----------------------------------------------------------


@dataclass
class EndpointRecord:
    """An endpoint under analysis. Enriched in place, then snapshotted."""

    path: str
    verb: HttpVerb = HttpVerb.GET
    auth_expression: str = NO_AUTH_EXPRESSION
    api_key_required: bool = False
    api_key_header: str | None = None
    basic_auth_required: bool = False
    session_management_policy: SessionPolicy | None = None
    security_features: set[str] = field(default_factory=lambda: set[str]())
    declaring_type: str | None = None
    method_name: str | None = None

    def __post_init__(self) -> None:
        self.path = normalize_path(self.path)
        if not self.auth_expression:
            self.auth_expression = NO_AUTH_EXPRESSION

    @property
    def key(self) -> tuple[str, HttpVerb]:
        return (self.path, self.verb)

    @property
    def label(self) -> str:
        return f"{self.verb.value} {self.path}"

    def snapshot(self) -> EndpointEntry:
        return EndpointEntry(
            path=self.path,
            verb=self.verb,
            auth_expression=self.auth_expression or NO_AUTH_EXPRESSION,
            api_key_required=self.api_key_required,
            api_key_header=self.api_key_header,
            basic_auth_required=self.basic_auth_required,
            session_management_policy=self.session_management_policy,
            security_features=tuple(sorted(self.security_features)),
            declaring_type=self.declaring_type,
            method_name=self.method_name,
        )


# -- Configuration methods -----------------------------------------------------


@dataclass(frozen=True)
class ConfigMethod:
    """A method believed to build a security filter chain."""

    declaring_type: str
    method_name: str
    descriptor: str | None = None

    def __str__(self) -> str:
        return f"{self.declaring_type}.{self.method_name}"


# -- Inputs for steps ------------------------------------------------------------


@dataclass
class ScanTarget:
    """Where to look: a classpath and the application's base package."""

    classpath: ClassPath
    package: str = ""


@dataclass
class ConfigAnalysisInput:
    """Everything the per-configuration analysis step needs."""

    config_methods: list[ConfigMethod]
    records: list[EndpointRecord]
