"""Pydantic models for authorization reports and differential reports.

Reports are immutable once built: every model here is frozen and endpoint
entries are snapshots of the mutable EndpointRecord used during a scan.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
import yaml

NO_AUTH_EXPRESSION = "None"
CSRF_DISABLED_TAG = "CSRF Disabled"


class HttpVerb(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"


class SessionPolicy(str, Enum):
    ALWAYS = "ALWAYS"
    NEVER = "NEVER"
    IF_REQUIRED = "IF_REQUIRED"
    STATELESS = "STATELESS"
    DEFAULT = "DEFAULT"
    CUSTOM = "CUSTOM"


class EndpointEntry(BaseModel):
    """One endpoint as recorded in a report."""

    model_config = ConfigDict(frozen=True)

    path: str
    verb: HttpVerb
    auth_expression: str = NO_AUTH_EXPRESSION
    api_key_required: bool = False
    api_key_header: str | None = None
    basic_auth_required: bool = False
    session_management_policy: SessionPolicy | None = None
    security_features: tuple[str, ...] = ()
    declaring_type: str | None = None
    method_name: str | None = None

    @field_validator("auth_expression")
    @classmethod
    def _blank_is_unprotected(cls, value: str) -> str:
        return value if value.strip() else NO_AUTH_EXPRESSION

    @computed_field  # type: ignore[prop-decorator]
    @property
    def csrf_enabled(self) -> bool:
        return CSRF_DISABLED_TAG not in self.security_features

    @property
    def label(self) -> str:
        return f"{self.verb.value} {self.path}"

    def comparison_key(self) -> tuple[object, ...]:
        """The fields whose change makes an endpoint count as changed."""
        return (
            self.auth_expression,
            self.verb,
            self.api_key_required,
            self.basic_auth_required,
            self.csrf_enabled,
            self.session_management_policy,
            frozenset(self.security_features),
        )


class AuthorizationGroup(BaseModel):
    """Endpoints sharing one authorization expression."""

    model_config = ConfigDict(frozen=True)

    auth_expression: str
    endpoints: tuple[EndpointEntry, ...] = ()

    @property
    def endpoint_count(self) -> int:
        return len(self.endpoints)


class AuthorizationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    groups: tuple[AuthorizationGroup, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_endpoints(self) -> int:
        return sum(g.endpoint_count for g in self.groups)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def unique_auth_expressions(self) -> int:
        return len(self.groups)

    def endpoints(self) -> list[EndpointEntry]:
        """All endpoints, flattened in group order."""
        return [e for g in self.groups for e in g.endpoints]


class EndpointDiff(BaseModel):
    """``new`` only → added, ``old`` only → removed, both → changed."""

    model_config = ConfigDict(frozen=True)

    new: EndpointEntry | None = None
    old: EndpointEntry | None = None

    @property
    def path(self) -> str:
        entry = self.new if self.new is not None else self.old
        assert entry is not None
        return entry.path


class DifferentialReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    added: tuple[EndpointDiff, ...] = Field(default=())
    removed: tuple[EndpointDiff, ...] = Field(default=())
    changed: tuple[EndpointDiff, ...] = Field(default=())

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


# -- Serialization -----------------------------------------------------------


def dump_model(model: BaseModel, fmt: str = "json") -> str:
    """Serialize a report model as JSON or YAML."""
    if fmt == "yaml":
        return yaml.safe_dump(
            model.model_dump(mode="json"),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    return model.model_dump_json(indent=2)


def load_report(path: str | Path) -> AuthorizationReport:
    """Load a report written by dump_model (``.yaml``/``.yml`` or JSON)."""
    path = Path(path)
    text = path.read_text()
    if path.suffix.lower() in (".yaml", ".yml"):
        return AuthorizationReport.model_validate(yaml.safe_load(text))
    return AuthorizationReport.model_validate_json(text)
