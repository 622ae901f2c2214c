"""Analysis settings, with environment overrides."""

from __future__ import annotations

from collections.abc import Mapping
import os

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_API_KEY_HEADER = "X-API-KEY"

_ENV_PREFIX = "AUTHREPORT_"


class AnalysisSettings(BaseModel):
    """Tunable policy for one scan.

    ``default_api_key_header`` is used when an API key filter matches an
    endpoint but no header name can be read from the filter class.
    ``filter_methods`` are the per-request method names tried, in order,
    on each referenced filter type.
    """

    model_config = ConfigDict(frozen=True)

    default_api_key_header: str = DEFAULT_API_KEY_HEADER
    filter_methods: tuple[str, ...] = Field(
        default=("doFilterInternal", "doFilter")
    )
    inline_lambdas: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AnalysisSettings:
        """Build settings from ``AUTHREPORT_*`` environment variables."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        header = env.get(f"{_ENV_PREFIX}API_KEY_HEADER", "").strip()
        if header:
            values["default_api_key_header"] = header
        methods = env.get(f"{_ENV_PREFIX}FILTER_METHODS", "")
        names = tuple(m.strip() for m in methods.split(",") if m.strip())
        if names:
            values["filter_methods"] = names
        inline = env.get(f"{_ENV_PREFIX}INLINE_LAMBDAS")
        if inline is not None:
            values["inline_lambdas"] = inline.strip().lower() not in ("0", "false", "no", "off")
        return cls.model_validate(values)
