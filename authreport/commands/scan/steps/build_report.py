"""Step: group enriched endpoint records into an AuthorizationReport."""

from __future__ import annotations

from collections import Counter

from authreport.commands.scan.steps.base import MechanicalStep, StepValidationError
from authreport.commands.scan.steps.types import EndpointRecord
from authreport.formats.auth_report import AuthorizationReport
from authreport.report.grouping import build_report


class BuildReportStep(MechanicalStep[list[EndpointRecord], AuthorizationReport]):
    """Snapshot the records and group them by authorization expression.

    Validation checks that the groups partition the input: every record
    appears in exactly one group, under its own expression.
    """

    name = "build_report"

    def __init__(self) -> None:
        self._expected: Counter[tuple[str, str, str]] = Counter()

    async def _execute(self, input: list[EndpointRecord]) -> AuthorizationReport:
        self._expected = Counter((r.path, r.verb.value, r.auth_expression) for r in input)
        return build_report(input)

    def _validate_output(self, output: AuthorizationReport) -> None:
        seen: Counter[tuple[str, str, str]] = Counter()
        expressions: list[str] = []
        for group in output.groups:
            expressions.append(group.auth_expression)
            for entry in group.endpoints:
                if entry.auth_expression != group.auth_expression:
                    raise StepValidationError(
                        f"Endpoint {entry.label} filed under the wrong group",
                        {"endpoint": entry.auth_expression, "group": group.auth_expression},
                    )
                seen[(entry.path, entry.verb.value, entry.auth_expression)] += 1

        duplicates = [e for e, n in Counter(expressions).items() if n > 1]
        if duplicates:
            raise StepValidationError(
                f"Expressions grouped more than once: {duplicates}",
                {"duplicates": duplicates},
            )
        if seen != self._expected:
            missing = self._expected - seen
            extra = seen - self._expected
            raise StepValidationError(
                "Report groups do not partition the endpoints",
                {"missing": sorted(missing), "extra": sorted(extra)},
            )
