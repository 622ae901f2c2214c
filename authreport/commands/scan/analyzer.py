"""Per-configuration-method analysis: trace, classify, resolve filters, correlate."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from authreport.commands.scan.classifier import API_KEY_AUTH, Classification, classify, session_tag
from authreport.commands.scan.correlator import correlate
from authreport.commands.scan.filters import FilterAnalyzer, FilterApplicability
from authreport.commands.scan.interpreter import trace_method
from authreport.commands.scan.steps.types import ConfigMethod, EndpointRecord
from authreport.formats.auth_report import SessionPolicy
from authreport.formats.classfile import AnalysisUnavailable
from authreport.helpers.classpath import ClassPath
from authreport.helpers.settings import AnalysisSettings

logger = logging.getLogger(__name__)

_SESSION_TAG_PREFIX = "Session Management: "
_POLICY_RANK = {SessionPolicy.DEFAULT: 0, SessionPolicy.CUSTOM: 1}


def _more_specific(new: SessionPolicy, current: SessionPolicy | None) -> bool:
    if current is None:
        return True
    return _POLICY_RANK.get(new, 2) > _POLICY_RANK.get(current, 2)


def merge_classification(
    record: EndpointRecord, result: Classification, settings: AnalysisSettings
) -> None:
    """Apply chain-level features to an endpoint the chain protects.

    API key evidence that came only from an inserted filter is left to the
    correlator, which knows which paths the filter covers.
    """
    if result.basic_auth_required:
        record.basic_auth_required = True
    if result.chain_wide_api_key:
        record.api_key_required = True
        if record.api_key_header is None:
            record.api_key_header = settings.default_api_key_header

    features = {f for f in result.features if not f.startswith(_SESSION_TAG_PREFIX)}
    if not result.chain_wide_api_key:
        features.discard(API_KEY_AUTH)
    record.security_features |= features

    policy = result.session_policy
    if policy is not None and _more_specific(policy, record.session_management_policy):
        record.security_features = {
            f for f in record.security_features if not f.startswith(_SESSION_TAG_PREFIX)
        }
        record.session_management_policy = policy
    if record.session_management_policy is not None:
        record.security_features.add(session_tag(record.session_management_policy))


@dataclass
class ChainAnalysis:
    """A classified configuration method and the filters it references."""

    config_method: ConfigMethod
    classification: Classification
    filters: list[FilterApplicability] = field(
        default_factory=lambda: list[FilterApplicability]()
    )


class SecurityConfigAnalyzer:
    """Analyzes security configuration methods against endpoint records.

    One instance serves one scan: the filter applicability memo lives as
    long as the analyzer.
    """

    def __init__(self, classpath: ClassPath, settings: AnalysisSettings | None = None):
        self.classpath = classpath
        self.settings = settings or AnalysisSettings()
        self.filters = FilterAnalyzer(classpath, self.settings)

    def classify_config(self, config_method: ConfigMethod) -> Classification | None:
        """Trace and classify one configuration method.

        Returns None when the method cannot be analyzed (logged, fail-open).
        """
        try:
            trace = trace_method(
                self.classpath,
                config_method.declaring_type,
                config_method.method_name,
                config_method.descriptor,
                inline_lambdas=self.settings.inline_lambdas,
            )
        except AnalysisUnavailable as e:
            logger.warning("Cannot analyze %s: %s", config_method, e)
            return None
        result = classify(trace)
        logger.info(
            "Security features detected in %s: %s",
            config_method,
            sorted(result.features) or "none",
        )
        return result

    def prepare(self, config_method: ConfigMethod) -> ChainAnalysis | None:
        """Everything about *config_method* that does not touch endpoint records.

        Safe to call from several threads at once.
        """
        result = self.classify_config(config_method)
        if result is None:
            return None
        applicabilities = self.filters.analyze_all(result.referenced_filters)
        return ChainAnalysis(config_method, result, list(applicabilities.values()))

    def apply(self, analysis: ChainAnalysis, records: list[EndpointRecord]) -> int:
        """Merge a prepared analysis into *records*; returns filter matches."""
        for record in records:
            merge_classification(record, analysis.classification, self.settings)
        matches = correlate(records, analysis.filters, self.settings)
        logger.debug(
            "%s: %d filter(s), %d endpoint match(es)",
            analysis.config_method,
            len(analysis.filters),
            matches,
        )
        return matches

    def analyze(
        self, config_method: ConfigMethod, records: list[EndpointRecord]
    ) -> list[EndpointRecord]:
        """Enrich *records* in place with what *config_method* configures.

        Idempotent: running it again with the same inputs changes nothing.
        """
        analysis = self.prepare(config_method)
        if analysis is not None:
            self.apply(analysis, records)
        return records
