"""Tests for authreport/commands/scan/analyzer.py."""

import logging
import struct
from pathlib import Path

import pytest

from authreport.commands.scan.analyzer import SecurityConfigAnalyzer, merge_classification
from authreport.commands.scan.classifier import (
    API_KEY_AUTH,
    BASIC_AUTH,
    CSRF_DISABLED,
    Classification,
)
from authreport.commands.scan.steps.types import ConfigMethod
from authreport.formats.auth_report import HttpVerb, SessionPolicy
from authreport.helpers.classpath import ClassPath
from authreport.helpers.settings import AnalysisSettings
from tests.conftest import API_KEY_FILTER, SECURITY_CONFIG, make_record, security_config_class
from tests.jvm import ClassBuilder

SETTINGS = AnalysisSettings()
FILTER_CHAIN = ConfigMethod(SECURITY_CONFIG, "filterChain")


class TestMergeClassification:
    def test_basic_auth_is_ored_in(self):
        record = make_record("/api/users")
        merge_classification(record, Classification(), SETTINGS)
        assert not record.basic_auth_required
        merge_classification(
            record, Classification(basic_auth_required=True, features={BASIC_AUTH}), SETTINGS
        )
        merge_classification(record, Classification(), SETTINGS)
        assert record.basic_auth_required
        assert record.security_features == {BASIC_AUTH}

    def test_chain_wide_api_key(self):
        record = make_record("/api/users")
        result = Classification(
            api_key_required=True, chain_wide_api_key=True, features={API_KEY_AUTH}
        )
        merge_classification(record, result, SETTINGS)
        assert record.api_key_required
        assert record.api_key_header == "X-API-KEY"
        assert API_KEY_AUTH in record.security_features

    def test_filter_api_key_is_left_to_correlation(self):
        record = make_record("/api/users")
        result = Classification(api_key_required=True, features={API_KEY_AUTH, CSRF_DISABLED})
        merge_classification(record, result, SETTINGS)
        assert not record.api_key_required
        assert record.security_features == {CSRF_DISABLED}

    def test_existing_header_is_kept(self):
        record = make_record("/admin", api_key_header="X-API-TOKEN", api_key_required=True)
        result = Classification(api_key_required=True, chain_wide_api_key=True)
        merge_classification(record, result, SETTINGS)
        assert record.api_key_header == "X-API-TOKEN"

    def test_more_specific_session_policy_replaces_tag(self):
        record = make_record("/api/users")
        merge_classification(record, Classification(session_policy=SessionPolicy.DEFAULT), SETTINGS)
        merge_classification(record, Classification(session_policy=SessionPolicy.CUSTOM), SETTINGS)
        merge_classification(record, Classification(session_policy=SessionPolicy.STATELESS), SETTINGS)
        assert record.session_management_policy is SessionPolicy.STATELESS
        assert record.security_features == {"Session Management: STATELESS"}

    def test_first_concrete_session_policy_wins(self):
        record = make_record("/api/users")
        merge_classification(record, Classification(session_policy=SessionPolicy.NEVER), SETTINGS)
        merge_classification(record, Classification(session_policy=SessionPolicy.ALWAYS), SETTINGS)
        merge_classification(record, Classification(session_policy=SessionPolicy.DEFAULT), SETTINGS)
        assert record.session_management_policy is SessionPolicy.NEVER
        assert record.security_features == {"Session Management: NEVER"}


class TestSecurityConfigAnalyzer:
    def test_sample_configuration(self, classpath: ClassPath, sample_records):
        SecurityConfigAnalyzer(classpath).analyze(FILTER_CHAIN, sample_records)
        common = {BASIC_AUTH, CSRF_DISABLED, "Session Management: STATELESS"}
        for record in sample_records:
            assert record.basic_auth_required
            assert record.session_management_policy is SessionPolicy.STATELESS
            if record.path == "/admin/users":
                assert record.api_key_required
                assert record.api_key_header == "X-API-TOKEN"
                assert record.security_features == common | {
                    "API Key Authentication required for /admin"
                }
            else:
                assert not record.api_key_required
                assert record.api_key_header is None
                assert record.security_features == common

    def test_analysis_is_idempotent(self, classpath: ClassPath, sample_records):
        analyzer = SecurityConfigAnalyzer(classpath)
        analyzer.analyze(FILTER_CHAIN, sample_records)
        first = [r.snapshot() for r in sample_records]
        analyzer.analyze(FILTER_CHAIN, sample_records)
        assert [r.snapshot() for r in sample_records] == first

    def test_prepare_resolves_referenced_filters(self, classpath: ClassPath):
        analysis = SecurityConfigAnalyzer(classpath).prepare(FILTER_CHAIN)
        assert analysis is not None
        assert analysis.classification.referenced_filters == [API_KEY_FILTER]
        assert [f.filter_type for f in analysis.filters] == [API_KEY_FILTER]
        assert analysis.filters[0].patterns == frozenset({"/admin"})

    def test_apply_counts_matches(self, classpath: ClassPath, sample_records):
        analyzer = SecurityConfigAnalyzer(classpath)
        analysis = analyzer.prepare(FILTER_CHAIN)
        assert analysis is not None
        assert analyzer.apply(analysis, sample_records) == 1

    def test_missing_config_fails_open(
        self, classpath: ClassPath, sample_records, caplog: pytest.LogCaptureFixture
    ):
        before = [r.snapshot() for r in sample_records]
        with caplog.at_level(logging.WARNING):
            SecurityConfigAnalyzer(classpath).analyze(
                ConfigMethod("com.acme.Missing", "filterChain"), sample_records
            )
        assert [r.snapshot() for r in sample_records] == before
        assert "Cannot analyze com.acme.Missing.filterChain" in caplog.text

    def test_malformed_pool_reference_fails_open(
        self, app_dir: Path, caplog: pytest.LogCaptureFixture
    ):
        builder = ClassBuilder("com.acme.security.BrokenConfig")
        code = builder.code()
        code.raw(0xB6, *struct.pack(">H", builder.class_ref("com.acme.Thing")))
        builder.add_method("filterChain", "()V", code.return_())
        builder.write(app_dir)
        records = [make_record("/api/users")]
        before = [r.snapshot() for r in records]
        with ClassPath([app_dir]) as cp, caplog.at_level(logging.WARNING):
            SecurityConfigAnalyzer(cp).analyze(
                ConfigMethod("com.acme.security.BrokenConfig", "filterChain"), records
            )
        assert [r.snapshot() for r in records] == before
        assert records[0].security_features == set()
        assert "Cannot analyze com.acme.security.BrokenConfig.filterChain" in caplog.text

    def test_second_chain_keeps_first_concrete_policy(self, app_dir: Path):
        security_config_class(
            "com.acme.security.LegacyConfig", filter_type=None, session_policy="NEVER"
        ).write(app_dir)
        records = [make_record("/api/users", HttpVerb.GET)]
        with ClassPath([app_dir]) as cp:
            analyzer = SecurityConfigAnalyzer(cp)
            analyzer.analyze(FILTER_CHAIN, records)
            analyzer.analyze(ConfigMethod("com.acme.security.LegacyConfig", "filterChain"), records)
        assert records[0].session_management_policy is SessionPolicy.STATELESS
        assert [f for f in records[0].security_features if f.startswith("Session")] == [
            "Session Management: STATELESS"
        ]

    def test_custom_default_header_for_chain_wide_key(self, classpath: ClassPath):
        analyzer = SecurityConfigAnalyzer(
            classpath, AnalysisSettings(default_api_key_header="X-Service-Key")
        )
        record = make_record("/api/users")
        merge_classification(
            record,
            Classification(api_key_required=True, chain_wide_api_key=True),
            analyzer.settings,
        )
        assert record.api_key_header == "X-Service-Key"
