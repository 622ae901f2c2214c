"""Tests for authreport/helpers/settings.py."""

from pydantic import ValidationError
import pytest

from authreport.helpers.settings import DEFAULT_API_KEY_HEADER, AnalysisSettings


class TestAnalysisSettings:
    def test_defaults(self):
        settings = AnalysisSettings()
        assert settings.default_api_key_header == DEFAULT_API_KEY_HEADER == "X-API-KEY"
        assert settings.filter_methods == ("doFilterInternal", "doFilter")
        assert settings.inline_lambdas is True

    def test_frozen(self):
        with pytest.raises(ValidationError):
            AnalysisSettings().inline_lambdas = False  # type: ignore[misc]

    def test_from_env_empty(self):
        assert AnalysisSettings.from_env({}) == AnalysisSettings()

    def test_from_env_overrides(self):
        settings = AnalysisSettings.from_env(
            {
                "AUTHREPORT_API_KEY_HEADER": " X-Tenant-Key ",
                "AUTHREPORT_FILTER_METHODS": "doFilter, filter ,",
                "AUTHREPORT_INLINE_LAMBDAS": "false",
            }
        )
        assert settings.default_api_key_header == "X-Tenant-Key"
        assert settings.filter_methods == ("doFilter", "filter")
        assert settings.inline_lambdas is False

    def test_blank_values_keep_defaults(self):
        settings = AnalysisSettings.from_env(
            {"AUTHREPORT_API_KEY_HEADER": "  ", "AUTHREPORT_FILTER_METHODS": ","}
        )
        assert settings == AnalysisSettings()

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("AUTHREPORT_API_KEY_HEADER", "X-From-Env")
        assert AnalysisSettings.from_env().default_api_key_header == "X-From-Env"
