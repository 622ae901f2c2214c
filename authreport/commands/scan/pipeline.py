"""Orchestrator for the scan pipeline.

Discovers endpoints and security configuration methods on a classpath,
analyzes every configuration method against the endpoints and groups the
result into an AuthorizationReport. Configuration methods are analyzed
concurrently; filter analysis is shared between them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from authreport.commands.scan.analyzer import SecurityConfigAnalyzer
from authreport.commands.scan.steps.analyze_configs import AnalyzeConfigsStep
from authreport.commands.scan.steps.build_report import BuildReportStep
from authreport.commands.scan.steps.discover import (
    DiscoverConfigMethodsStep,
    DiscoverEndpointsStep,
)
from authreport.commands.scan.steps.types import ConfigAnalysisInput, ScanTarget
from authreport.formats.auth_report import AuthorizationReport
from authreport.helpers.classpath import ClassPath
from authreport.helpers.settings import AnalysisSettings


async def build_report_from_classpath(
    classpath: ClassPath,
    package: str = "",
    settings: AnalysisSettings | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> AuthorizationReport:
    """Scan *classpath* and build an authorization report.

    Classes and methods that cannot be analyzed are skipped (logged), so
    the report always covers every endpoint that was discovered.
    """

    def progress(msg: str) -> None:
        if on_progress:
            on_progress(msg)

    settings = settings or AnalysisSettings()
    target = ScanTarget(classpath=classpath, package=package)

    # Step 1: Discovery (endpoints and configuration methods in parallel)
    progress("Discovering endpoints and security configuration...")
    endpoint_step = DiscoverEndpointsStep()
    config_step = DiscoverConfigMethodsStep()
    records, config_methods = await asyncio.gather(
        endpoint_step.run(target), config_step.run(target)
    )
    progress(f"  Found {len(records)} endpoints, {len(config_methods)} security configurations")
    duplicates = DiscoverEndpointsStep.duplicate_keys(records)
    if duplicates:
        progress(f"  Endpoints mapped more than once: {', '.join(duplicates)}")

    # Step 2: Analyze configuration methods
    if config_methods:
        progress("Analyzing security configuration...")
        analyzer = SecurityConfigAnalyzer(classpath, settings)
        analyze_step = AnalyzeConfigsStep(analyzer)
        records = await analyze_step.run(
            ConfigAnalysisInput(config_methods=config_methods, records=records)
        )
        progress(f"  Analyzed {len(analyzer.filters.analyzed)} custom filters")

    # Step 3: Group
    report = await BuildReportStep().run(records)
    progress(
        f"  {report.total_endpoints} endpoints under "
        f"{report.unique_auth_expressions} authorization expressions"
    )
    return report
