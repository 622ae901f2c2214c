"""Step: enrich endpoint records with every security configuration method."""

from __future__ import annotations

import asyncio

from authreport.commands.scan.analyzer import SecurityConfigAnalyzer
from authreport.commands.scan.steps.base import MechanicalStep
from authreport.commands.scan.steps.types import ConfigAnalysisInput, EndpointRecord


class AnalyzeConfigsStep(MechanicalStep[ConfigAnalysisInput, list[EndpointRecord]]):
    """Trace and classify configuration methods concurrently, then merge.

    Each method is prepared in a worker thread; the filter memo is shared
    through the analyzer. Results are merged into the records in
    discovery order, so the outcome does not depend on thread timing.
    """

    name = "analyze_configs"

    def __init__(self, analyzer: SecurityConfigAnalyzer):
        self.analyzer = analyzer

    async def _execute(self, input: ConfigAnalysisInput) -> list[EndpointRecord]:
        analyses = await asyncio.gather(
            *(asyncio.to_thread(self.analyzer.prepare, m) for m in input.config_methods)
        )
        for analysis in analyses:
            if analysis is not None:
                self.analyzer.apply(analysis, input.records)
        return input.records
