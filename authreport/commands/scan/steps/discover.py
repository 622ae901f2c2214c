"""Steps: find endpoints and security configuration methods on the classpath."""

from __future__ import annotations

import asyncio
from collections import Counter

from authreport.commands.scan.discovery import discover_config_methods, discover_endpoints
from authreport.commands.scan.steps.base import MechanicalStep
from authreport.commands.scan.steps.types import ConfigMethod, EndpointRecord, ScanTarget


class DiscoverEndpointsStep(MechanicalStep[ScanTarget, list[EndpointRecord]]):
    """Collect one EndpointRecord per mapped controller handler.

    Input: ScanTarget (classpath + base package).
    Output: endpoint records in classpath order, not yet enriched.
    """

    name = "discover_endpoints"

    async def _execute(self, input: ScanTarget) -> list[EndpointRecord]:
        return await asyncio.to_thread(discover_endpoints, input.classpath, input.package)

    @staticmethod
    def duplicate_keys(records: list[EndpointRecord]) -> list[str]:
        """Labels of (path, verb) keys mapped by more than one handler."""
        counts = Counter(r.key for r in records)
        return [f"{verb.value} {path}" for (path, verb), n in counts.items() if n > 1]


class DiscoverConfigMethodsStep(MechanicalStep[ScanTarget, list[ConfigMethod]]):
    """Collect the methods that build a SecurityFilterChain."""

    name = "discover_config_methods"

    async def _execute(self, input: ScanTarget) -> list[ConfigMethod]:
        return await asyncio.to_thread(discover_config_methods, input.classpath, input.package)
