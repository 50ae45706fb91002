"""Vulnerability lookup — attach known CVEs to every CPE a dependency carries."""

from __future__ import annotations

import structlog

from scasentinel.data.cve_db import VulnerabilityDatabase
from scasentinel.dependency.dependency import Dependency
from scasentinel.pipeline.stages import Phase

log = structlog.get_logger("scasentinel.engine")


class VulnerabilityLookup:
    name = "vulnerability_lookup"
    phase = Phase.FINDING_ANALYSIS

    def __init__(self, database: VulnerabilityDatabase) -> None:
        self._database = database

    def find(self, dependency: Dependency) -> None:
        for identifier in dependency.cpe_identifiers():
            for vulnerability in self._database.lookup_vulnerabilities(identifier.value):
                dependency.add_vulnerability(vulnerability)
        if dependency.vulnerabilities:
            log.info(
                "vulnerability.found",
                file=dependency.file_name,
                count=len(dependency.vulnerabilities),
            )
