"""Version filter — drop noisy version guesses once trusted sources agree.

Three sources are trusted: the file name (``file/version``), a build
descriptor or repository lookup (``pom|nexus|central/version``) and the jar
manifest (``Manifest/Implementation-Version``).  When any two of them agree,
only the agreeing entries are kept.  A dependency whose version is already
known keeps only the evidence with exactly that value; otherwise the version
is set once the remaining evidence agrees on one.
"""

from __future__ import annotations

import structlog

from scasentinel.dependency.dependency import Dependency
from scasentinel.dependency.evidence import Evidence
from scasentinel.dependency.version import DependencyVersion, parse_version
from scasentinel.pipeline.stages import Phase

log = structlog.get_logger("scasentinel.engine")

FILE = "file"
POM_SOURCES = frozenset({"nexus", "central", "pom"})
MANIFEST = "manifest"
VERSION = "version"
IMPLEMENTATION_VERSION = "implementation-version"


def _is_file(evidence: Evidence) -> bool:
    return evidence.source.lower() == FILE and evidence.name.lower() == VERSION


def _is_pom(evidence: Evidence) -> bool:
    return evidence.source.lower() in POM_SOURCES and evidence.name.lower() == VERSION


def _is_manifest(evidence: Evidence) -> bool:
    return evidence.source.lower() == MANIFEST and evidence.name.lower() == IMPLEMENTATION_VERSION


def _agrees(version: DependencyVersion | None, *others: DependencyVersion | None) -> bool:
    return version is not None and any(version == other for other in others if other is not None)


class VersionFilter:
    name = "version_filter"
    phase = Phase.POST_INFORMATION_COLLECTION

    def filter(self, dependency: Dependency) -> None:
        if dependency.version is not None:
            known = dependency.version
            dependency.version_evidence.retain(lambda e: e.value == known)
            return

        self._trim_to_trusted(dependency)
        self._derive_version(dependency)

    def _trim_to_trusted(self, dependency: Dependency) -> None:
        file_version = pom_version = manifest_version = None
        for evidence in dependency.version_evidence:
            if _is_file(evidence):
                file_version = DependencyVersion(evidence.value)
            elif _is_pom(evidence):
                pom_version = DependencyVersion(evidence.value)
            elif _is_manifest(evidence):
                manifest_version = DependencyVersion(evidence.value)

        found = [v for v in (file_version, pom_version, manifest_version) if v is not None]
        if len(found) < 2:
            return
        file_match = _agrees(file_version, pom_version, manifest_version)
        pom_match = _agrees(pom_version, file_version, manifest_version)
        manifest_match = _agrees(manifest_version, file_version, pom_version)
        if not (file_match or pom_match or manifest_match):
            return

        log.debug("version_filter.filtering", file=dependency.file_name)
        dependency.version_evidence.retain(
            lambda e: (file_match and _is_file(e))
            or (pom_match and _is_pom(e))
            or (manifest_match and _is_manifest(e))
        )

    def _derive_version(self, dependency: Dependency) -> None:
        evidence = list(dependency.version_evidence)
        if not evidence:
            return
        version = parse_version(evidence[0].value, first_match_only=True)
        if version is None:
            return
        if all(parse_version(e.value, first_match_only=True) == version for e in evidence):
            dependency.version = str(version)
            log.debug("version_filter.version_set", file=dependency.file_name, version=dependency.version)
