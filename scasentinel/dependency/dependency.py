"""Dependency — one analysed artifact and everything learned about it."""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from pathlib import Path

from scasentinel.core.exceptions import AnalysisError
from scasentinel.dependency.evidence import Evidence, EvidenceCollection, EvidenceType
from scasentinel.dependency.identifier import Identifier, Vulnerability


def _file_checksums(path: Path) -> tuple[str, str]:
    sha1 = hashlib.sha1()
    md5 = hashlib.md5()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            sha1.update(chunk)
            md5.update(chunk)
    return sha1.hexdigest(), md5.hexdigest()


@dataclass(eq=False)
class Dependency:
    """An artifact under analysis.

    Identity is the object itself: two records pointing at the same path stay
    distinct until a consolidation stage merges them.
    """

    file_path: str
    file_name: str = ""
    actual_file_path: str | None = None
    package_path: str | None = None
    ecosystem: str | None = None
    name: str | None = None
    version: str | None = None
    sha1: str | None = None
    md5: str | None = None
    is_virtual: bool = False
    license: str | None = None
    description: str | None = None
    vendor_evidence: EvidenceCollection = field(default_factory=EvidenceCollection)
    product_evidence: EvidenceCollection = field(default_factory=EvidenceCollection)
    version_evidence: EvidenceCollection = field(default_factory=EvidenceCollection)
    identifiers: set[Identifier] = field(default_factory=set)
    suppressed_identifiers: set[Identifier] = field(default_factory=set)
    related_dependencies: set[Dependency] = field(default_factory=set)
    project_references: set[str] = field(default_factory=set)
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    analysis_errors: list[AnalysisError] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.file_name:
            self.file_name = Path(self.file_path).name
        if self.actual_file_path is None:
            self.actual_file_path = self.file_path
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: str | Path, **kwargs) -> Dependency:
        """Build a record for a file on disk, computing its SHA-1 and MD5."""
        path = Path(path)
        sha1, md5 = _file_checksums(path)
        return cls(file_path=str(path), sha1=sha1, md5=md5, **kwargs)

    def evidence(self, kind: EvidenceType) -> EvidenceCollection:
        if kind is EvidenceType.VENDOR:
            return self.vendor_evidence
        if kind is EvidenceType.PRODUCT:
            return self.product_evidence
        return self.version_evidence

    def evidence_used(self) -> list[Evidence]:
        return (
            self.vendor_evidence.used()
            + self.product_evidence.used()
            + self.version_evidence.used()
        )

    def add_identifier(self, identifier: Identifier) -> None:
        with self._lock:
            self.identifiers.add(identifier)

    def remove_identifier(self, identifier: Identifier) -> None:
        with self._lock:
            self.identifiers.discard(identifier)

    def add_related_dependency(self, dependency: Dependency) -> None:
        with self._lock:
            self.related_dependencies.add(dependency)

    def add_project_references(self, references: set[str]) -> None:
        with self._lock:
            self.project_references.update(references)

    def add_vulnerability(self, vulnerability: Vulnerability) -> None:
        with self._lock:
            if vulnerability not in self.vulnerabilities:
                self.vulnerabilities.append(vulnerability)

    def add_analysis_error(self, error: AnalysisError) -> None:
        with self._lock:
            self.analysis_errors.append(error)

    def cpe_identifiers(self) -> list[Identifier]:
        return sorted(i for i in self.identifiers if i.type == "cpe")

    def __hash__(self) -> int:
        return id(self)

    def __repr__(self) -> str:
        return f"Dependency({self.file_path!r})"
