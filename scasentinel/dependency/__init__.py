"""Evidence model — dependencies, evidence, identifiers and versions."""

from scasentinel.dependency.confidence import Confidence
from scasentinel.dependency.dependency import Dependency
from scasentinel.dependency.evidence import Evidence, EvidenceCollection, EvidenceType
from scasentinel.dependency.identifier import Identifier, Vulnerability, VulnerableSoftware
from scasentinel.dependency.version import DependencyVersion, parse_version

__all__ = [
    "Confidence",
    "Dependency",
    "DependencyVersion",
    "Evidence",
    "EvidenceCollection",
    "EvidenceType",
    "Identifier",
    "Vulnerability",
    "VulnerableSoftware",
    "parse_version",
]
