"""Identifiers (CPE names and the like) and parsed vulnerable-software entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import unquote

from scasentinel.dependency.confidence import Confidence

CPE_PREFIX = "cpe:/"


@dataclass(unsafe_hash=True)
class Identifier:
    """An external identifier for a dependency.

    Equality and hashing use ``(type, value)``; the confidence is set by the
    identification engine and may change after the identifier is stored.
    """

    type: str
    value: str
    url: str | None = field(default=None, compare=False)
    confidence: Confidence | None = field(default=None, compare=False)
    description: str | None = field(default=None, compare=False)

    def __lt__(self, other: Identifier) -> bool:
        return self.value < other.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class VulnerableSoftware:
    """A CPE 2.2 URI (``cpe:/a:vendor:product:version:revision:edition``)."""

    name: str
    part: str | None = field(default=None, compare=False)
    vendor: str | None = field(default=None, compare=False)
    product: str | None = field(default=None, compare=False)
    version: str | None = field(default=None, compare=False)
    revision: str | None = field(default=None, compare=False)
    edition: str | None = field(default=None, compare=False)

    @classmethod
    def parse(cls, name: str) -> VulnerableSoftware:
        body = name[len(CPE_PREFIX):] if name.startswith(CPE_PREFIX) else name
        fields: list[str | None] = [unquote(piece) or None for piece in body.split(":")]
        fields += [None] * (6 - len(fields))
        part, vendor, product, version, revision, edition = fields[:6]
        return cls(name, part, vendor, product, version, revision, edition)

    @property
    def version_with_revision(self) -> str | None:
        if self.version and self.revision:
            return f"{self.version}.{self.revision}"
        return self.version

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Vulnerability:
    """A vulnerability attached to a dependency through one of its CPEs."""

    cve: str
    description: str = ""
    cvss_score: float | None = None
    cwe: str | None = None
    matched_cpe: str | None = field(default=None, compare=False)
