"""CPE identification — turn vendor/product/version evidence into CPE identifiers.

Evidence text is concatenated from the highest confidence down, searched
against the CPE index, each hit is verified against *used* evidence, and the
versions known to the vulnerability database are matched against the
version evidence.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from urllib.parse import quote_plus

import structlog

from scasentinel.core.config import DEFAULT_MAX_QUERY_RESULTS, DEFAULT_MIN_SCORE
from scasentinel.data.cpe_index import CpeSearchIndex, IndexEntry
from scasentinel.data.cve_db import VulnerabilityDatabase
from scasentinel.dependency.confidence import Confidence
from scasentinel.dependency.dependency import Dependency
from scasentinel.dependency.evidence import EvidenceCollection
from scasentinel.dependency.identifier import Identifier
from scasentinel.dependency.version import DependencyVersion, parse_version
from scasentinel.engines.identification.query_builder import build_search
from scasentinel.pipeline.stages import Phase

log = structlog.get_logger("scasentinel.engine")

NVD_SEARCH_URL = (
    "https://nvd.nist.gov/vuln/search/results?form_type=Advanced&cves=on&cpe_version={}"
)
SEARCH_ITERATIONS = 4

_RX_WORD_SPLIT = re.compile(r"[\s_-]")


class MatchKind(enum.IntEnum):
    EXACT_MATCH = 0
    BEST_GUESS = 1


@dataclass
class IdentifierMatch:
    identifier: Identifier
    kind: MatchKind
    evidence_confidence: Confidence

    def sort_key(self) -> tuple[int, int, str]:
        return (self.kind, -self.evidence_confidence, self.identifier.value)


def add_evidence_without_duplicate_terms(
    text: str, collection: EvidenceCollection, confidence: Confidence
) -> str:
    """Append the values at *confidence* to *text*, skipping values already present.

    Marks the evidence it reads as used.
    """
    buf = f" {text or ''} "
    for evidence in collection.iter_confidence(confidence):
        value = evidence.value
        if value.startswith("http://"):
            value = value[7:].replace(".", " ")
        if value.startswith("https://"):
            value = value[8:].replace(".", " ")
        if f" {value} " not in buf:
            buf += value + " "
    return buf.strip()


def collection_contains_string(collection: EvidenceCollection, text: str | None) -> bool:
    """True if every word of *text* is found in the collection's used evidence.

    Words of one or two characters are glued to their neighbour first, so
    ``"m core"`` is looked up as ``"mcore"``.
    """
    if text is None:
        return False
    words = _RX_WORD_SPLIT.split(text)
    while words and not words[-1]:
        words.pop()

    merged: list[str] = []
    held: str | None = None
    for word in words:
        if held is not None:
            merged.append(held + word)
            held = None
        elif len(word) <= 2:
            held = word
        else:
            merged.append(word)
    if held is not None:
        merged.append(merged[-1] + held if merged else held)
    return all(collection.contains_used_string(word) for word in merged)


def verify_entry(entry: IndexEntry, dependency: Dependency) -> bool:
    return collection_contains_string(
        dependency.product_evidence, entry.product
    ) and collection_contains_string(dependency.vendor_evidence, entry.vendor)


class CpeIdentifier:
    """Identification stage: assigns CPE identifiers to a dependency."""

    name = "cpe_identifier"
    phase = Phase.IDENTIFIER_ANALYSIS

    def __init__(
        self,
        index: CpeSearchIndex,
        database: VulnerabilityDatabase,
        max_results: int = DEFAULT_MAX_QUERY_RESULTS,
        min_score: float = DEFAULT_MIN_SCORE,
    ) -> None:
        self._index = index
        self._database = database
        self._max_results = max_results
        self._min_score = min_score

    def identify(self, dependency: Dependency) -> None:
        self.determine_cpe(dependency)

    def determine_cpe(self, dependency: Dependency) -> None:
        confidence = Confidence.HIGHEST
        vendors = add_evidence_without_duplicate_terms(
            "", dependency.vendor_evidence, confidence
        )
        products = add_evidence_without_duplicate_terms(
            "", dependency.product_evidence, confidence
        )
        # Version evidence is read only so that it shows up as used.
        add_evidence_without_duplicate_terms("", dependency.version_evidence, confidence)

        for _ in range(SEARCH_ITERATIONS):
            if vendors and products:
                entries = self.search_cpe(
                    vendors,
                    products,
                    dependency.vendor_evidence.weighting,
                    dependency.product_evidence.weighting,
                )
                for entry in entries:
                    if verify_entry(entry, dependency):
                        self.determine_identifiers(dependency, entry.vendor, entry.product)

            confidence = confidence.reduce()
            if dependency.vendor_evidence.contains_confidence(confidence):
                vendors = add_evidence_without_duplicate_terms(
                    vendors, dependency.vendor_evidence, confidence
                )
            if dependency.product_evidence.contains_confidence(confidence):
                products = add_evidence_without_duplicate_terms(
                    products, dependency.product_evidence, confidence
                )
            if dependency.version_evidence.contains_confidence(confidence):
                add_evidence_without_duplicate_terms("", dependency.version_evidence, confidence)

        log.debug(
            "cpe.identified",
            file=dependency.file_name,
            identifiers=[i.value for i in dependency.cpe_identifiers()],
        )

    def search_cpe(
        self,
        vendor: str,
        product: str,
        vendor_weighting: set[str] | None = None,
        product_weighting: set[str] | None = None,
    ) -> list[IndexEntry]:
        query = build_search(vendor, product, vendor_weighting, product_weighting)
        if query is None:
            return []
        results: list[IndexEntry] = []
        for entry in self._index.search(query, self._max_results):
            if entry.score >= self._min_score and entry not in results:
                results.append(entry)
        return results

    def determine_identifiers(self, dependency: Dependency, vendor: str, product: str) -> None:
        """Match the database's versions of vendor:product against the version evidence."""
        cpes = self._database.lookup_by_vendor_product(vendor, product)
        best_guess = DependencyVersion("-")
        best_guess_conf: Confidence | None = None
        collected: list[IdentifierMatch] = []

        for conf in Confidence.descending():
            for evidence in dependency.version_evidence.iter_confidence(conf):
                ev_ver = parse_version(evidence.value)
                if ev_ver is None:
                    continue
                for software in sorted(cpes, key=lambda vs: vs.name):
                    db_ver = parse_version(software.version_with_revision)
                    if db_ver is None or ev_ver == db_ver:
                        identifier = Identifier(
                            "cpe",
                            software.name,
                            url=NVD_SEARCH_URL.format(quote_plus(software.name)),
                        )
                        collected.append(
                            IdentifierMatch(identifier, MatchKind.EXACT_MATCH, conf)
                        )
                    elif (
                        len(ev_ver) <= len(db_ver)
                        and ev_ver.matches_at_least_three_levels(db_ver)
                        and (best_guess_conf is None or best_guess_conf < conf)
                        and len(best_guess) < len(db_ver)
                    ):
                        best_guess = db_ver
                        best_guess_conf = conf
                if (best_guess_conf is None or best_guess_conf < conf) and len(best_guess) < len(
                    ev_ver
                ):
                    best_guess = ev_ver
                    best_guess_conf = conf

        guess = Identifier("cpe", f"cpe:/a:{vendor}:{product}:{best_guess}")
        collected.append(
            IdentifierMatch(guess, MatchKind.BEST_GUESS, best_guess_conf or Confidence.LOW)
        )

        collected.sort(key=IdentifierMatch.sort_key)
        best = collected[0]
        for match in collected:
            if match.kind != best.kind or match.evidence_confidence != best.evidence_confidence:
                continue
            identifier = match.identifier
            if best.kind is MatchKind.BEST_GUESS:
                identifier.confidence = Confidence.LOW
            else:
                identifier.confidence = best.evidence_confidence
            dependency.add_identifier(identifier)
