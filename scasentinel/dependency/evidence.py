"""Evidence and evidence collections.

An evidence item is an observation about an artifact (``source``, ``name``,
``value``) with a confidence.  Each dependency owns three collections: vendor,
product and version.  The identification engine "uses" evidence as it builds
search terms; later verification only trusts text that came from used
evidence.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlparse

from scasentinel.dependency.confidence import Confidence

_RX_STRIP = re.compile(r"[\s_-]")
_RX_URL = re.compile(r"^https?://\S+$", re.IGNORECASE)

# Host and path words that carry no product/vendor meaning.
_URL_NOISE = frozenset(
    {
        "www", "com", "org", "net", "gov", "edu", "mil", "info", "biz", "name",
        "pro", "io", "co", "uk", "de", "fr", "jp", "cn", "us", "eu", "index",
        "html", "htm", "php", "asp", "aspx", "jsp", "projects", "project",
        "display", "home", "site", "wiki",
    }
)


class EvidenceType(Enum):
    VENDOR = "vendor"
    PRODUCT = "product"
    VERSION = "version"


def is_url(text: str) -> bool:
    return bool(_RX_URL.match(text.strip()))


def extract_important_url_data(url: str) -> list[str]:
    """Reduce a URL to the words that can name a vendor or product.

    >>> extract_important_url_data("http://www.apache.org/struts/index.html")
    ['apache', 'struts']
    """
    parsed = urlparse(url.strip())
    words: list[str] = []
    for part in (parsed.hostname or "").split("."):
        if part and part.lower() not in _URL_NOISE:
            words.append(part)
    for segment in parsed.path.split("/"):
        if not segment:
            continue
        stem = segment.rsplit(".", 1)[0] if "." in segment else segment
        if stem and stem.lower() not in _URL_NOISE:
            words.append(stem)
    return words


def url_correction(value: str) -> str:
    """Replace every URL token in *value* by its important words."""
    tokens = []
    for token in value.split():
        if is_url(token):
            tokens.append(" ".join(extract_important_url_data(token)))
        else:
            tokens.append(token)
    return " ".join(tokens)


@dataclass(frozen=True)
class Evidence:
    """One observation.  Identity is (source, name, value); confidence is not."""

    source: str
    name: str
    value: str
    confidence: Confidence = field(default=Confidence.LOW, compare=False)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source, self.name, self.value)


class EvidenceCollection:
    """A set of evidence with a used-marker and weighting hints.

    Re-adding an item with the same identity keeps the most recently supplied
    confidence.  All access goes through an internal lock.
    """

    def __init__(self, evidence: Iterable[Evidence] = ()):
        self._items: dict[tuple[str, str, str], Evidence] = {}
        self._used: set[tuple[str, str, str]] = set()
        self._weighting: set[str] = set()
        self._lock = threading.RLock()
        for item in evidence:
            self.add_evidence(item)

    # ── mutation ──

    def add(self, source: str, name: str, value: str, confidence: Confidence) -> Evidence:
        evidence = Evidence(source, name, value, confidence)
        self.add_evidence(evidence)
        return evidence

    def add_evidence(self, evidence: Evidence) -> None:
        with self._lock:
            self._items[evidence.key] = evidence

    def add_weighting(self, text: str) -> None:
        with self._lock:
            self._weighting.add(text)

    def remove(self, evidence: Evidence) -> None:
        with self._lock:
            self._items.pop(evidence.key, None)
            self._used.discard(evidence.key)

    def retain(self, predicate: Callable[[Evidence], bool]) -> None:
        """Keep only evidence matching *predicate*."""
        with self._lock:
            kept = {key: ev for key, ev in self._items.items() if predicate(ev)}
            self._items = kept
            self._used &= set(kept)

    def mark_used(self, evidence: Evidence) -> None:
        with self._lock:
            if evidence.key in self._items:
                self._used.add(evidence.key)

    # ── queries ──

    @property
    def weighting(self) -> set[str]:
        with self._lock:
            return set(self._weighting)

    def iter_confidence(self, confidence: Confidence) -> Iterator[Evidence]:
        """Yield evidence at exactly *confidence*, marking each as used."""
        with self._lock:
            matching = [ev for ev in self._items.values() if ev.confidence == confidence]
        for evidence in matching:
            self.mark_used(evidence)
            yield evidence

    def contains_confidence(self, confidence: Confidence) -> bool:
        with self._lock:
            return any(ev.confidence == confidence for ev in self._items.values())

    def get(self, source: str | None = None, name: str | None = None) -> list[Evidence]:
        with self._lock:
            return [
                ev
                for ev in self._items.values()
                if (source is None or ev.source.lower() == source.lower())
                and (name is None or ev.name.lower() == name.lower())
            ]

    def is_used(self, evidence: Evidence) -> bool:
        with self._lock:
            return evidence.key in self._used

    def used(self) -> list[Evidence]:
        with self._lock:
            return [ev for key, ev in self._items.items() if key in self._used]

    def contains_used_string(self, text: str | None) -> bool:
        """True if *text* occurs inside any used evidence value.

        Comparison is case-insensitive; URLs in evidence are reduced to their
        important words; whitespace, ``_`` and ``-`` are ignored on the
        evidence side.
        """
        if text is None:
            return False
        needle = text.lower()
        for evidence in self.used():
            value = evidence.value.lower()
            value = _RX_STRIP.sub("", url_correction(value))
            if needle in value:
                return True
        return False

    def update(self, other: EvidenceCollection) -> None:
        """Add every item and weighting of *other* to this collection."""
        for evidence in other:
            self.add_evidence(evidence)
        for weight in other.weighting:
            self.add_weighting(weight)

    def __iter__(self) -> Iterator[Evidence]:
        with self._lock:
            items = list(self._items.values())
        return iter(items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, evidence: object) -> bool:
        if not isinstance(evidence, Evidence):
            return False
        with self._lock:
            return evidence.key in self._items

    def __repr__(self) -> str:
        return f"EvidenceCollection({len(self)} items)"
