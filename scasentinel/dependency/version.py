"""Structured versions — tolerant parsing and comparison of version strings."""

from __future__ import annotations

import re

_RX_PART = re.compile(r"(\d+|[a-z]+\d+|(release|beta|alpha)$)")

RX_VERSION = re.compile(
    r"\d+(\.\d+){1,6}([._-]?(snapshot|release|final|alpha|beta|rc$|[a-zA-Z]{1,3}[_-]?\d{1,8}"
    r"|[a-z]\b|\d{1,8}\b))?",
    re.IGNORECASE,
)
RX_SINGLE_VERSION = re.compile(
    r"\d+(\.\d+){0,6}([._-]?(snapshot|release|final|alpha|beta|rc$|[a-zA-Z]{1,3}[_-]?\d{1,8}))?"
)


class DependencyVersion:
    """A version split into comparable parts.

    ``"1.2.3-beta"`` becomes ``["1", "2", "3", "beta"]``; text without any
    recognisable part is kept whole as a single part.  Two versions are equal
    when their common prefix is equal and the longer one only adds ``"0"``
    parts (``1.0 == 1``).
    """

    def __init__(self, text: str | None = None):
        self.parts: list[str] = []
        if text is not None:
            self.parse(text)

    def parse(self, text: str) -> None:
        self.parts = [m.group(0) for m in _RX_PART.finditer(text.lower())]
        if not self.parts:
            self.parts = [text]

    @classmethod
    def from_parts(cls, parts: list[str]) -> DependencyVersion:
        version = cls()
        version.parts = list(parts)
        return version

    def matches_at_least_three_levels(self, other: DependencyVersion | None) -> bool:
        """True if the first ``min(len, 3)`` parts agree."""
        if other is None:
            return False
        depth = min(len(self.parts), len(other.parts), 3)
        return self.parts[:depth] == other.parts[:depth]

    def compare(self, other: DependencyVersion | None) -> int:
        """-1, 0 or 1.  Numeric parts compare as integers, others lexically."""
        if other is None:
            return 1
        for left, right in zip(self.parts, other.parts):
            if left == right:
                continue
            if left.isdigit() and right.isdigit():
                lnum, rnum = int(left), int(right)
                if lnum != rnum:
                    return -1 if lnum < rnum else 1
            else:
                return -1 if left < right else 1
        if len(self.parts) != len(other.parts):
            return -1 if len(self.parts) < len(other.parts) else 1
        return 0

    def __lt__(self, other: DependencyVersion) -> bool:
        return self.compare(other) < 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencyVersion):
            return NotImplemented
        common = min(len(self.parts), len(other.parts))
        if self.parts[:common] != other.parts[:common]:
            return False
        tail = self.parts[common:] + other.parts[common:]
        return all(part == "0" for part in tail)

    def __hash__(self) -> int:
        parts = list(self.parts)
        while parts and parts[-1] == "0":
            parts.pop()
        return hash(tuple(parts))

    def __len__(self) -> int:
        return len(self.parts)

    def __str__(self) -> str:
        return ".".join(self.parts)

    def __repr__(self) -> str:
        return f"DependencyVersion({str(self)!r})"


def parse_version(text: str | None, first_match_only: bool = False) -> DependencyVersion | None:
    """Find the version inside *text*.

    Returns ``None`` when nothing version-like is present or when two
    version-looking substrings appear (ambiguous), unless *first_match_only*.
    ``"-"`` is the wildcard version used by CPE entries and is kept as-is.
    """
    if text is None:
        return None
    if text == "-":
        return DependencyVersion.from_parts(["-"])

    matches = RX_VERSION.finditer(text)
    first = next(matches, None)
    version: str | None = None
    if first is not None:
        version = first.group(0)
        if not first_match_only and next(matches, None) is not None:
            return None
    else:
        singles = RX_SINGLE_VERSION.finditer(text)
        single = next(singles, None)
        if single is None:
            return None
        version = single.group(0)
        if next(singles, None) is not None:
            return None

    if version.endswith("-py2") and len(version) > 4:
        version = version[:-4]
    return DependencyVersion(version)
