"""Confidence levels attached to evidence and identifiers."""

from __future__ import annotations

from enum import IntEnum


class Confidence(IntEnum):
    """Ordered ``LOW < MEDIUM < HIGH < HIGHEST``."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    HIGHEST = 4

    def reduce(self) -> Confidence:
        """One level down, clamped at LOW."""
        if self is Confidence.LOW:
            return Confidence.LOW
        return Confidence(self.value - 1)

    @classmethod
    def descending(cls) -> list[Confidence]:
        return sorted(cls, reverse=True)

    @classmethod
    def parse(cls, text: str) -> Confidence:
        try:
            return cls[str(text).strip().upper()]
        except KeyError:
            raise ValueError(f"unknown confidence: {text!r}") from None
