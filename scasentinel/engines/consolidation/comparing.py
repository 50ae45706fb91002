"""Pairwise comparison pass shared by the consolidation stages."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from scasentinel.dependency.dependency import Dependency

logger = logging.getLogger(__name__)

# (dependency, later_dependency, to_remove) -> True to stop comparing `dependency`
PairEvaluator = Callable[[Dependency, Dependency, set[Dependency]], bool]


class RunOnceLatch:
    """Lets exactly one caller through, ever."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = False

    def acquire(self) -> bool:
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True

    @property
    def done(self) -> bool:
        return self._done


def compare_pairs(dependencies: list[Dependency], evaluate: PairEvaluator) -> list[Dependency]:
    """Compare every dependency with every later one; return the survivors.

    Removals requested by *evaluate* are collected and applied after the
    pass, so the list is never mutated while it is being walked.
    """
    to_remove: set[Dependency] = set()
    for pos, dependency in enumerate(dependencies):
        if dependency in to_remove:
            continue
        for next_dependency in dependencies[pos + 1:]:
            if next_dependency in to_remove:
                continue
            if evaluate(dependency, next_dependency, to_remove):
                break
    if to_remove:
        logger.debug("Consolidated %d dependencies", len(to_remove))
    return [d for d in dependencies if d not in to_remove]


def merge_dependencies(
    target: Dependency, other: Dependency, to_remove: set[Dependency] | None
) -> None:
    """Fold *other* into *target* and schedule *other* for removal.

    Evidence is a raw union, related dependencies move over (and are cleared
    on *other*), and project references are only carried when both records
    have the same SHA-1.
    """
    logger.debug("Merging %r into %r", other.file_path, target.file_path)
    target.add_related_dependency(other)
    target.vendor_evidence.update(other.vendor_evidence)
    target.product_evidence.update(other.product_evidence)
    target.version_evidence.update(other.version_evidence)
    for related in list(other.related_dependencies):
        if related is not target:
            target.add_related_dependency(related)
    other.related_dependencies.clear()
    if target.sha1 is not None and target.sha1 == other.sha1:
        target.add_project_references(other.project_references)
    if to_remove is not None:
        to_remove.add(other)
