"""Stage contracts — phases, capability protocols and per-dependency results."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable

import structlog

from scasentinel.core.exceptions import AnalysisError, ServiceError
from scasentinel.dependency.dependency import Dependency

log = structlog.get_logger("scasentinel.pipeline")


class Phase(enum.Enum):
    """Pipeline phases in execution order."""

    INFORMATION_COLLECTION = 1
    POST_INFORMATION_COLLECTION = 2
    IDENTIFIER_ANALYSIS = 3
    POST_IDENTIFIER_ANALYSIS = 4
    FINDING_ANALYSIS = 5
    FINAL = 6

    @classmethod
    def ordered(cls) -> list[Phase]:
        return sorted(cls, key=lambda p: p.value)


@runtime_checkable
class Identifies(Protocol):
    """Assigns identifiers to one dependency."""

    name: str
    phase: Phase

    def identify(self, dependency: Dependency) -> None: ...


@runtime_checkable
class Filters(Protocol):
    """Edits the evidence or identifiers of one dependency."""

    name: str
    phase: Phase

    def filter(self, dependency: Dependency) -> None: ...


@runtime_checkable
class Finds(Protocol):
    """Attaches findings (vulnerabilities) to one dependency."""

    name: str
    phase: Phase

    def find(self, dependency: Dependency) -> None: ...


@runtime_checkable
class Consolidates(Protocol):
    """Works on the whole dependency list; returns the list to continue with."""

    name: str
    phase: Phase

    def consolidate(self, dependencies: list[Dependency]) -> list[Dependency]: ...


@runtime_checkable
class Suppressor(Protocol):
    """Moves user-suppressed identifiers into ``suppressed_identifiers``."""

    def apply(self, dependency: Dependency) -> None: ...


Stage = Union[Identifies, Filters, Finds, Consolidates]


@dataclass
class StageResult:
    """Outcome of one stage on one dependency."""

    stage: str
    dependency: Dependency
    error: AnalysisError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SuppressionStage:
    """Adapts a :class:`Suppressor` to the filtering phase."""

    name = "suppression"
    phase = Phase.POST_IDENTIFIER_ANALYSIS

    def __init__(self, suppressor: Suppressor) -> None:
        self._suppressor = suppressor

    def filter(self, dependency: Dependency) -> None:
        self._suppressor.apply(dependency)


def is_per_dependency(stage: object) -> bool:
    return isinstance(stage, (Identifies, Filters, Finds))


def run_stage(stage: Stage, dependency: Dependency) -> StageResult:
    """Run a per-dependency stage, turning failures into a recorded error.

    ``ServiceError`` is re-raised: a broken index or database ends the scan.
    """
    if not is_per_dependency(stage):
        raise TypeError(f"{type(stage).__name__} is not a per-dependency stage")
    try:
        if isinstance(stage, Identifies):
            stage.identify(dependency)
        elif isinstance(stage, Filters):
            stage.filter(dependency)
        else:
            stage.find(dependency)
    except ServiceError:
        raise
    except AnalysisError as exc:
        exc.stage = exc.stage or stage.name
        exc.file_path = exc.file_path or dependency.file_path
        dependency.add_analysis_error(exc)
        log.warning(
            "stage.failed", stage=stage.name, file=dependency.file_path, error=str(exc)
        )
        return StageResult(stage.name, dependency, exc)
    except Exception as exc:
        error = AnalysisError(str(exc), stage=stage.name, file_path=dependency.file_path)
        error.__cause__ = exc
        dependency.add_analysis_error(error)
        log.exception("stage.crashed", stage=stage.name, file=dependency.file_path)
        return StageResult(stage.name, dependency, error)
    return StageResult(stage.name, dependency)
