"""Scan engine — run the stages phase by phase over a list of dependencies.

Per-dependency stages (identify / filter / find) fan out over a thread pool,
one dependency per task.  A consolidating stage only starts once every task
of the stages before it has finished, and runs on the calling thread.
"""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial

import structlog

from scasentinel.core.config import Settings
from scasentinel.core.exceptions import AnalysisError, ServiceError
from scasentinel.data.cpe_index import CpeMemoryIndex, CpeSearchIndex
from scasentinel.data.cve_db import CveDB, VulnerabilityDatabase
from scasentinel.dependency.dependency import Dependency
from scasentinel.engines.consolidation import DependencyBundler, DependencyMerger
from scasentinel.engines.filters import FalsePositiveFilter, VersionFilter
from scasentinel.engines.identification import CpeIdentifier
from scasentinel.engines.vulnerability import VulnerabilityLookup
from scasentinel.pipeline.stages import (
    Consolidates,
    Phase,
    Stage,
    StageResult,
    SuppressionStage,
    Suppressor,
    is_per_dependency,
    run_stage,
)

log = structlog.get_logger("scasentinel.pipeline")


class ScanContext:
    """Everything one scan shares: settings, service handles and the scan id."""

    def __init__(
        self,
        settings: Settings,
        database: VulnerabilityDatabase,
        index: CpeSearchIndex,
        suppressor: Suppressor | None = None,
    ) -> None:
        self.settings = settings
        self.database = database
        self.index = index
        self.suppressor = suppressor
        self.scan_id = uuid.uuid4().hex[:12]

    @classmethod
    def from_settings(cls, settings: Settings, suppressor: Suppressor | None = None) -> ScanContext:
        database = CveDB(settings.database_url)
        return cls(settings, database, CpeMemoryIndex(database=database), suppressor)

    def open(self) -> None:
        self.database.open()
        self.index.open()

    def close(self) -> None:
        self.index.close()
        self.database.close()

    def __enter__(self) -> ScanContext:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass
class ScanReport:
    scan_id: str
    dependencies: list[Dependency] = field(default_factory=list)
    results: list[StageResult] = field(default_factory=list)
    errors: list[AnalysisError] = field(default_factory=list)

    @property
    def failed(self) -> list[StageResult]:
        return [r for r in self.results if not r.ok]

    def all_errors(self) -> list[AnalysisError]:
        return self.errors + [r.error for r in self.failed]


def build_default_stages(context: ScanContext) -> list[Stage]:
    settings = context.settings
    stages: list[Stage] = []
    if settings.version_filter_enabled:
        stages.append(VersionFilter())
    if settings.merging_enabled:
        stages.append(DependencyMerger())
    stages.append(
        CpeIdentifier(
            context.index,
            context.database,
            max_results=settings.max_query_results,
            min_score=settings.min_score,
        )
    )
    if settings.false_positive_enabled:
        stages.append(FalsePositiveFilter())
    if context.suppressor is not None:
        stages.append(SuppressionStage(context.suppressor))
    stages.append(VulnerabilityLookup(context.database))
    if settings.bundling_enabled:
        stages.append(DependencyBundler())
    return stages


class ScanEngine:
    def __init__(self, context: ScanContext, stages: list[Stage] | None = None) -> None:
        self.context = context
        self.stages = stages if stages is not None else build_default_stages(context)

    def run(self, dependencies: list[Dependency]) -> ScanReport:
        """Open the services, run every phase in order, close the services.

        A ``ServiceError`` aborts the scan and propagates; per-dependency
        failures are recorded in the report and on the dependency.
        """
        report = ScanReport(scan_id=self.context.scan_id)
        structlog.contextvars.bind_contextvars(scan_id=self.context.scan_id)
        log.info("pipeline.start", dependencies=len(dependencies), stages=len(self.stages))
        pool = ThreadPoolExecutor(
            max_workers=self.context.settings.max_workers,
            thread_name_prefix="scasentinel",
        )
        try:
            with self.context:
                for phase in Phase.ordered():
                    for stage in (s for s in self.stages if s.phase is phase):
                        dependencies = self._run_stage(pool, stage, dependencies, report)
                    log.info("pipeline.phase_done", phase=phase.name, dependencies=len(dependencies))
        except ServiceError:
            log.error("pipeline.aborted", exc_info=True)
            raise
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
            structlog.contextvars.unbind_contextvars("scan_id")

        report.dependencies = dependencies
        log.info(
            "pipeline.done",
            dependencies=len(dependencies),
            errors=len(report.all_errors()),
        )
        return report

    def _run_stage(
        self,
        pool: ThreadPoolExecutor,
        stage: Stage,
        dependencies: list[Dependency],
        report: ScanReport,
    ) -> list[Dependency]:
        if isinstance(stage, Consolidates):
            try:
                return stage.consolidate(dependencies)
            except ServiceError:
                raise
            except Exception as exc:
                error = AnalysisError(str(exc), stage=stage.name)
                error.__cause__ = exc
                report.errors.append(error)
                log.exception("stage.crashed", stage=stage.name)
                return dependencies
        if not is_per_dependency(stage):
            raise TypeError(f"{type(stage).__name__} implements no stage protocol")
        report.results.extend(pool.map(partial(run_stage, stage), dependencies))
        return dependencies
