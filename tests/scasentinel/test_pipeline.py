"""Tests for the scan engine: phase ordering, error handling, consolidation barrier."""

from __future__ import annotations

import threading

import pytest

from scasentinel.core.config import Settings
from scasentinel.core.exceptions import AnalysisError, IndexUnavailableError
from scasentinel.data.cpe_index import CpeMemoryIndex
from scasentinel.dependency import Confidence, Dependency, Identifier
from scasentinel.pipeline.engine import ScanContext, ScanEngine, build_default_stages
from scasentinel.pipeline.stages import (
    Phase,
    StageResult,
    SuppressionStage,
    is_per_dependency,
    run_stage,
)


class RecordingFilter:
    """Per-dependency stage that logs (stage, file) and can fail on one file."""

    def __init__(self, name, phase, calls, fail_on=None, exc=None):
        self.name = name
        self.phase = phase
        self.calls = calls
        self.fail_on = fail_on
        self.exc = exc
        self.threads: set[str] = set()

    def filter(self, dependency):
        self.threads.add(threading.current_thread().name)
        self.calls.append((self.name, dependency.file_name))
        if dependency.file_name == self.fail_on:
            raise self.exc


class KeepFirst:
    name = "keep_first"
    phase = Phase.POST_INFORMATION_COLLECTION

    def __init__(self, calls):
        self.calls = calls
        self.thread = None

    def consolidate(self, dependencies):
        self.thread = threading.current_thread()
        self.calls.append((self.name, len(dependencies)))
        return dependencies[:1]


class Exploding:
    name = "exploding"
    phase = Phase.FINAL

    def consolidate(self, dependencies):
        raise RuntimeError("boom")


class DropAll:
    """Suppressor that hides every identifier."""

    def apply(self, dependency):
        for identifier in list(dependency.identifiers):
            dependency.remove_identifier(identifier)
            dependency.suppressed_identifiers.add(identifier)


@pytest.fixture
def context(cve_db):
    return ScanContext(Settings(max_workers=2), cve_db, CpeMemoryIndex(pairs=[]))


def _deps(*names):
    return [Dependency(f"/lib/{name}") for name in names]


# ── stage dispatch ───────────────────────────────────────────────────────


class TestRunStage:
    def test_success(self):
        dep = Dependency("/lib/a.jar")
        result = run_stage(RecordingFilter("f", Phase.FINAL, []), dep)
        assert isinstance(result, StageResult)
        assert result.ok
        assert result.stage == "f"

    def test_analysis_error_recorded(self):
        dep = Dependency("/lib/a.jar")
        stage = RecordingFilter("f", Phase.FINAL, [], "a.jar", AnalysisError("bad manifest"))
        result = run_stage(stage, dep)
        assert not result.ok
        assert dep.analysis_errors == [result.error]
        assert result.error.stage == "f"
        assert result.error.file_path == "/lib/a.jar"

    def test_unexpected_error_wrapped(self):
        dep = Dependency("/lib/a.jar")
        stage = RecordingFilter("f", Phase.FINAL, [], "a.jar", KeyError("x"))
        result = run_stage(stage, dep)
        assert isinstance(result.error, AnalysisError)
        assert isinstance(result.error.__cause__, KeyError)

    def test_service_error_propagates(self):
        stage = RecordingFilter("f", Phase.FINAL, [], "a.jar", IndexUnavailableError("gone"))
        with pytest.raises(IndexUnavailableError):
            run_stage(stage, Dependency("/lib/a.jar"))

    def test_consolidating_stage_rejected(self):
        with pytest.raises(TypeError):
            run_stage(KeepFirst([]), Dependency("/lib/a.jar"))

    def test_is_per_dependency(self):
        assert is_per_dependency(RecordingFilter("f", Phase.FINAL, []))
        assert not is_per_dependency(KeepFirst([]))


class TestPhase:
    def test_ordered(self):
        assert Phase.ordered()[0] is Phase.INFORMATION_COLLECTION
        assert Phase.ordered()[-1] is Phase.FINAL


# ── engine ───────────────────────────────────────────────────────────────


class TestScanEngine:
    def test_phases_run_in_order(self, context):
        calls: list = []
        stages = [
            RecordingFilter("final", Phase.FINAL, calls),
            RecordingFilter("identify", Phase.IDENTIFIER_ANALYSIS, calls),
            RecordingFilter("collect", Phase.INFORMATION_COLLECTION, calls),
        ]
        report = ScanEngine(context, stages).run(_deps("a.jar", "b.jar"))
        assert [name for name, _ in calls] == ["collect"] * 2 + ["identify"] * 2 + ["final"] * 2
        assert len(report.results) == 6
        assert report.failed == []

    def test_stages_in_one_phase_keep_list_order(self, context):
        calls: list = []
        stages = [
            RecordingFilter("second", Phase.FINAL, calls),
            RecordingFilter("first", Phase.IDENTIFIER_ANALYSIS, calls),
            RecordingFilter("third", Phase.FINAL, calls),
        ]
        ScanEngine(context, stages).run(_deps("a.jar"))
        assert [name for name, _ in calls] == ["first", "second", "third"]

    def test_per_dependency_work_uses_pool(self, context):
        stage = RecordingFilter("f", Phase.FINAL, [])
        ScanEngine(context, [stage]).run(_deps("a.jar", "b.jar", "c.jar"))
        assert all(name.startswith("scasentinel") for name in stage.threads)

    def test_consolidation_is_a_barrier(self, context):
        calls: list = []
        keep_first = KeepFirst(calls)
        stages = [
            RecordingFilter("collect", Phase.INFORMATION_COLLECTION, calls),
            keep_first,
            RecordingFilter("identify", Phase.IDENTIFIER_ANALYSIS, calls),
        ]
        report = ScanEngine(context, stages).run(_deps("a.jar", "b.jar", "c.jar"))
        assert calls[3] == ("keep_first", 3)
        assert calls[4:] == [("identify", "a.jar")]
        assert keep_first.thread is threading.current_thread()
        assert [d.file_name for d in report.dependencies] == ["a.jar"]

    def test_dependency_error_does_not_stop_scan(self, context):
        calls: list = []
        stages = [
            RecordingFilter(
                "collect", Phase.INFORMATION_COLLECTION, calls, "b.jar", AnalysisError("corrupt")
            ),
            RecordingFilter("final", Phase.FINAL, calls),
        ]
        deps = _deps("a.jar", "b.jar")
        report = ScanEngine(context, stages).run(deps)
        assert len(report.failed) == 1
        assert [str(e) for e in report.all_errors()] == ["corrupt"]
        assert str(deps[1].analysis_errors[0]) == "corrupt"
        assert sorted(f for name, f in calls if name == "final") == ["a.jar", "b.jar"]

    def test_service_error_aborts(self, context, cve_db):
        calls: list = []
        stages = [
            RecordingFilter(
                "identify", Phase.IDENTIFIER_ANALYSIS, calls, "a.jar", IndexUnavailableError("gone")
            ),
            RecordingFilter("final", Phase.FINAL, calls),
        ]
        with pytest.raises(IndexUnavailableError):
            ScanEngine(context, stages).run(_deps("a.jar"))
        assert ("final", "a.jar") not in calls
        assert not cve_db.is_open
        assert not context.index.is_open

    def test_consolidation_crash_recorded(self, context):
        deps = _deps("a.jar", "b.jar")
        report = ScanEngine(context, [Exploding()]).run(deps)
        assert report.dependencies == deps
        (error,) = report.errors
        assert error.stage == "exploding"
        assert isinstance(error.__cause__, RuntimeError)

    def test_suppression_stage(self, context):
        dep = Dependency("/lib/a.jar")
        identifier = Identifier("cpe", "cpe:/a:acme:widget:1.0")
        dep.add_identifier(identifier)
        ScanEngine(context, [SuppressionStage(DropAll())]).run([dep])
        assert dep.identifiers == set()
        assert dep.suppressed_identifiers == {identifier}


class TestDefaultStages:
    def test_all_enabled(self, context):
        names = [s.name for s in build_default_stages(context)]
        assert names == [
            "version_filter",
            "dependency_merging",
            "cpe_identifier",
            "false_positive",
            "vulnerability_lookup",
            "dependency_bundling",
        ]

    def test_flags_and_suppressor(self, cve_db):
        settings = Settings(
            merging_enabled=False,
            bundling_enabled=False,
            version_filter_enabled=False,
            false_positive_enabled=False,
        )
        context = ScanContext(settings, cve_db, CpeMemoryIndex(pairs=[]), suppressor=DropAll())
        names = [s.name for s in build_default_stages(context)]
        assert names == ["cpe_identifier", "suppression", "vulnerability_lookup"]

    def test_full_scan(self, openssl_db, make_dependency):
        context = ScanContext(Settings(max_workers=2), openssl_db, CpeMemoryIndex(database=openssl_db))
        dep = make_dependency(
            "/usr/lib/libssl.so.1.0.1c",
            vendor=[("openssl", Confidence.HIGHEST)],
            product=[("openssl", Confidence.HIGHEST)],
            version=[("1.0.1c", Confidence.HIGHEST)],
        )
        report = ScanEngine(context).run([dep])
        (result,) = report.dependencies
        assert [i.value for i in result.cpe_identifiers()] == ["cpe:/a:openssl:openssl:1.0.1c"]
        assert [v.cve for v in result.vulnerabilities] == ["CVE-2014-0160", "CVE-2016-2107"]
        assert report.all_errors() == []


# ── scan context ─────────────────────────────────────────────────────────


class TestScanContext:
    def test_scan_ids_are_distinct(self, context):
        other = ScanContext(context.settings, context.database, context.index)
        assert other.scan_id != context.scan_id

    def test_from_settings(self, tmp_path):
        context = ScanContext.from_settings(Settings(database_url=f"sqlite:///{tmp_path}/v.db"))
        assert isinstance(context.index, CpeMemoryIndex)
        assert len(context.scan_id) == 12
