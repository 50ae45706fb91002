"""Dependency merging — fold records that describe the same package from two producers."""

from __future__ import annotations

from pathlib import PurePath

import structlog

from scasentinel.dependency.dependency import Dependency
from scasentinel.engines.consolidation.comparing import (
    RunOnceLatch,
    compare_pairs,
    merge_dependencies,
)
from scasentinel.pipeline.stages import Phase

log = structlog.get_logger("scasentinel.engine")

RUBY = "ruby"
SWIFT = "swift"
JAVA = "java"
DOTNET = "dotnet"


def _ecosystem_is(ecosystem: str, *dependencies: Dependency) -> bool:
    """Unset ecosystems are accepted; producers do not always fill it in."""
    return all(d.ecosystem in (None, ecosystem) for d in dependencies)


def _same_package_path(left: Dependency, right: Dependency) -> bool:
    if left.package_path is None or right.package_path is None:
        return False
    return left.package_path.lower() == right.package_path.lower()


def _actual_name(dependency: Dependency) -> str:
    return PurePath((dependency.actual_file_path or dependency.file_path).replace("\\", "/")).name


def main_gemspec_dependency(left: Dependency, right: Dependency) -> Dependency | None:
    """Gemspecs of one installed gem; the ``specifications/`` stub is main."""
    if not (left.file_name.endswith(".gemspec") and right.file_name.endswith(".gemspec")):
        return None
    if not _ecosystem_is(RUBY, left, right) or not _same_package_path(left, right):
        return None
    parent = PurePath((left.actual_file_path or left.file_path).replace("\\", "/")).parent
    if parent.name.lower() == "specifications":
        return left
    return right


def _is_swift_manifest(dependency: Dependency) -> bool:
    return dependency.file_name.endswith(".podspec") or dependency.file_name == "Package.swift"


def main_swift_dependency(left: Dependency, right: Dependency) -> Dependency | None:
    """A CocoaPods spec and a Swift package manifest; the ``.podspec`` is main."""
    if not (_is_swift_manifest(left) and _is_swift_manifest(right)):
        return None
    if not _ecosystem_is(SWIFT, left, right) or not _same_package_path(left, right):
        return None
    if left.file_name.endswith(".podspec"):
        return left
    return right


def main_android_dependency(left: Dependency, right: Dependency) -> Dependency | None:
    """``classes.jar`` extracted from an ``.aar`` belongs to the ``.aar``."""
    if left.is_virtual or right.is_virtual or not _ecosystem_is(JAVA, left, right):
        return None
    left_name, right_name = _actual_name(left), _actual_name(right)
    if right_name == "classes.jar" and left_name.endswith(".aar") and left_name in right.file_name:
        return left
    if left_name == "classes.jar" and right_name.endswith(".aar") and right_name in left.file_name:
        return right
    return None


def main_dotnet_dependency(left: Dependency, right: Dependency) -> Dependency | None:
    """Same .NET package name and version; the record read from disk is main."""
    if None in (left.name, left.version, right.name, right.version):
        return None
    if left.ecosystem != DOTNET or right.ecosystem != DOTNET:
        return None
    if left.name != right.name or left.version != right.version:
        return None
    return right if left.is_virtual else left


MAIN_RULES = (
    main_gemspec_dependency,
    main_swift_dependency,
    main_android_dependency,
    main_dotnet_dependency,
)


class DependencyMerger:
    """Consolidation stage; runs once per scan."""

    name = "dependency_merging"
    phase = Phase.POST_INFORMATION_COLLECTION

    def __init__(self) -> None:
        self._latch = RunOnceLatch()

    def consolidate(self, dependencies: list[Dependency]) -> list[Dependency]:
        if not self._latch.acquire():
            return list(dependencies)
        survivors = compare_pairs(dependencies, self.evaluate)
        log.info("merging.done", before=len(dependencies), after=len(survivors))
        return survivors

    def evaluate(
        self, dependency: Dependency, next_dependency: Dependency, to_remove: set[Dependency]
    ) -> bool:
        for rule in MAIN_RULES:
            main = rule(dependency, next_dependency)
            if main is None:
                continue
            if main is dependency:
                merge_dependencies(dependency, next_dependency, to_remove)
                return False
            merge_dependencies(next_dependency, dependency, to_remove)
            return True
        return False
