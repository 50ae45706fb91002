"""Dependency bundling — collapse records that are the same artifact seen more than once.

Runs in the final phase, after identification, so identifier sets can be
compared.  Four pair rules, first match wins:

1. identical SHA-1 (unless one copy sits inside an ``.ear``/``.war``);
2. a shaded ``.jar`` and its embedded ``pom.xml`` — the pom record is dropped;
3. same identifiers, same base path and matching file names;
4. npm records with the same name and compatible versions (a lockfile entry
   and the installed package), the installed record absorbs the virtual one.

The non-core side of a pair is merged into the core side (:func:`is_core`).
"""

from __future__ import annotations

import re

import semantic_version
import structlog

from scasentinel.dependency.dependency import Dependency
from scasentinel.dependency.version import parse_version
from scasentinel.engines.consolidation.comparing import (
    RunOnceLatch,
    compare_pairs,
    merge_dependencies,
)
from scasentinel.pipeline.stages import Phase

log = structlog.get_logger("scasentinel.engine")

RX_ARCHIVE = re.compile(r".*\.(tar|tgz|gz|zip|ear|war|rpm).+")
RX_IN_WAR = re.compile(r".*\.(ear|war)[\\/].*")
RX_REPOSITORY = re.compile(r".*[/\\](?P<repo>repository|local-repo)[/\\].*")
RX_STARTING_TEXT = re.compile(r"^[a-zA-Z]*")
_RX_DIGIT = re.compile(r"\d")

NPM = "npm"
_RX_SEP = re.compile(r"[/\\]")


def _parent(path: str) -> str | None:
    positions = [m.start() for m in _RX_SEP.finditer(path)]
    if not positions:
        return None
    return path[: positions[-1]] or path[0]


def _base_name(path: str) -> str:
    return _RX_SEP.split(path)[-1]


def is_core(left: Dependency | str, right: Dependency | str) -> bool:
    """True if *left* is the core artifact of the pair.

    A virtual record (read from a lockfile or manifest) is core against one
    that is not.  Keyword checks are then evaluated "right wins" first, then
    "left wins", then the shorter name is core.  When each side carries a
    different keyword (``core`` vs ``kernel``) both orders answer False and
    list order decides.
    """
    left_name = (left if isinstance(left, str) else left.file_name).lower()
    right_name = (right if isinstance(right, str) else right.file_name).lower()
    left_archive = bool(RX_ARCHIVE.match(left_name))
    right_archive = bool(RX_ARCHIVE.match(right_name))
    left_virtual = not isinstance(left, str) and left.is_virtual
    right_virtual = not isinstance(right, str) and right.is_virtual

    if left_virtual != right_virtual:
        result = left_virtual
    elif (
        (right_archive and not left_archive)
        or ("core" in right_name and "core" not in left_name)
        or ("kernel" in right_name and "kernel" not in left_name)
    ):
        result = False
    elif (
        (left_archive and not right_archive)
        or ("core" in left_name and "core" not in right_name)
        or ("kernel" in left_name and "kernel" not in right_name)
    ):
        result = True
    else:
        result = len(left_name) <= len(right_name)
    log.debug("bundling.is_core", left=left_name, right=right_name, result=result)
    return result


def hashes_match(left: Dependency, right: Dependency) -> bool:
    return left.sha1 is not None and left.sha1 == right.sha1


def contained_in_war(path: str) -> bool:
    return bool(RX_IN_WAR.match(path))


def is_shaded_jar(left: Dependency, right: Dependency) -> bool:
    """A ``.jar`` and a ``pom.xml`` whose identifiers are all found in the jar."""
    if not left.identifiers or not right.identifiers:
        return False
    left_name, right_name = left.file_name.lower(), right.file_name.lower()
    if left_name.endswith(".jar") and right_name.endswith("pom.xml"):
        return right.identifiers <= left.identifiers
    if right_name.endswith(".jar") and left_name.endswith("pom.xml"):
        return left.identifiers <= right.identifiers
    return False


def identifiers_match(left: Dependency, right: Dependency) -> bool:
    return bool(left.identifiers) and left.identifiers == right.identifiers


def get_base_repo_path(path: str, repo: str) -> str:
    """Cut a repository path down to ``.../<repo>/<group>/<artifact>/``."""
    marker = re.search(rf"{re.escape(repo)}[/\\]", path)
    if marker is None:
        return path
    pos = marker.end()
    sep = _RX_SEP.search(path, pos)
    if sep is None or sep.start() == 0:
        return path
    pos = sep.start() + 1
    sep = _RX_SEP.search(path, pos)
    if sep is not None:
        pos = sep.start() + 1
    return path[:pos]


def has_same_base_path(left: Dependency, right: Dependency) -> bool:
    left_dir = _parent(left.file_path)
    right_dir = _parent(right.file_path)
    if left_dir is None:
        return right_dir is None
    if right_dir is None:
        return False
    if left_dir.lower() == right_dir.lower():
        return True

    left_repo = RX_REPOSITORY.match(left_dir)
    right_repo = RX_REPOSITORY.match(right_dir)
    if left_repo and right_repo:
        left_dir = get_base_repo_path(left_dir, left_repo.group("repo"))
        right_dir = get_base_repo_path(right_dir, right_repo.group("repo"))
        if left_dir.lower() == right_dir.lower():
            return True

    return any(has_same_base_path(child, left) for child in right.related_dependencies)


def file_name_match(left: Dependency, right: Dependency) -> bool:
    """Versions in the names agree (when both have one) and the leading words match."""
    left_name = _base_name(left.actual_file_path or left.file_path)
    right_name = _base_name(right.actual_file_path or right.file_path)
    left_version = parse_version(left_name)
    right_version = parse_version(right_name)
    if left_version is not None and right_version is not None and left_version != right_version:
        return False
    return RX_STARTING_TEXT.match(left_name).group(0) == RX_STARTING_TEXT.match(right_name).group(0)


def _strip_leading_non_numeric(text: str) -> str | None:
    match = _RX_DIGIT.search(text)
    return text[match.start():] if match else None


def _satisfies(version: str, requirement: str) -> bool:
    try:
        return semantic_version.Version.coerce(version) in semantic_version.NpmSpec(requirement)
    except ValueError:
        return False


def npm_versions_match(current: str | None, other: str | None) -> bool:
    """True if two npm version strings can describe the same install.

    Either side may be a range from ``package.json`` (``^1.2.0``,
    ``>=1.5.4 <2.0.0``) or a resolved version; two ranges containing spaces
    cannot be compared and never match.
    """
    if current is None or other is None:
        return False
    if current == other or "*" in (current, other):
        return True
    if " " in current:
        if " " in other:
            return False
        resolved = _strip_leading_non_numeric(other)
        return resolved is not None and _satisfies(resolved, current)

    resolved = _strip_leading_non_numeric(current)
    if not resolved:
        return False
    if other and _satisfies(resolved, other):
        return True
    if " " not in other:
        stripped = _strip_leading_non_numeric(other)
        if stripped is not None:
            return _satisfies(stripped, current)
    return False


def is_same_npm_package(left: Dependency, right: Dependency) -> bool:
    return (
        left.ecosystem == NPM
        and right.ecosystem == NPM
        and left.name is not None
        and left.name == right.name
        and npm_versions_match(left.version, right.version)
    )


class DependencyBundler:
    """Consolidation stage; runs once per scan."""

    name = "dependency_bundling"
    phase = Phase.FINAL

    def __init__(self) -> None:
        self._latch = RunOnceLatch()

    def consolidate(self, dependencies: list[Dependency]) -> list[Dependency]:
        if not self._latch.acquire():
            return list(dependencies)
        survivors = compare_pairs(dependencies, self.evaluate)
        log.info("bundling.done", before=len(dependencies), after=len(survivors))
        return survivors

    def _merge_by_core(
        self, dependency: Dependency, next_dependency: Dependency, to_remove: set[Dependency]
    ) -> bool:
        if is_core(dependency, next_dependency):
            merge_dependencies(dependency, next_dependency, to_remove)
            return False
        merge_dependencies(next_dependency, dependency, to_remove)
        return True

    def evaluate(
        self, dependency: Dependency, next_dependency: Dependency, to_remove: set[Dependency]
    ) -> bool:
        if hashes_match(dependency, next_dependency):
            if contained_in_war(dependency.file_path) or contained_in_war(
                next_dependency.file_path
            ):
                return False
            return self._merge_by_core(dependency, next_dependency, to_remove)

        if is_shaded_jar(dependency, next_dependency):
            if dependency.file_name.lower().endswith("pom.xml"):
                to_remove.add(dependency)
                return True
            to_remove.add(next_dependency)
            return False

        if (
            identifiers_match(dependency, next_dependency)
            and has_same_base_path(dependency, next_dependency)
            and file_name_match(dependency, next_dependency)
        ):
            return self._merge_by_core(dependency, next_dependency, to_remove)

        if is_same_npm_package(dependency, next_dependency):
            if not dependency.is_virtual:
                merge_dependencies(dependency, next_dependency, to_remove)
                return False
            merge_dependencies(next_dependency, dependency, to_remove)
            return True
        return False
