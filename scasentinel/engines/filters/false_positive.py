"""False-positive filter — drop CPE identifiers known to be wrong or redundant."""

from __future__ import annotations

import re
from urllib.parse import quote_plus

import structlog

from scasentinel.dependency.dependency import Dependency
from scasentinel.dependency.identifier import Identifier, VulnerableSoftware
from scasentinel.engines.identification.cpe import NVD_SEARCH_URL
from scasentinel.pipeline.stages import Phase

log = structlog.get_logger("scasentinel.engine")

CORE_JAVA = re.compile(
    r"^cpe:/a:(sun|oracle|ibm):(j2[ems]e|"
    r"java(_platfrom_micro_edition|_runtime_environment|_se|virtual_machine|se_development_kit|fx)?|"
    r"jdk|jre|jsf|jsse)($|:.*)"
)
CORE_FILES = re.compile(r"^((alt[-])?rt|jsf[-].*|jsse|jfxrt|jfr|jce|javaws|deploy|charsets)\.jar$")
_RX_MAVEN_CORE = re.compile(r"maven-core-[\d.]+\.jar")

# CPE prefixes that match far too many unrelated Java archives.
BAD_MATCH_PREFIXES = (
    "cpe:/a:jquery:jquery",
    "cpe:/a:prototypejs:prototype",
    "cpe:/a:yahoo:yui",
    "cpe:/a:file:file",
    "cpe:/a:mozilla:mozilla",
    "cpe:/a:cvs:cvs",
    "cpe:/a:ftp:ftp",
    "cpe:/a:ssh:ssh",
)

OPENSSO_NAMES = (
    ("sun", "opensso_enterprise"),
    ("oracle", "opensso_enterprise"),
    ("sun", "opensso"),
    ("oracle", "opensso"),
)


def _parse_cpe(identifier: Identifier) -> VulnerableSoftware | None:
    if identifier.type != "cpe" or not identifier.value.startswith("cpe:/"):
        return None
    return VulnerableSoftware.parse(identifier.value)


class FalsePositiveFilter:
    """Post-identification filter, applied in a fixed order per dependency."""

    name = "false_positive"
    phase = Phase.POST_IDENTIFIER_ANALYSIS

    def filter(self, dependency: Dependency) -> None:
        before = len(dependency.identifiers)
        self.remove_jre_entries(dependency)
        self.remove_bad_matches(dependency)
        self.remove_wrong_version_matches(dependency)
        self.remove_spurious_cpe(dependency)
        self.add_false_negative_cpes(dependency)
        if len(dependency.identifiers) != before:
            log.debug(
                "false_positive.filtered",
                file=dependency.file_name,
                before=before,
                after=len(dependency.identifiers),
            )

    @staticmethod
    def _drop(dependency: Dependency, doomed: list[Identifier]) -> None:
        for identifier in doomed:
            dependency.remove_identifier(identifier)

    def remove_jre_entries(self, dependency: Dependency) -> None:
        """Core Java runtime CPEs only belong to the runtime's own archives."""
        if CORE_FILES.match(dependency.file_name):
            return
        self._drop(
            dependency,
            [i for i in dependency.identifiers if CORE_JAVA.match(i.value)],
        )

    def remove_bad_matches(self, dependency: Dependency) -> None:
        file_name = dependency.file_name.lower()
        doomed: list[Identifier] = []
        for identifier in dependency.identifiers:
            if identifier.type != "cpe":
                continue
            value = identifier.value
            if ("c++" in value or value.startswith(BAD_MATCH_PREFIXES)) and file_name.endswith(
                ".jar"
            ):
                doomed.append(identifier)
            elif value.startswith("cpe:/a:apache:maven") and not _RX_MAVEN_CORE.fullmatch(
                file_name
            ):
                doomed.append(identifier)
        self._drop(dependency, doomed)

    def remove_wrong_version_matches(self, dependency: Dependency) -> None:
        """axis and axis2 are different products; keep the one the file name says."""
        file_name = dependency.file_name
        if "axis2" in file_name:
            wrong = "cpe:/a:apache:axis"
        elif "axis" in file_name:
            wrong = "cpe:/a:apache:axis2"
        else:
            return
        self._drop(
            dependency,
            [
                i
                for i in dependency.identifiers
                if i.type == "cpe" and (i.value == wrong or i.value.startswith(wrong + ":"))
            ],
        )

    def remove_spurious_cpe(self, dependency: Dependency) -> None:
        """Among CPEs for the same vendor:product keep only the most specific version.

        ``cpe:/a:x:y:1.0`` is dropped in favour of ``cpe:/a:x:y:1.0.2``; a
        missing version or the ``-`` placeholder loses to any real version.
        """
        ids = sorted(dependency.identifiers)
        doomed: list[Identifier] = []
        for pos, current_id in enumerate(ids):
            current = _parse_cpe(current_id)
            if current is None:
                continue
            for next_id in ids[pos + 1:]:
                other = _parse_cpe(next_id)
                if other is None:
                    continue
                if current.vendor != other.vendor or current.product != other.product:
                    continue
                cur_ver, next_ver = current.version, other.version
                if cur_ver is None and next_ver is None:
                    continue
                if cur_ver is None:
                    doomed.append(current_id)
                elif next_ver is None:
                    doomed.append(next_id)
                elif len(cur_ver) < len(next_ver):
                    if next_ver.startswith(cur_ver) or cur_ver == "-":
                        doomed.append(current_id)
                elif cur_ver.startswith(next_ver) or next_ver == "-":
                    doomed.append(next_id)
        self._drop(dependency, doomed)

    def add_false_negative_cpes(self, dependency: Dependency) -> None:
        """OpenSSO is listed under both Sun and Oracle; add every spelling."""
        added: list[Identifier] = []
        for identifier in dependency.identifiers:
            software = _parse_cpe(identifier)
            if software is None or (software.vendor, software.product) not in OPENSSO_NAMES:
                continue
            prefix = f"cpe:/a:{software.vendor}:{software.product}:"
            if not identifier.value.startswith(prefix):
                continue
            rest = identifier.value[len(prefix):]
            for vendor, product in OPENSSO_NAMES:
                value = f"cpe:/a:{vendor}:{product}:{rest}"
                added.append(
                    Identifier(
                        "cpe",
                        value,
                        url=NVD_SEARCH_URL.format(quote_plus(value)),
                        confidence=identifier.confidence,
                    )
                )
        for identifier in added:
            dependency.add_identifier(identifier)
