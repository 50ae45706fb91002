"""Evidence loader — read evidence-producer output (JSON) into dependency records.

Expected document::

    {
      "dependencies": [
        {
          "file_path": "lib/struts2-core-2.1.2.jar",
          "sha1": "…", "md5": "…",
          "package_path": null, "ecosystem": "java",
          "name": null, "version": null, "virtual": false,
          "project_references": ["app"],
          "evidence": [
            {"type": "vendor", "source": "manifest", "name": "vendor",
             "value": "apache", "confidence": "HIGHEST"}
          ],
          "weighting": [{"type": "product", "value": "struts2"}]
        }
      ]
    }

A record without a ``sha1`` whose ``file_path`` names a readable file is
hashed from disk.  A broken document raises :class:`EvidenceFormatError`; a
broken record is reported and skipped so the rest of the scan can proceed.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from scasentinel.core.exceptions import EvidenceFormatError
from scasentinel.dependency.confidence import Confidence
from scasentinel.dependency.dependency import Dependency
from scasentinel.dependency.evidence import EvidenceType

logger = logging.getLogger(__name__)


def _evidence_type(raw: Any) -> EvidenceType:
    try:
        return EvidenceType(str(raw).lower())
    except ValueError:
        raise EvidenceFormatError(f"unknown evidence type: {raw!r}") from None


def _build_dependency(record: dict[str, Any]) -> Dependency:
    if not isinstance(record, dict):
        raise EvidenceFormatError("dependency record is not an object")
    file_path = record.get("file_path")
    if not file_path or not isinstance(file_path, str):
        raise EvidenceFormatError("dependency record has no file_path")

    fields = dict(
        file_name=record.get("file_name") or "",
        actual_file_path=record.get("actual_file_path"),
        package_path=record.get("package_path"),
        ecosystem=record.get("ecosystem"),
        name=record.get("name"),
        version=record.get("version"),
        is_virtual=bool(record.get("virtual", False)),
        license=record.get("license"),
        description=record.get("description"),
    )
    sha1 = record.get("sha1")
    if sha1 is None and Path(file_path).is_file():
        try:
            dependency = Dependency.from_file(file_path, **fields)
        except OSError as exc:
            raise EvidenceFormatError(f"cannot hash {file_path}: {exc}", file_path=file_path) from exc
    else:
        dependency = Dependency(file_path=file_path, sha1=sha1, md5=record.get("md5"), **fields)
    dependency.add_project_references(set(record.get("project_references") or ()))

    for item in record.get("evidence") or ():
        try:
            kind = _evidence_type(item["type"])
            confidence = Confidence.parse(item["confidence"])
            dependency.evidence(kind).add(
                str(item["source"]), str(item["name"]), str(item["value"]), confidence
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise EvidenceFormatError(
                f"bad evidence item {item!r}: {exc}", file_path=file_path
            ) from exc

    for item in record.get("weighting") or ():
        try:
            dependency.evidence(_evidence_type(item["type"])).add_weighting(str(item["value"]))
        except (KeyError, TypeError) as exc:
            raise EvidenceFormatError(
                f"bad weighting item {item!r}: {exc}", file_path=file_path
            ) from exc
    return dependency


def parse_evidence(
    document: dict[str, Any],
) -> tuple[list[Dependency], list[EvidenceFormatError]]:
    """Turn a decoded document into dependencies plus per-record errors."""
    if not isinstance(document, dict) or not isinstance(document.get("dependencies"), list):
        raise EvidenceFormatError("evidence document must have a 'dependencies' list")

    dependencies: list[Dependency] = []
    errors: list[EvidenceFormatError] = []
    for pos, record in enumerate(document["dependencies"]):
        try:
            dependencies.append(_build_dependency(record))
        except EvidenceFormatError as exc:
            exc.stage = exc.stage or "evidence_loader"
            if exc.file_path is None:
                exc.file_path = f"dependencies[{pos}]"
            logger.warning("Skipping dependency record %d: %s", pos, exc)
            errors.append(exc)
    return dependencies, errors


def load_evidence(path: str | Path) -> tuple[list[Dependency], list[EvidenceFormatError]]:
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise EvidenceFormatError(f"cannot read evidence file {path}: {exc}") from exc
    return parse_evidence(document)
