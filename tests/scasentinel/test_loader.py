"""Tests for the evidence loader."""

from __future__ import annotations

import json

import pytest

from scasentinel.core.exceptions import EvidenceFormatError
from scasentinel.dependency import Confidence
from scasentinel.engines.evidence import load_evidence, parse_evidence

STRUTS = {
    "file_path": "lib/struts2-core-2.1.2.jar",
    "sha1": "a" * 40,
    "ecosystem": "java",
    "project_references": ["app"],
    "evidence": [
        {"type": "vendor", "source": "manifest", "name": "vendor", "value": "apache", "confidence": "HIGHEST"},
        {"type": "product", "source": "file", "name": "name", "value": "struts2-core", "confidence": "high"},
        {"type": "VERSION", "source": "file", "name": "version", "value": "2.1.2", "confidence": "MEDIUM"},
    ],
    "weighting": [{"type": "product", "value": "struts2"}],
}


class TestParseEvidence:
    def test_full_record(self):
        (dep,), errors = parse_evidence({"dependencies": [STRUTS]})
        assert errors == []
        assert dep.file_name == "struts2-core-2.1.2.jar"
        assert dep.sha1 == "a" * 40
        assert dep.ecosystem == "java"
        assert dep.project_references == {"app"}
        (vendor,) = dep.vendor_evidence
        assert (vendor.source, vendor.value, vendor.confidence) == (
            "manifest",
            "apache",
            Confidence.HIGHEST,
        )
        assert [e.confidence for e in dep.product_evidence] == [Confidence.HIGH]
        assert [e.value for e in dep.version_evidence] == ["2.1.2"]
        assert dep.product_evidence.weighting == {"struts2"}

    def test_optional_fields(self):
        (dep,), _ = parse_evidence(
            {
                "dependencies": [
                    {
                        "file_path": "packages.config",
                        "file_name": "Newtonsoft.Json",
                        "name": "Newtonsoft.Json",
                        "version": "9.0.1",
                        "virtual": True,
                    }
                ]
            }
        )
        assert dep.is_virtual
        assert dep.file_name == "Newtonsoft.Json"
        assert dep.actual_file_path == "packages.config"
        assert len(dep.vendor_evidence) == 0

    @pytest.mark.parametrize(
        "record",
        [
            {},
            {"file_path": ""},
            "not-an-object",
            {"file_path": "a.jar", "evidence": [{"type": "license", "source": "s", "name": "n", "value": "v", "confidence": "LOW"}]},
            {"file_path": "a.jar", "evidence": [{"type": "vendor", "source": "s", "name": "n", "value": "v", "confidence": "SURE"}]},
            {"file_path": "a.jar", "evidence": [{"type": "vendor", "value": "v"}]},
            {"file_path": "a.jar", "weighting": [{"value": "v"}]},
        ],
    )
    def test_bad_record_skipped(self, record):
        deps, (error,) = parse_evidence({"dependencies": [record, STRUTS]})
        assert [d.file_name for d in deps] == ["struts2-core-2.1.2.jar"]
        assert isinstance(error, EvidenceFormatError)
        assert error.stage == "evidence_loader"
        assert error.file_path in ("dependencies[0]", "a.jar")

    @pytest.mark.parametrize("document", [[], {}, {"dependencies": "x"}])
    def test_bad_document(self, document):
        with pytest.raises(EvidenceFormatError):
            parse_evidence(document)


class TestLoadEvidence:
    def test_reads_file(self, tmp_path):
        path = tmp_path / "evidence.json"
        path.write_text(json.dumps({"dependencies": [STRUTS]}), encoding="utf-8")
        deps, errors = load_evidence(path)
        assert len(deps) == 1
        assert errors == []

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "evidence.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(EvidenceFormatError, match="cannot read"):
            load_evidence(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(EvidenceFormatError):
            load_evidence(tmp_path / "nope.json")

    def test_local_file_without_hash_is_hashed(self, tmp_path):
        jar = tmp_path / "lib.jar"
        jar.write_bytes(b"hello")
        (dep,), errors = parse_evidence({"dependencies": [{"file_path": str(jar), "ecosystem": "java"}]})
        assert errors == []
        assert dep.sha1 == "aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d"
        assert dep.md5 == "5d41402abc4b2a76b9719d911017c592"
        assert dep.ecosystem == "java"

    def test_recorded_hash_wins(self, tmp_path):
        jar = tmp_path / "lib.jar"
        jar.write_bytes(b"hello")
        (dep,), _ = parse_evidence({"dependencies": [{"file_path": str(jar), "sha1": "b" * 40}]})
        assert dep.sha1 == "b" * 40
        assert dep.md5 is None
