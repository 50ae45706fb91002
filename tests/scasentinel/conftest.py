"""Shared fixtures for scasentinel tests.

The vulnerability database runs on in-memory SQLite; no external services.
"""

from __future__ import annotations

import pytest

from scasentinel.core.database import build_engine, build_session_factory, create_schema
from scasentinel.data.cve_db import CveDB
from scasentinel.dependency import Confidence, Dependency


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    create_schema(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def cve_db(session_factory):
    db = CveDB(session_factory=session_factory)
    db.open()
    yield db
    db.close()


@pytest.fixture
def openssl_db(cve_db):
    """A database that knows a few openssl releases and one CVE."""
    cve_db.save_vulnerability(
        "CVE-2014-0160",
        [("cpe:/a:openssl:openssl:1.0.1c", False)],
        description="Heartbleed",
        cvss_score=5.0,
        cwe="CWE-119",
    )
    cve_db.save_vulnerability(
        "CVE-2016-2107",
        [("cpe:/a:openssl:openssl:1.0.2g", True)],
        description="Padding oracle in AES-NI CBC MAC check",
        cvss_score=2.6,
    )
    return cve_db


def _make_dependency(
    file_path: str,
    vendor: list[tuple[str, Confidence]] = (),
    product: list[tuple[str, Confidence]] = (),
    version: list[tuple[str, Confidence]] = (),
    **kwargs,
) -> Dependency:
    """Build a dependency with (value, confidence) evidence from source ``test``."""
    dependency = Dependency(file_path=file_path, **kwargs)
    for value, conf in vendor:
        dependency.vendor_evidence.add("test", "vendor", value, conf)
    for value, conf in product:
        dependency.product_evidence.add("test", "product", value, conf)
    for value, conf in version:
        dependency.version_evidence.add("test", "version", value, conf)
    return dependency


@pytest.fixture
def make_dependency():
    return _make_dependency
