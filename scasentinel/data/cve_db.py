"""Vulnerability database — CPE entries and the CVEs that affect them."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from scasentinel.core.database import build_engine, build_session_factory, create_schema
from scasentinel.core.exceptions import DatabaseUnavailableError
from scasentinel.dependency.identifier import Vulnerability, VulnerableSoftware
from scasentinel.dependency.version import parse_version
from scasentinel.models import CpeEntry, Software, VulnerabilityRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class VulnerabilityDatabase(Protocol):
    """Read-only view of the vulnerability database used during a scan."""

    def open(self) -> None: ...

    def close(self) -> None: ...

    def lookup_by_vendor_product(self, vendor: str, product: str) -> set[VulnerableSoftware]: ...

    def lookup_vulnerabilities(self, cpe: str) -> list[Vulnerability]: ...

    def vendor_product_list(self) -> list[tuple[str, str]]: ...


def _version_affected(identified: str, entry: VulnerableSoftware, previous_version: bool) -> bool:
    """Does the entry (``previous_version`` = "and all earlier") cover the identified CPE?"""
    target = VulnerableSoftware.parse(identified)
    if entry.version in (None, "-"):
        return True
    if target.version_with_revision is None:
        return False
    target_version = parse_version(target.version_with_revision, first_match_only=True)
    entry_version = parse_version(entry.version_with_revision, first_match_only=True)
    if target_version is None or entry_version is None:
        return entry.name == identified
    if target_version == entry_version:
        return True
    return previous_version and target_version.compare(entry_version) < 0


class CveDB:
    """SQLAlchemy-backed :class:`VulnerabilityDatabase`.

    Either pass a ``database_url`` (engine created on :meth:`open`) or a ready
    ``session_factory`` (tests, shared engines).  Each call opens its own
    short-lived session, so one instance is safe to share across threads.
    """

    def __init__(
        self,
        database_url: str | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        if database_url is None and session_factory is None:
            raise ValueError("CveDB needs a database_url or a session_factory")
        self._database_url = database_url
        self._session_factory = session_factory
        self._owns_engine = session_factory is None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        if self._open:
            return
        try:
            if self._session_factory is None:
                self._session_factory = build_session_factory(build_engine(self._database_url))
            with self._session_factory() as session:
                session.execute(select(CpeEntry.id).limit(1))
        except SQLAlchemyError as exc:
            raise DatabaseUnavailableError(f"cannot open vulnerability database: {exc}") from exc
        self._open = True
        logger.debug("Vulnerability database opened")

    def close(self) -> None:
        if self._owns_engine and self._session_factory is not None:
            engine = self._session_factory.kw.get("bind")
            if engine is not None:
                engine.dispose()
            self._session_factory = None
        self._open = False

    def create_schema(self) -> None:
        """Create the tables (used by ``sca-sentinel init-db``)."""
        if self._session_factory is None:
            self._session_factory = build_session_factory(build_engine(self._database_url))
        try:
            create_schema(self._session_factory.kw["bind"])
        except SQLAlchemyError as exc:
            raise DatabaseUnavailableError(f"cannot create schema: {exc}") from exc

    def _session(self) -> Session:
        if not self._open or self._session_factory is None:
            raise DatabaseUnavailableError("vulnerability database is not open")
        return self._session_factory()

    # ── queries ──

    def lookup_by_vendor_product(self, vendor: str, product: str) -> set[VulnerableSoftware]:
        try:
            with self._session() as session:
                names = session.scalars(
                    select(CpeEntry.cpe).where(
                        CpeEntry.vendor == vendor, CpeEntry.product == product
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise DatabaseUnavailableError(f"CPE lookup failed: {exc}") from exc
        return {VulnerableSoftware.parse(name) for name in names}

    def vendor_product_list(self) -> list[tuple[str, str]]:
        try:
            with self._session() as session:
                rows = session.execute(
                    select(CpeEntry.vendor, CpeEntry.product)
                    .distinct()
                    .order_by(CpeEntry.vendor, CpeEntry.product)
                ).all()
        except SQLAlchemyError as exc:
            raise DatabaseUnavailableError(f"vendor/product listing failed: {exc}") from exc
        return [(row.vendor, row.product) for row in rows]

    def lookup_vulnerabilities(self, cpe: str) -> list[Vulnerability]:
        """CVEs affecting *cpe*, de-duplicated and sorted by CVE id."""
        target = VulnerableSoftware.parse(cpe)
        if not target.vendor or not target.product:
            return []
        stmt = (
            select(VulnerabilityRecord, CpeEntry.cpe, Software.previous_version)
            .join(Software, Software.vulnerability_id == VulnerabilityRecord.id)
            .join(CpeEntry, CpeEntry.id == Software.cpe_entry_id)
            .where(CpeEntry.vendor == target.vendor, CpeEntry.product == target.product)
        )
        try:
            with self._session() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise DatabaseUnavailableError(f"vulnerability lookup failed: {exc}") from exc

        found: dict[str, Vulnerability] = {}
        for record, entry_cpe, previous_version in rows:
            if record.cve in found:
                continue
            entry = VulnerableSoftware.parse(entry_cpe)
            if _version_affected(cpe, entry, previous_version):
                found[record.cve] = Vulnerability(
                    cve=record.cve,
                    description=record.description,
                    cvss_score=record.cvss_score,
                    cwe=record.cwe,
                    matched_cpe=entry_cpe,
                )
        return [found[cve] for cve in sorted(found)]

    # ── writes ──

    def save_vulnerability(
        self,
        cve: str,
        cpes: list[tuple[str, bool]],
        description: str = "",
        cvss_score: float | None = None,
        cwe: str | None = None,
    ) -> None:
        """Insert or update one CVE and the ``(cpe, previous_version)`` pairs it affects."""
        try:
            with self._session() as session, session.begin():
                record = session.scalars(
                    select(VulnerabilityRecord).where(VulnerabilityRecord.cve == cve)
                ).first()
                if record is None:
                    record = VulnerabilityRecord(cve=cve)
                    session.add(record)
                record.description = description
                record.cvss_score = cvss_score
                record.cwe = cwe
                session.flush()

                for name, previous_version in cpes:
                    entry = self._get_or_create_entry(session, name)
                    link = session.get(Software, (record.id, entry.id))
                    if link is None:
                        session.add(
                            Software(
                                vulnerability_id=record.id,
                                cpe_entry_id=entry.id,
                                previous_version=previous_version,
                            )
                        )
                    else:
                        link.previous_version = previous_version
        except SQLAlchemyError as exc:
            raise DatabaseUnavailableError(f"cannot save {cve}: {exc}") from exc

    @staticmethod
    def _get_or_create_entry(session: Session, name: str) -> CpeEntry:
        entry = session.scalars(select(CpeEntry).where(CpeEntry.cpe == name)).first()
        if entry is None:
            parsed = VulnerableSoftware.parse(name)
            entry = CpeEntry(cpe=name, vendor=parsed.vendor or "", product=parsed.product or "")
            session.add(entry)
            session.flush()
        return entry
