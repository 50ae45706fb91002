"""CLI entry point: sca-sentinel.

Subcommands:
    sca-sentinel init-db                      # Create the vulnerability tables
    sca-sentinel import-vulns cves.json       # Load CVE records into the database
    sca-sentinel scan evidence.json [--json]  # Identify CPEs and report vulnerabilities
"""

from __future__ import annotations

import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv

from scasentinel.core.config import Settings
from scasentinel.core.exceptions import EvidenceFormatError, ServiceError
from scasentinel.core.logging import setup_logging
from scasentinel.data.cve_db import CveDB
from scasentinel.dependency.dependency import Dependency
from scasentinel.engines.evidence import load_evidence
from scasentinel.pipeline.engine import ScanContext, ScanEngine, ScanReport


def _settings(db_url: str | None) -> Settings:
    settings = Settings.from_env()
    if db_url:
        settings = replace(settings, database_url=db_url)
    return settings


def _dependency_summary(dependency: Dependency) -> dict[str, Any]:
    return {
        "file_path": dependency.file_path,
        "sha1": dependency.sha1,
        "identifiers": [
            {
                "type": i.type,
                "value": i.value,
                "confidence": i.confidence.name if i.confidence else None,
                "url": i.url,
            }
            for i in sorted(dependency.identifiers)
        ],
        "related": sorted(d.file_path for d in dependency.related_dependencies),
        "vulnerabilities": [
            {"cve": v.cve, "cvss_score": v.cvss_score, "matched_cpe": v.matched_cpe}
            for v in dependency.vulnerabilities
        ],
        "errors": [str(e) for e in dependency.analysis_errors],
    }


def _print_report(report: ScanReport, load_errors: list[EvidenceFormatError]) -> None:
    click.echo(f"Scan {report.scan_id}: {len(report.dependencies)} dependencies")
    for dependency in report.dependencies:
        click.echo(f"\n{dependency.file_path}")
        if not dependency.identifiers:
            click.echo("  (no identifiers)")
        for identifier in sorted(dependency.identifiers):
            conf = identifier.confidence.name if identifier.confidence else "-"
            click.echo(f"  [{conf}] {identifier.value}")
        for vulnerability in dependency.vulnerabilities:
            score = f" ({vulnerability.cvss_score})" if vulnerability.cvss_score is not None else ""
            click.echo(f"  ! {vulnerability.cve}{score}")
    errors = [str(e) for e in load_errors] + [str(e) for e in report.all_errors()]
    if errors:
        click.echo(f"\nErrors ({len(errors)}):")
        for message in errors:
            click.echo(f"  - {message}")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """SCA Sentinel: map third-party components to CPEs and known CVEs."""
    load_dotenv()
    setup_logging("DEBUG" if verbose else None)


@main.command("init-db")
@click.option("--db-url", default=None, help="SQLAlchemy database URL")
def init_db(db_url: str | None) -> None:
    """Create the vulnerability database tables."""
    settings = _settings(db_url)
    database = CveDB(settings.database_url)
    try:
        database.create_schema()
    except ServiceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        database.close()
    click.echo(f"Schema ready at {settings.database_url}")


@main.command("import-vulns")
@click.argument("cve_file", type=click.Path(exists=True))
@click.option("--db-url", default=None, help="SQLAlchemy database URL")
def import_vulns(cve_file: str, db_url: str | None) -> None:
    """Load CVE records from a JSON list.

    Each record: {"cve", "description", "cvss_score", "cwe",
    "cpes": [{"cpe": "cpe:/a:…", "previous_version": false}]}.
    """
    try:
        records = json.loads(Path(cve_file).read_text())
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON in {cve_file}: {e}", err=True)
        sys.exit(1)
    if not isinstance(records, list):
        click.echo("Error: expected a JSON list of CVE records", err=True)
        sys.exit(1)

    database = CveDB(_settings(db_url).database_url)
    try:
        database.create_schema()
        database.open()
        for record in records:
            database.save_vulnerability(
                record["cve"],
                [(c["cpe"], bool(c.get("previous_version", False))) for c in record["cpes"]],
                description=record.get("description", ""),
                cvss_score=record.get("cvss_score"),
                cwe=record.get("cwe"),
            )
    except (KeyError, TypeError) as e:
        click.echo(f"Error: malformed CVE record: {e}", err=True)
        sys.exit(1)
    except ServiceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        database.close()
    click.echo(f"Imported {len(records)} CVE records")


@main.command("scan")
@click.argument("evidence_file", type=click.Path(exists=True))
@click.option("--db-url", default=None, help="SQLAlchemy database URL")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def scan(evidence_file: str, db_url: str | None, as_json: bool) -> None:
    """Run the analysis pipeline over an evidence file."""
    try:
        dependencies, load_errors = load_evidence(evidence_file)
    except EvidenceFormatError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    context = ScanContext.from_settings(_settings(db_url))
    try:
        report = ScanEngine(context).run(dependencies)
    except ServiceError as e:
        click.echo(f"Error: scan aborted: {e}", err=True)
        sys.exit(2)

    if as_json:
        payload = {
            "scan_id": report.scan_id,
            "dependencies": [_dependency_summary(d) for d in report.dependencies],
            "errors": [str(e) for e in load_errors] + [str(e) for e in report.all_errors()],
        }
        click.echo(json.dumps(payload, indent=2))
    else:
        _print_report(report, load_errors)
