"""SQLAlchemy ORM models — one file per table."""

from scasentinel.models.cpe_entry import CpeEntry
from scasentinel.models.software import Software
from scasentinel.models.vulnerability import VulnerabilityRecord

__all__ = [
    "CpeEntry",
    "Software",
    "VulnerabilityRecord",
]
