"""vulnerability table."""

from typing import Optional

from sqlalchemy import Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from scasentinel.core.database import Base


class VulnerabilityRecord(Base):
    __tablename__ = "vulnerability"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cve: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    cvss_score: Mapped[Optional[float]] = mapped_column(Float)
    cwe: Mapped[Optional[str]] = mapped_column(Text)
