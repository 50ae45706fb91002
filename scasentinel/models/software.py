"""software table — which CPE entries a vulnerability affects."""

from sqlalchemy import Boolean, ForeignKey, Integer, false
from sqlalchemy.orm import Mapped, mapped_column

from scasentinel.core.database import Base


class Software(Base):
    __tablename__ = "software"

    vulnerability_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vulnerability.id", ondelete="CASCADE"), primary_key=True
    )
    cpe_entry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cpe_entry.id", ondelete="CASCADE"), primary_key=True
    )
    # True when the entry also covers every earlier version.
    previous_version: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
