"""cpe_entry table."""

from sqlalchemy import Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from scasentinel.core.database import Base


class CpeEntry(Base):
    __tablename__ = "cpe_entry"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cpe: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    vendor: Mapped[str] = mapped_column(Text, nullable=False)
    product: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("idx_cpe_entry_vendor_product", "vendor", "product"),)
