"""
Naming Series Models

Per (series, year) counters behind every human-readable identifier.
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from eacz_registry.core.database import Base


class NamingSeriesCounter(Base):
    """Monotonic counter for one identifier series in one calendar year."""

    __tablename__ = "naming_series_counters"

    series_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<NamingSeriesCounter({self.series_code}, {self.year}, {self.counter})>"
