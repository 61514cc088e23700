"""Durable counters behind every human-facing number."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from docpost_kernel.db.base import Base


class SequenceCounter(Base):
    """
    One named counter and the last value handed out.

    Day-scoped number counters are named ``<PREFIX>:<YYYYMMDD>``; plain
    sequences (the stock movement posting order) use a fixed name.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
