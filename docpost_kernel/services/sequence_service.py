"""
SequenceService -- gap-free, durable numbering.

Documents, journal entries, stock movements and items get numbers of the
form ``PREFIX-YYYYMMDD-NNNN``; posted stock movements additionally get a
global ``seq`` that fixes their order.  All of them come from rows in
``sequence_counters``:

    - The counter row is locked (``SELECT ... FOR UPDATE``) and incremented
      in the caller's transaction.  Nothing is cached in the process, so two
      workers can never hand out the same number.
    - A rollback gives the number back; only committed allocations count.
    - Day-scoped counters are separate rows, so every day restarts at 0001.

The first allocation of a counter inserts its row inside a savepoint.  If a
concurrent transaction inserted it first, the savepoint is rolled back and
the now-existing row is locked instead.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docpost_kernel.logging_config import get_logger
from docpost_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Allocates values from named counters.  Flushes, never commits.

    Usage:
        numbers = SequenceService(session)
        numbers.next_number("JE", date(2024, 3, 1))         # "JE-20240301-0001"
        numbers.next_value(SequenceService.STOCK_MOVE_SEQ)  # 1
    """

    STOCK_MOVE_SEQ = "stock_move_seq"
    NUMBER_WIDTH = 4

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def counter_name(prefix: str, on_date: date) -> str:
        return f"{prefix}:{on_date:%Y%m%d}"

    def _select_for_update(self, name: str) -> SequenceCounter | None:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert a fresh counter at 0; None when another transaction won."""
        counter = SequenceCounter(name=name, current_value=0)
        try:
            with self._session.begin_nested():
                self._session.add(counter)
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            return None
        return counter

    def next_value(self, name: str) -> int:
        """Increment counter ``name`` (creating it on first use) and return the new value."""
        counter = self._select_for_update(name) or self._create(name)
        if counter is None:
            counter = self._select_for_update(name)
            if counter is None:
                raise RuntimeError(f"Sequence counter {name!r} vanished after insert race")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def next_number(self, prefix: str, on_date: date) -> str:
        value = self.next_value(self.counter_name(prefix, on_date))
        return f"{prefix}-{on_date:%Y%m%d}-{value:0{self.NUMBER_WIDTH}d}"

    def current_value(self, name: str) -> int | None:
        """Last value handed out by ``name``, or None if it was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
