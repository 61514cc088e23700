"""
Concurrent posting of the same document.

Two callers race to post one ROUTED document.  Exactly one journal entry and
one set of stock movements may exist afterwards, and both callers must see
the same links.

Covers both layers of protection:
- Same DocumentPipeline instance: the per-document lock serializes callers.
- Separate instances (as two worker processes would have): the row lock,
  the journal idempotency key and the conditional link update decide.

Runs against SQLite by default; set DATABASE_URL to exercise PostgreSQL row
locking under READ COMMITTED.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import func, select

from docpost_kernel.db.engine import session_scope
from docpost_kernel.domain.lifecycle import DocumentStatus
from docpost_kernel.models.inventory import StockMove
from docpost_kernel.models.journal import JournalEntry
from docpost_kernel.pipeline import DocumentPipeline
from docpost_kernel.services.posting_service import PostingStatus

pytestmark = pytest.mark.slow_locks


def _count(session_factory, model):
    with session_scope(session_factory) as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


def _race(callers, document_id):
    """Release all callers at once and collect their results."""
    barrier = Barrier(len(callers))

    def _post(caller):
        barrier.wait(timeout=10)
        return caller.post(document_id)

    with ThreadPoolExecutor(max_workers=len(callers)) as pool:
        futures = [pool.submit(_post, caller) for caller in callers]
        return [f.result(timeout=60) for f in futures]


def _assert_single_posting(results, pipeline, document_id, session_factory):
    statuses = sorted(r.status.value for r in results)
    assert statuses == [PostingStatus.ALREADY_POSTED.value, PostingStatus.POSTED.value]
    assert len({r.journal_id for r in results}) == 1
    assert len({r.stock_move_ids for r in results}) == 1

    assert _count(session_factory, JournalEntry) == 1
    assert _count(session_factory, StockMove) == 1

    stored = pipeline.get_document(document_id)
    assert stored.status == DocumentStatus.POSTED.value
    assert stored.journal_id == results[0].journal_id


class TestConcurrentPost:

    def test_same_pipeline(self, pipeline, make_routed_document, session_factory):
        document = make_routed_document()

        results = _race([pipeline, pipeline], document.id)

        _assert_single_posting(results, pipeline, document.id, session_factory)
        assert pipeline._locks == {}

    def test_separate_pipelines(
        self, pipeline, make_routed_document, session_factory, pipeline_settings, deterministic_clock
    ):
        """Independent instances share nothing but the database."""
        document = make_routed_document()
        other = DocumentPipeline(session_factory, pipeline_settings, deterministic_clock)

        results = _race([pipeline, other], document.id)

        _assert_single_posting(results, pipeline, document.id, session_factory)

    def test_many_callers(self, pipeline, make_routed_document, session_factory, pipeline_settings, deterministic_clock):
        document = make_routed_document()
        callers = [pipeline] + [
            DocumentPipeline(session_factory, pipeline_settings, deterministic_clock) for _ in range(3)
        ]

        results = _race(callers, document.id)

        assert [r.status for r in results].count(PostingStatus.POSTED) == 1
        assert len({r.links for r in results}) == 1
        assert _count(session_factory, JournalEntry) == 1
        assert _count(session_factory, StockMove) == 1

    def test_on_hand_after_race(self, pipeline, make_routed_document, pipeline_settings, deterministic_clock, session_factory):
        """The movement is counted once no matter how many callers raced."""
        document = make_routed_document()
        other = DocumentPipeline(session_factory, pipeline_settings, deterministic_clock)

        _race([pipeline, other], document.id)

        assert pipeline.on_hand("X").total == 10
