"""
Write-side service base.

Services share the caller's session and persist with ``flush()`` only.  The
caller (DocumentPipeline, or a test) decides when the transaction commits,
which is what makes a multi-step operation like posting all-or-nothing.
Read models live in selectors/, not here.
"""

from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from docpost_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(Generic[ModelType]):
    """Holds the session; ``ModelType`` names the aggregate the service writes."""

    def __init__(self, session: Session):
        self.session = session
