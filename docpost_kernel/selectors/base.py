"""
Read-side base.

Selectors query through the caller's session and never add, flush, commit
or delete.  They hand back domain values (frozen dataclasses), so callers
never hold ORM rows from a read path.
"""

from sqlalchemy.orm import Session


class BaseSelector:
    def __init__(self, session: Session):
        self.session = session
