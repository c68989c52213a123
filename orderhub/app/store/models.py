"""Table backing the SQL partition store.

Every record of every partition lives in one ``documents`` table keyed by
``(partition, key)``. ``owner_id`` is derived from the partition name and is
indexed; it is what makes the cross-partition scatter query possible.
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DocumentRow(Base):
    """One stored record."""

    __tablename__ = "documents"

    partition = Column(String, primary_key=True)
    key = Column(String, primary_key=True)
    owner_id = Column(String, nullable=True, index=True)
    data = Column(JSON, nullable=False)


__all__ = ["Base", "DocumentRow"]
