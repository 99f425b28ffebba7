# classes/document_store.py

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from classes.entities import COLLECTIONS
from classes.errors import ConflictError, StoreError

logger = logging.getLogger("diffref_backend")


@dataclass
class ListResult:
    """
    Result of a read. `available=False` means the store could not answer
    (missing table, connection refused, ...), which is not the same thing as
    a query that matched zero rows, even though the UI shows both as empty.
    """
    records: List[dict] = field(default_factory=list)
    available: bool = True
    reason: str = ""

    @classmethod
    def unavailable(cls, reason: str) -> "ListResult":
        return cls(records=[], available=False, reason=reason)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


def read_or_unavailable(fn: Callable[[], List[dict]], what: str) -> ListResult:
    try:
        return ListResult(records=list(fn()))
    except StoreError as e:
        logger.warning("[STORE] %s unavailable, serving empty result: %s", what, e)
        return ListResult.unavailable(str(e))


class Collection:
    """
    A named document collection on top of a SQLAlchemy model.

        concepts = Collection(session_factory, "concepts")
        concepts.list(where={"owner_id": uid}, order_by=("created_at", "desc"))
    """

    def __init__(self, session_factory: sessionmaker, name: str):
        if name not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {name}")
        self.name = name
        self.model = COLLECTIONS[name]
        self.SessionFactory = session_factory

    def _column(self, key: str):
        col = getattr(self.model, key, None)
        if col is None:
            raise ValueError(f"Collection '{self.name}' has no field '{key}'")
        return col

    def list(
        self,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[tuple[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        stmt = select(self.model)
        for key, value in (where or {}).items():
            stmt = stmt.where(self._column(key) == value)
        if order_by:
            key, direction = order_by
            col = self._column(key)
            stmt = stmt.order_by(col.desc() if direction == "desc" else col.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        session = self.SessionFactory()
        try:
            rows = session.execute(stmt).scalars().all()
            return [row.to_record() for row in rows]
        except SQLAlchemyError as e:
            logger.warning("[STORE] list %s failed: %s", self.name, e)
            raise StoreError(f"Your {self.name} could not be loaded right now.") from e
        finally:
            session.close()

    def create(self, record: Dict[str, Any]) -> dict:
        session = self.SessionFactory()
        try:
            row = self.model(**record)
            session.add(row)
            session.commit()
            return row.to_record()
        except IntegrityError as e:
            session.rollback()
            logger.warning("[STORE] create %s conflicts with an existing row: %s", self.name, e)
            raise ConflictError(f"That record already exists in {self.name}.") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("[STORE] create %s failed: %s", self.name, e)
            raise StoreError(f"Your changes to {self.name} could not be saved right now.") from e
        finally:
            session.close()

    def delete(self, record_id: str, where: Optional[Dict[str, Any]] = None) -> bool:
        """
        Returns True when a row was removed.
        """
        stmt = delete(self.model).where(self.model.id == str(record_id))
        for key, value in (where or {}).items():
            stmt = stmt.where(self._column(key) == value)

        session = self.SessionFactory()
        try:
            result = session.execute(stmt)
            session.commit()
            return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("[STORE] delete %s %s failed: %s", self.name, record_id, e)
            raise StoreError(f"That item could not be removed from {self.name} right now.") from e
        finally:
            session.close()
