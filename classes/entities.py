# classes/entities.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    Integer,
    String,
    Text,
    Index,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from typing import TypeAlias
UUID: TypeAlias = str
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordMixin:
    """
    Rows are exchanged with the rest of the app as plain dicts, the same way
    documents come out of a document store.
    """

    def to_record(self) -> dict:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class Concept(Base, RecordMixin):
    __tablename__ = "concepts"

    id: Mapped[UUID] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    owner_id: Mapped[str] = mapped_column(String, nullable=False)

    title: Mapped[str] = mapped_column(String, nullable=False)
    idea_text: Mapped[str] = mapped_column(Text, nullable=False)
    catchphrase: Mapped[str | None] = mapped_column(Text)
    # ordered list of strings
    experience_tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("idx_concepts_owner_created", "owner_id", "created_at"),
    )


class Reflection(Base, RecordMixin):
    __tablename__ = "reflections"

    id: Mapped[UUID] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    owner_id: Mapped[str] = mapped_column(String, nullable=False)

    # calendar day, ISO "YYYY-MM-DD"
    date: Mapped[str] = mapped_column(String(10), nullable=False)

    question_set: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    responses: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    answered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "date", name="uq_reflection_owner_date"),
        Index("idx_reflections_owner_created", "owner_id", "created_at"),
    )


# named collections of the document store
COLLECTIONS = {
    "concepts": Concept,
    "reflections": Reflection,
}
