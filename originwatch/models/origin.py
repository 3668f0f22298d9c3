"""Origin model: a monitored HTTP endpoint."""

import uuid

from sqlalchemy import BigInteger, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from originwatch.db.database import Base

# SQLite only autoincrements an INTEGER PRIMARY KEY
SurrogateKey = BigInteger().with_variant(Integer, "sqlite")


class Origin(Base):
    """An HTTP endpoint polled on every cycle.

    Origins are created by an operator and never mutated by the poller.
    Probe and notification rows reference the surrogate ``id``; everything
    outside the database refers to ``origin_uid``.
    """

    __tablename__ = "origin"

    id: Mapped[int] = mapped_column(SurrogateKey, primary_key=True, autoincrement=True)
    origin_uid: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, index=True)
    uri: Mapped[str] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"Origin(origin_uid={self.origin_uid}, uri={self.uri!r})"
