"""Notification model: one row per alert actually dispatched."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from originwatch.db.database import Base
from originwatch.models.origin import SurrogateKey


class Notification(Base):
    """A delivered outage alert.

    The most recent ``created_at`` per origin drives the alert cooldown, so a
    row is only written after the notifier accepted the message.
    """

    __tablename__ = "notification"
    __table_args__ = (
        Index("idx_notification_origin_created_at", "origin_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(SurrogateKey, primary_key=True, autoincrement=True)
    notification_uid: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True)
    origin_id: Mapped[int] = mapped_column(SurrogateKey, ForeignKey("origin.id"), nullable=False)
    topic: Mapped[str] = mapped_column(Text)
    subject: Mapped[str] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
