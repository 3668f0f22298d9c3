"""Probe outcome models."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from originwatch.db.database import Base
from originwatch.models.origin import SurrogateKey


class FailureReason(str, Enum):
    """Why a probe did not produce an HTTP response.

    Values are persisted by name and must stay stable.
    """

    REQUEST_TIMEOUT = "RequestTimeout"
    REDIRECTION = "Redirection"
    BAD_REQUEST = "BadRequest"
    CONNECTION_FAILURE = "ConnectionFailure"
    INVALID_BODY = "InvalidBody"
    UNKNOWN = "Unknown"


class ProbeSuccess(Base):
    """A probe that completed with an HTTP response, whatever its status."""

    __tablename__ = "probe_success"
    __table_args__ = (
        CheckConstraint("status_code BETWEEN 0 AND 999", name="ck_probe_success_status_code"),
        CheckConstraint("latency_ms >= 0", name="ck_probe_success_latency_non_negative"),
        Index("idx_probe_success_origin_observed_at", "origin_id", "observed_at"),
    )

    id: Mapped[int] = mapped_column(SurrogateKey, primary_key=True, autoincrement=True)
    probe_uid: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True)
    origin_id: Mapped[int] = mapped_column(SurrogateKey, ForeignKey("origin.id"), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer)
    latency_ms: Mapped[int] = mapped_column(Integer)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ProbeFailure(Base):
    """A probe that never produced an HTTP response."""

    __tablename__ = "probe_failure"
    __table_args__ = (
        Index("idx_probe_failure_origin_observed_at", "origin_id", "observed_at"),
    )

    id: Mapped[int] = mapped_column(SurrogateKey, primary_key=True, autoincrement=True)
    probe_uid: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True)
    origin_id: Mapped[int] = mapped_column(SurrogateKey, ForeignKey("origin.id"), nullable=False)
    reason: Mapped[FailureReason] = mapped_column(String(30))
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
