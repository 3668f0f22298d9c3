"""Poller result models."""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from originwatch.alerts.models import AlertOutcome
from originwatch.models.probe import FailureReason


@dataclass
class ProbeOutcome:
    """What happened to one origin during one cycle.

    Attributes:
        origin_uid: The probed origin
        observed_at: Wall-clock time the request was issued
        probe_uid: Id of the persisted probe row, None if nothing was persisted
        status_code: HTTP status when the probe completed
        latency_ms: Request latency in whole milliseconds when the probe completed
        reason: Failure classification when the probe did not complete
        alert: Alert evaluation result, None if evaluation did not run
        error: Why processing of this origin was aborted, if it was
    """

    origin_uid: uuid.UUID
    observed_at: datetime | None = None
    probe_uid: uuid.UUID | None = None
    status_code: int | None = None
    latency_ms: int | None = None
    reason: FailureReason | None = None
    alert: AlertOutcome | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status_code is not None

    @property
    def aborted(self) -> bool:
        return self.error is not None


@dataclass
class CycleReport:
    """Summary of one poll cycle."""

    origins: int
    successes: int
    failures: int
    aborted: int
    alerts: int

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[ProbeOutcome]) -> "CycleReport":
        persisted = [o for o in outcomes if not o.aborted]
        return cls(
            origins=len(outcomes),
            successes=sum(1 for o in persisted if o.succeeded),
            failures=sum(1 for o in persisted if not o.succeeded),
            aborted=len(outcomes) - len(persisted),
            alerts=sum(1 for o in outcomes if o.alert == AlertOutcome.ALERTED),
        )
