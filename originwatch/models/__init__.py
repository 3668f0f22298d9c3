from originwatch.models.notification import Notification
from originwatch.models.origin import Origin
from originwatch.models.probe import FailureReason, ProbeFailure, ProbeSuccess

__all__ = [
    "FailureReason",
    "Notification",
    "Origin",
    "ProbeFailure",
    "ProbeSuccess",
]
