"""Origin polling loop."""

from originwatch.poller.models import CycleReport, ProbeOutcome
from originwatch.poller.poller import Poller

__all__ = ["CycleReport", "Poller", "ProbeOutcome"]
