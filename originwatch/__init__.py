"""Origin polling and outage alerting."""

__version__ = "0.1.0"
