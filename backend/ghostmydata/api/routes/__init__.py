"""API routes."""

from ghostmydata.api.routes import alerts, brokers, exposures, removals, scans

__all__ = ["alerts", "brokers", "exposures", "removals", "scans"]
