"""Exception hierarchy for the flow monitor."""


class FlowMonitorError(Exception):
    """Base class for all flow monitor errors."""


class ConfigError(FlowMonitorError):
    """Invalid or inconsistent configuration."""


class CaptureError(FlowMonitorError):
    """The capture source failed (interface gone, permission lost)."""


class StoreError(FlowMonitorError):
    """A backing-store operation failed or timed out."""


class GeoLookupError(FlowMonitorError):
    """IP geolocation lookup failed."""
