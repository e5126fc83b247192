"""Error types raised inside the monitoring core."""


class PingMonitorError(Exception):
    """Base class for ping monitor failures."""


class ProbeInvocationError(PingMonitorError):
    """The ping tool itself could not be run (missing binary, bad arguments)."""


class StorageError(PingMonitorError):
    """Persisting or reading probe results failed."""


class TransportError(PingMonitorError):
    """A message could not be delivered to a subscriber."""
