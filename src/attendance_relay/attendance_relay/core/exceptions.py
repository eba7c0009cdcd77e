class RelayError(Exception):
    """Base exception for attendance relay failures."""


class DeviceConnectionError(RelayError):
    """Raised when a terminal is unreachable or its driver is unavailable."""


class StoreConnectivityError(RelayError):
    """Raised when a store fails its startup connectivity probe."""


class StoreWriteError(RelayError):
    """Raised when a single write against one store fails."""


class ConfigurationError(RelayError):
    """Raised when devices or stores are missing or misconfigured."""
