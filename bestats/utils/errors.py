"""Error taxonomy for the stats collector."""

from typing import Optional


class BeStatsError(Exception):
    """Base class for all collector errors."""

    def __init__(self, message: str, engine: Optional[str] = None, category: Optional[str] = None):
        super().__init__(message)
        self.engine = engine
        self.category = category


class ConnectivityError(BeStatsError):
    """Cannot open, or has lost, the connection to an engine."""


class QueryError(BeStatsError):
    """Listing object identifiers for a category failed."""


class AttributeFetchError(BeStatsError):
    """Reading the attributes of a single object failed."""


class ResetError(BeStatsError):
    """The delta-reset operation on an object failed."""


class WriteError(BeStatsError):
    """A report file could not be created or written."""


class ConfigurationError(BeStatsError):
    """Configuration is missing or invalid. Fatal at startup."""


class ShutdownError(BeStatsError):
    """Workers did not finish within the shutdown grace periods."""
