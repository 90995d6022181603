"""Collection status enumeration."""

from enum import Enum


class CollectionStatus(Enum):
    """Outcome of collecting one metric category."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def failed(self) -> bool:
        """True when the category should be retried."""
        return self is CollectionStatus.FAILED
