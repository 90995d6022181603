"""Result data structures for collection cycles."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .status import CollectionStatus


@dataclass
class EntityFetch:
    """Attributes read for one remote object, or the reason they could not be."""

    identifier: str
    attributes: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CategoryResult:
    """Standard result of collecting one metric category from one engine."""

    category: str
    status: CollectionStatus
    rows_written: int = 0
    entities_failed: int = 0
    entities_filtered: int = 0
    resets: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status.failed

    @property
    def retryable(self) -> bool:
        """Failed before any row reached the report, so a rerun cannot duplicate rows."""
        return self.failed and self.rows_written == 0 and self.entities_failed == 0


@dataclass
class CycleResult:
    """Everything one engine produced during one tick."""

    engine: str
    timestamp: str
    connected: bool
    categories: List[CategoryResult] = field(default_factory=list)

    @property
    def rows_written(self) -> int:
        return sum(c.rows_written for c in self.categories)

    @property
    def failed_categories(self) -> List[str]:
        return [c.category for c in self.categories if c.failed]
