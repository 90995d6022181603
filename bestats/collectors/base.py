"""Base collector abstract class."""

from abc import ABC, abstractmethod
from functools import wraps
import logging

from ..utils.metrics import CategoryResult, CycleResult
from ..utils.status import CollectionStatus


class BaseCollector(ABC):
    """Abstract base class for per-engine collectors."""

    def __init__(self, endpoint, logger: logging.Logger):
        """
        Initialize base collector.

        Args:
            endpoint: EngineEndpoint this collector owns
            logger: Logger instance
        """
        self.endpoint = endpoint
        self.logger = logger.getChild(self.__class__.__name__)

    @property
    def label(self) -> str:
        return self.endpoint.label

    @abstractmethod
    def collect_cycle(self, timestamp: str) -> CycleResult:
        """
        Collect every configured category once.

        Args:
            timestamp: Sample timestamp shared by the whole tick

        Returns:
            CycleResult: Per-category outcome

        Note:
            Must not raise; failures are reported in the result.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the connection and report files."""

    @abstractmethod
    def abort(self) -> None:
        """Stop a running cycle early and release resources."""

    def _context(self, category=None) -> dict:
        """Logging context for records about this engine."""
        ctx = {"engine": self.label}
        if category is not None:
            ctx["category"] = category.name
        return ctx


def safe_collect(func):
    """
    Decorator turning an exception raised while collecting one category
    into a FAILED CategoryResult.

    The wrapped method takes the category as its first argument.
    """
    @wraps(func)
    def wrapper(self, category, *args, **kwargs):
        try:
            return func(self, category, *args, **kwargs)
        except Exception as e:
            self.logger.error(
                f"Collection of {category.name} failed: {e}",
                exc_info=True,
                extra=self._context(category)
            )
            return CategoryResult(
                category=category.name,
                status=CollectionStatus.FAILED,
                error=f"{type(e).__name__}: {e}"
            )
    return wrapper
