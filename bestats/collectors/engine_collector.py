"""Per-engine metric collector: fetch, filter, serialize and write."""

import logging
import threading
from functools import partial
from typing import Any, Dict, Iterable, Optional

from ..services.report_writer import ReportWriter
from ..services.retry_handler import RetryHandler
from ..sources.base import AttributeSource
from ..sources.factory import build_source
from ..sources.object_name import ObjectName
from ..utils.errors import ConnectivityError, QueryError, ResetError, WriteError
from ..utils.metrics import CategoryResult, CycleResult, EntityFetch
from ..utils.status import CollectionStatus
from .base import BaseCollector, safe_collect
from .categories import TIMESTAMP_ATTRIBUTE, MetricCategory
from .entity_filter import EntityFilter


class EngineCollector(BaseCollector):
    """
    Collects every configured category from one engine into its report files.

    The connection is opened lazily at the start of a cycle and dropped on
    any connectivity failure; the next cycle reconnects. A category that
    fails is retried once within the cycle, with its report file closed
    first, and never stops the remaining categories.

    One collector is driven by at most one worker at a time. ``close()``
    and ``abort()`` may be called from other threads.
    """

    def __init__(
        self,
        endpoint,
        categories: Iterable[MetricCategory],
        entity_filter: EntityFilter,
        writer: ReportWriter,
        logger: logging.Logger,
        source: Optional[AttributeSource] = None,
        timeout: float = 10.0
    ):
        """
        Initialize engine collector.

        Args:
            endpoint: EngineEndpoint to collect from
            categories: Metric categories to report, in order
            entity_filter: Shared, read-only entity filter
            writer: Report writer owned by this collector
            logger: Logger instance
            source: Attribute source; built from the endpoint when omitted
            timeout: Request timeout for the built source
        """
        super().__init__(endpoint, logger)
        self.categories = list(categories)
        self.entity_filter = entity_filter
        self.writer = writer
        self.source = source or build_source(endpoint, timeout=timeout, logger=self.logger)

        self._lock = threading.Lock()
        self._busy = False
        self._release_requested = False
        self._aborted = False
        self._reconnect_used = False

    @property
    def connected(self) -> bool:
        return self.source.is_open

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    @property
    def aborted(self) -> bool:
        return self._aborted

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def ensure_connected(self) -> bool:
        """
        Open the connection unless it is already open.

        Returns:
            bool: True when connected
        """
        if self.source.is_open:
            return True
        try:
            self.source.open()
            return True
        except ConnectivityError as e:
            self.logger.error(
                f"Failed to connect to engine {self.label}: {e}",
                extra=self._context()
            )
            self.source.close()
            return False

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def collect_cycle(self, timestamp: str) -> CycleResult:
        with self._lock:
            self._busy = True
        try:
            return self._run_cycle(timestamp)
        finally:
            with self._lock:
                self._busy = False
                release = self._release_requested
            if release:
                self._release()

    def _run_cycle(self, timestamp: str) -> CycleResult:
        result = CycleResult(engine=self.label, timestamp=timestamp, connected=False)
        self._reconnect_used = False

        if self._aborted or not self.ensure_connected():
            return result
        result.connected = True

        for category in self.categories:
            if self._aborted:
                result.categories.append(CategoryResult(
                    category=category.name,
                    status=CollectionStatus.SKIPPED,
                    error="collector aborted"
                ))
                continue

            outcome = RetryHandler.call(
                partial(self.collect_one, category, timestamp),
                max_attempts=2,
                base_delay=0,
                retry_if=lambda r: r.retryable and not self._aborted,
                before_retry=partial(self._prepare_retry, category),
                logger=self.logger,
                extra=self._context(category)
            )
            if outcome.failed:
                self.logger.error(
                    f"Giving up on {category.name} for this cycle: {outcome.error}",
                    extra=self._context(category)
                )
            result.categories.append(outcome)

        self.logger.debug(
            f"Cycle {timestamp} wrote {result.rows_written} row(s)",
            extra=self._context()
        )
        return result

    def _prepare_retry(self, category: MetricCategory, attempt: int) -> None:
        self.logger.warning(
            f"Retrying {category.name} with a new report file",
            extra=self._context(category)
        )
        self.writer.close(category)

    @safe_collect
    def collect_one(self, category: MetricCategory, timestamp: str) -> CategoryResult:
        """
        Collect one category and append its rows to today's report file.

        Args:
            category: Metric category to collect
            timestamp: Sample timestamp written to every row

        Returns:
            CategoryResult: FAILED when the query or the file write failed,
                or the connection was lost and could not be restored
        """
        ctx = self._context(category)

        if not self._reconnect():
            return self._failed(category, "not connected")

        try:
            identifiers = self.source.list_identifiers(category.query)
        except (QueryError, ConnectivityError) as e:
            self.logger.error(f"Failed to get entity list for {category.name}: {e}", extra=ctx)
            if isinstance(e, ConnectivityError):
                self.source.close()
            return self._failed(category, str(e))

        result = CategoryResult(category=category.name, status=CollectionStatus.OK)
        try:
            # Today's file and header exist even when every entity is filtered out
            self.writer.open(category)
            if not identifiers:
                self.writer.write(category, category.empty_message())
                result.status = CollectionStatus.EMPTY
            else:
                self._write_entities(category, identifiers, timestamp, result)
            self.writer.flush(category)
        except WriteError as e:
            self.logger.error(f"Failed to write {category.name}: {e}", extra=ctx)
            result.status = CollectionStatus.FAILED
            result.error = str(e)
            return result

        if not self.writer.check_health(category):
            self.writer.close(category)
        return result

    def _write_entities(
        self,
        category: MetricCategory,
        identifiers: Iterable[ObjectName],
        timestamp: str,
        result: CategoryResult
    ) -> None:
        for identifier in identifiers:
            if self._aborted:
                return

            fetch = self.fetch_entity(identifier, timestamp)
            if not fetch.ok:
                name = (
                    category.display_name(identifier, {})
                    or identifier.key_property("name")
                    or str(identifier)
                )
                self.writer.write(
                    category,
                    f"Failed to get attributes for entity {name}: {fetch.error}\n"
                )
                result.entities_failed += 1
                if not self.source.is_open and not self._reconnect():
                    # Remaining entities fail fast and still get their row
                    result.status = CollectionStatus.FAILED
                    result.error = f"connection lost: {fetch.error}"
                continue

            name = category.display_name(identifier, fetch.attributes)
            if name is not None and self.entity_filter.is_included(name, category.name):
                self.writer.write(category, category.serialize(name, fetch.attributes))
                result.rows_written += 1
            else:
                result.entities_filtered += 1

            if category.is_delta and self.reset(category, identifier):
                result.resets += 1

    def _reconnect(self) -> bool:
        """Reopen a dropped connection, at most once per cycle for the whole engine."""
        if self.source.is_open:
            return True
        if self._reconnect_used:
            return False
        self._reconnect_used = True
        return self.ensure_connected()

    def fetch_entity(self, identifier: ObjectName, timestamp: str) -> EntityFetch:
        """Read one object's attributes and stamp them with the tick timestamp."""
        try:
            attributes: Dict[str, Any] = dict(self.source.get_attributes(identifier))
        except Exception as e:
            self.logger.warning(
                f"Failed to get attributes for {identifier}: {e}",
                extra=self._context()
            )
            return EntityFetch(identifier=str(identifier), error=str(e))
        attributes[TIMESTAMP_ATTRIBUTE] = timestamp
        return EntityFetch(identifier=str(identifier), attributes=attributes)

    def reset(self, category: MetricCategory, identifier: ObjectName) -> bool:
        """Invoke the category's reset so the next read is a delta."""
        try:
            self.source.invoke(identifier, category.reset_operation)
            return True
        except (ResetError, ConnectivityError) as e:
            self.logger.warning(
                f"Failed to reset stats for {identifier}: {e}",
                extra=self._context(category)
            )
            return False

    def _failed(self, category: MetricCategory, error: str) -> CategoryResult:
        return CategoryResult(
            category=category.name,
            status=CollectionStatus.FAILED,
            error=error
        )

    # ------------------------------------------------------------------
    # Diagnostics and lifecycle
    # ------------------------------------------------------------------

    def probe(self) -> Dict[str, Any]:
        """
        Connect and describe the engine's management interface.

        Raises:
            ConnectivityError: If the engine cannot be reached
        """
        if not self.ensure_connected():
            raise ConnectivityError(f"Cannot connect to {self.label}", engine=self.label)
        return {
            "engine": self.label,
            "mbean_count": self.source.count_objects(),
            "domains": self.source.domains(),
        }

    def close(self) -> None:
        """Release resources now, or when the running cycle ends."""
        with self._lock:
            if self._busy:
                self._release_requested = True
                self.logger.info("Release deferred until the running cycle ends", extra=self._context())
                return
        self._release()

    def abort(self) -> None:
        """Stop the running cycle at the next entity or category boundary."""
        self._aborted = True
        self.close()

    def _release(self) -> None:
        with self._lock:
            self._release_requested = False
        self.source.close()
        self.writer.close_all()
        self.logger.info(f"Released connection and report files for {self.label}", extra=self._context())
