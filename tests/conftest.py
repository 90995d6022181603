"""Shared pytest configuration and fixtures."""

import fnmatch
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pytest

from bestats.collectors.categories import (
    AGENT_ENTITY,
    ENTITY_CACHE,
    TRANSACTION_MANAGER_REPORT,
)
from bestats.collectors.engine_collector import EngineCollector
from bestats.collectors.entity_filter import EntityFilter, InclusionRuleSet
from bestats.config.models import EngineEndpoint
from bestats.services.report_writer import ReportWriter
from bestats.sources.base import AttributeSource
from bestats.sources.object_name import ObjectName
from bestats.utils.errors import ConnectivityError, QueryError, ResetError
from bestats.utils.logger import setup_logger


def _matches(pattern: str, name: str) -> bool:
    """Object-name pattern match: same domain and keys, glob values."""
    if pattern == "*:*":
        return True
    pat = ObjectName.parse(pattern)
    obj = ObjectName.parse(name)
    if not fnmatch.fnmatchcase(obj.domain, pat.domain):
        return False
    pat_props, obj_props = pat.as_dict(), obj.as_dict()
    if set(pat_props) != set(obj_props):
        return False
    return all(fnmatch.fnmatchcase(obj_props[k], v) for k, v in pat_props.items())


class FakeAttributeSource(AttributeSource):
    """
    In-memory attribute source with failure injection.

    Attributes:
        objects: Object name -> attribute map
        fail_open: Make open() raise ConnectivityError
        query_failures: Pattern -> number of list calls that raise QueryError
        read_failures: Object name -> exception raised by get_attributes
        transient_read_failures: Object name -> exception raised by the next
            get_attributes call only
        fail_reset: Make invoke() raise ResetError
    """

    def __init__(self):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.fail_open = False
        self.query_failures: Dict[str, int] = {}
        self.read_failures: Dict[str, Exception] = {}
        self.transient_read_failures: Dict[str, Exception] = {}
        self.fail_reset = False

        self.open_calls = 0
        self.query_calls: List[str] = []
        self.read_calls: List[str] = []
        self.reset_calls: List[Tuple[str, str]] = []
        self._open = False

    def add(self, name: str, **attributes) -> None:
        self.objects[name] = attributes

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise ConnectivityError("connection refused")
        self._open = True

    def close(self) -> None:
        self._open = False

    def list_identifiers(self, pattern: str) -> List[ObjectName]:
        self._require_open()
        self.query_calls.append(pattern)
        if self.query_failures.get(pattern, 0) > 0:
            self.query_failures[pattern] -= 1
            raise QueryError(f"query {pattern} failed")
        return [ObjectName.parse(n) for n in self.objects if _matches(pattern, n)]

    def get_attributes(self, name: ObjectName) -> Dict[str, Any]:
        self._require_open()
        self.read_calls.append(str(name))
        error = self.transient_read_failures.pop(str(name), None) or self.read_failures.get(str(name))
        if error is not None:
            if isinstance(error, ConnectivityError):
                self._open = False
            raise error
        return dict(self.objects[str(name)])

    def invoke(self, name: ObjectName, operation: str) -> None:
        self._require_open()
        self.reset_calls.append((str(name), operation))
        if self.fail_reset:
            raise ResetError("reset rejected")

    def _require_open(self) -> None:
        if not self._open:
            raise ConnectivityError("not connected")


class MutableDay:
    """Callable date source that tests can move forward."""

    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------

@pytest.fixture
def logger():
    """Create logger for tests."""
    return setup_logger("test")


@pytest.fixture
def endpoint():
    """Remote engine endpoint."""
    return EngineEndpoint(name="inference-1", host="be-host", port=8778)


@pytest.fixture
def today():
    """Date source fixed at 2024-03-05 until a test moves it."""
    return MutableDay(date(2024, 3, 5))


@pytest.fixture
def report_dir(tmp_path):
    return tmp_path / "reports"


@pytest.fixture
def writer(endpoint, report_dir, today, logger):
    w = ReportWriter(endpoint, report_folder=str(report_dir), today=today, logger=logger)
    yield w
    w.close_all()


@pytest.fixture
def source():
    return FakeAttributeSource()


@pytest.fixture
def make_collector(endpoint, writer, source, logger):
    """Factory for an EngineCollector over the fake source."""
    def factory(categories=None, include: Optional[Dict[str, List[str]]] = None, ignore_internal=True):
        entity_filter = EntityFilter(
            InclusionRuleSet.from_patterns(include or {}),
            ignore_internal=ignore_internal
        )
        return EngineCollector(
            endpoint,
            categories or [ENTITY_CACHE, AGENT_ENTITY, TRANSACTION_MANAGER_REPORT],
            entity_filter,
            writer,
            logger,
            source=source
        )
    return factory


@pytest.fixture
def read_report(writer):
    """Return the lines of today's report file for a category."""
    def reader(category) -> List[str]:
        writer.flush(category)
        with open(writer.path(category), encoding="utf-8") as f:
            return f.read().splitlines()
    return reader
