"""Metric categories: what to query, how to name entities, and the CSV schema."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..sources.object_name import ObjectName
from ..utils.errors import ConfigurationError

GENERATED_PREFIX = "be.gen."
TIMESTAMP_ATTRIBUTE = "DateTime"

DisplayNameRule = Callable[[ObjectName, Mapping[str, Any]], Optional[str]]


def strip_generated_prefix(name: Optional[str]) -> Optional[str]:
    """Drop the namespace prefix of generated concept/event classes."""
    if name is not None and name.startswith(GENERATED_PREFIX):
        return name[len(GENERATED_PREFIX):]
    return name


def format_value(value: Any) -> str:
    """Render one attribute value as a CSV token; absent values become ``null``."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class MetricCategory:
    """
    One report kind.

    Attributes:
        name: Canonical name, also used in report filenames
        query: Object-name pattern selecting this category's objects
        columns: Ordered attribute keys written to each row
        object_column: Prefix the header with an ``Object`` column; when
            False the first column is the identifier column itself
        display_name: Rule deriving the row name from identifier/attributes
        reset_operation: Operation invoked after each successful read, for
            categories reporting deltas since the last read
        aliases: Alternative names accepted in configuration
    """

    name: str
    query: str
    columns: Tuple[str, ...]
    object_column: bool
    display_name: DisplayNameRule
    reset_operation: Optional[str] = None
    aliases: Tuple[str, ...] = ()

    @property
    def is_delta(self) -> bool:
        return self.reset_operation is not None

    @property
    def value_columns(self) -> Tuple[str, ...]:
        """Columns serialized from attributes, after the name column."""
        return self.columns if self.object_column else self.columns[1:]

    def header(self) -> str:
        cols = ("Object",) + self.columns if self.object_column else self.columns
        return ",".join(cols) + "\n"

    def serialize(self, name: str, attributes: Mapping[str, Any]) -> str:
        values = [format_value(attributes.get(col)) for col in self.value_columns]
        return ",".join([name] + values) + "\n"

    def empty_message(self) -> str:
        return f"Entity list for {self.name} is empty\n"


def _cache_class_name(identifier: ObjectName, attributes: Mapping[str, Any]) -> Optional[str]:
    name = attributes.get("ClassName")
    return strip_generated_prefix(str(name)) if name is not None else None


def _agent_entity_id(identifier: ObjectName, attributes: Mapping[str, Any]) -> Optional[str]:
    return strip_generated_prefix(identifier.key_property("entityId"))


def _txn_report_name(identifier: ObjectName, attributes: Mapping[str, Any]) -> Optional[str]:
    return "RTCTxnManagerReport"


ENTITY_CACHE = MetricCategory(
    name="EntityCache",
    aliases=("BEEntityCache",),
    query="com.tibco.be:service=Cache,name=*",
    columns=(
        "ClassName", "DateTime", "CacheSize", "GetAvgTime", "GetCount",
        "NumHandlesInStore", "PutAvgTime", "PutCount", "RemoveAvgTime",
        "RemoveCount", "TypeId",
    ),
    object_column=False,
    display_name=_cache_class_name,
)

AGENT_ENTITY = MetricCategory(
    name="AgentEntity",
    aliases=("BEAgentEntity",),
    query="com.tibco.be:type=Agent,agentId=*,subType=Entity,entityId=*",
    columns=(
        "DateTime", "AvgTimeInRTC", "AvgTimePostRTC", "AvgTimePreRTC",
        "CacheMode", "NumAssertedFromAgents", "NumAssertedFromChannel",
        "NumHitsInL1Cache", "NumMissesInL1Cache", "NumModifiedFromAgents",
        "NumModifiedFromChannel", "NumRecovered", "NumRetractedFromAgents",
        "NumRetractedFromChannel",
    ),
    object_column=True,
    display_name=_agent_entity_id,
)

TRANSACTION_MANAGER_REPORT = MetricCategory(
    name="TransactionManagerReport",
    aliases=("RTCTxnManagerReport",),
    query="com.tibco.be:service=RTCTxnManagerReport",
    columns=(
        "DateTime", "AvgActionTxnMillis", "AvgCacheQueueWaitTimeMillis",
        "AvgCacheTxnMillis", "AvgDBOpsBatchSize", "AvgDBQueueWaitTimeMillis",
        "AvgDBTxnMillis", "AvgSuccessfulTxnTimeMillis", "LastDBBatchSize",
        "PendingActions", "PendingCacheWrites", "PendingDBWrites",
        "PendingEventsToAck", "PendingLocksToRelease", "TotalDBTxnsCompleted",
        "TotalErrors", "TotalSuccessfulTxns",
    ),
    object_column=True,
    display_name=_txn_report_name,
    reset_operation="resetStats",
)

CATEGORIES: Dict[str, MetricCategory] = {
    c.name: c for c in (ENTITY_CACHE, AGENT_ENTITY, TRANSACTION_MANAGER_REPORT)
}


def resolve_category(name: str) -> MetricCategory:
    """
    Look up a category by canonical name or alias.

    Raises:
        ConfigurationError: If no category has that name
    """
    if name in CATEGORIES:
        return CATEGORIES[name]
    for category in CATEGORIES.values():
        if name in category.aliases:
            return category
    known = ", ".join(CATEGORIES)
    raise ConfigurationError(f"Unknown report type {name!r} (known: {known})")
