"""Entity inclusion and exclusion rules."""

import re
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Pattern, Tuple

# Bookkeeping objects the engine keeps per entity type
INTERNAL_SUFFIX = "--ObjectTableIds"
# Namespace of the engine's own runtime model classes
INTERNAL_NAMESPACE = "com.tibco.cep.runtime.model"


class InclusionRuleSet:
    """Per-category inclusion patterns. Immutable once built."""

    def __init__(self, rules: Optional[Mapping[str, Tuple[Pattern[str], ...]]] = None):
        self._rules = MappingProxyType(dict(rules or {}))

    @classmethod
    def from_patterns(cls, patterns: Mapping[str, Iterable[str]]) -> "InclusionRuleSet":
        """Compile pattern strings keyed by category name."""
        return cls({
            category: tuple(re.compile(p) for p in items)
            for category, items in patterns.items()
        })

    def patterns_for(self, category: str) -> Tuple[Pattern[str], ...]:
        return self._rules.get(category, ())

    def __contains__(self, category: str) -> bool:
        return bool(self._rules.get(category))

    def __repr__(self) -> str:
        summary = {k: [p.pattern for p in v] for k, v in self._rules.items()}
        return f"InclusionRuleSet({summary})"


class EntityFilter:
    """
    Decides whether an entity is reported.

    First match wins:
    1. internal bookkeeping objects are always rejected;
    2. runtime-model classes are rejected when ignore_internal is set;
    3. a category without patterns accepts everything else;
    4. otherwise the name must fully match one of the category's patterns.
    """

    def __init__(self, rules: Optional[InclusionRuleSet] = None, ignore_internal: bool = True):
        self.rules = rules or InclusionRuleSet()
        self.ignore_internal = ignore_internal

    def is_included(self, name: str, category: str) -> bool:
        if name.endswith(INTERNAL_SUFFIX):
            return False
        if self.ignore_internal and INTERNAL_NAMESPACE in name:
            return False

        patterns = self.rules.patterns_for(category)
        if not patterns:
            return True
        return any(p.fullmatch(name) for p in patterns)
