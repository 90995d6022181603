"""Pydantic configuration models for the stats collector."""

import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..collectors.categories import CATEGORIES, MetricCategory, resolve_category
from ..collectors.entity_filter import InclusionRuleSet
from ..utils.errors import ConfigurationError


class EngineEndpoint(BaseModel):
    """Identity of one monitored engine. Immutable once validated."""

    model_config = ConfigDict(frozen=True)

    name: str = "BE"
    host: str = "localhost"
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    pid: Optional[int] = Field(default=None, ge=1)
    username: Optional[str] = None
    password: Optional[str] = None
    scheme: str = "http"
    path: str = "/jolokia"

    @model_validator(mode="before")
    @classmethod
    def apply_defaults(cls, data):
        """Drop blank credentials and derive a default engine name."""
        if isinstance(data, dict):
            data = dict(data)
            # Authentication is only used when both user and password are set
            user = str(data.get("username") or "").strip()
            passwd = str(data.get("password") or "").strip()
            if not user or not passwd:
                data["username"] = None
                data["password"] = None
            if not data.get("name"):
                data["name"] = f"PID-{data['pid']}" if data.get("pid") else "BE"
        return data

    @model_validator(mode="after")
    def check_identity(self) -> "EngineEndpoint":
        """Exactly one of port or pid identifies the engine."""
        if (self.port is None) == (self.pid is None):
            raise ValueError("engine needs exactly one of 'port' or 'pid'")
        return self

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        if v not in ("http", "https"):
            raise ValueError("scheme must be http or https")
        return v

    @property
    def is_local(self) -> bool:
        return self.pid is not None

    @property
    def key(self) -> str:
        """Deduplication key: host:port or pid."""
        return f"pid:{self.pid}" if self.is_local else f"{self.host}:{self.port}"

    @property
    def label(self) -> str:
        return self.name if self.is_local else f"{self.name}@{self.host}:{self.port}"

    def filename_parts(self) -> Tuple[str, ...]:
        if self.is_local:
            return (self.name,)
        return (self.name, self.host, str(self.port))


class MonitoringConfig(BaseModel):
    """Polling and output configuration."""
    interval_seconds: int = Field(default=60, ge=1)
    report_folder: str = "."
    ignore_internal_entities: bool = True
    include_year_in_filename: bool = False
    shutdown_grace_seconds: float = Field(default=30.0, gt=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)


class CollectorSystemConfig(BaseModel):
    """Root configuration model for the collector."""
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    engines: List[EngineEndpoint] = Field(default_factory=list)
    reports: List[str] = Field(default_factory=lambda: list(CATEGORIES))
    include: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("engines")
    @classmethod
    def dedupe_engines(cls, v: List[EngineEndpoint]) -> List[EngineEndpoint]:
        """Keep the first engine configured for each host:port or pid."""
        seen = set()
        unique = []
        for endpoint in v:
            if endpoint.key not in seen:
                seen.add(endpoint.key)
                unique.append(endpoint)
        return unique

    @field_validator("reports")
    @classmethod
    def validate_reports(cls, v: List[str]) -> List[str]:
        """Normalize report names (aliases allowed), keeping order, no repeats."""
        names = []
        for raw in v:
            name = raw.strip()
            if not name:
                continue
            try:
                canonical = resolve_category(name).name
            except ConfigurationError as e:
                raise ValueError(str(e)) from e
            if canonical not in names:
                names.append(canonical)
        return names

    @field_validator("include")
    @classmethod
    def validate_include(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        """Inclusion keys must be known categories and patterns must compile."""
        normalized: Dict[str, List[str]] = {}
        for raw_name, patterns in v.items():
            try:
                name = resolve_category(raw_name).name
            except ConfigurationError as e:
                raise ValueError(str(e)) from e
            cleaned = [p.strip() for p in patterns or [] if p and p.strip()]
            for pattern in cleaned:
                try:
                    re.compile(pattern)
                except re.error as e:
                    raise ValueError(f"invalid include pattern {pattern!r} for {name}: {e}") from e
            normalized.setdefault(name, []).extend(cleaned)
        return normalized

    def categories(self) -> List[MetricCategory]:
        return [resolve_category(name) for name in self.reports]

    def inclusion_rules(self) -> InclusionRuleSet:
        return InclusionRuleSet.from_patterns(self.include)
