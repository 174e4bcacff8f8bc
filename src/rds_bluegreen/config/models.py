"""Pydantic models for configuration schema."""

import re
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

# Engines accepted for a cluster; only these may run a blue/green deployment
VALID_ENGINES = ["aurora", "aurora-mysql", "aurora-postgresql", "mysql", "postgres"]
BLUE_GREEN_ENGINES = ["aurora-mysql"]

DEFAULT_TIMEOUT = 120 * 60.0

_IDENTIFIER = re.compile(r"^[a-z][0-9a-z-]*$")
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0}


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration such as ``"120m"``, ``"1h30m"`` or ``"45s"`` into seconds.

    Bare numbers are taken as seconds.

    Raises:
        ValueError: If the string is not a duration
    """
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value}")
        return float(value)

    text = str(value).strip()
    if not text:
        raise ValueError("Duration must not be empty")

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"Invalid duration: {value!r} (use e.g. '120m', '1h30m', '45s')")
    return total


def validate_cluster_identifier(value: str) -> str:
    """Validate a DB cluster identifier.

    Raises:
        ValueError: If the identifier breaks the RDS naming rules
    """
    if len(value) > 63:
        raise ValueError(f"Cluster identifier exceeds 63 characters: {value}")
    if not _IDENTIFIER.match(value):
        raise ValueError(
            "Cluster identifier must start with a letter and contain only "
            f"lowercase alphanumeric characters and hyphens: {value}"
        )
    if "--" in value:
        raise ValueError(f"Cluster identifier cannot contain two consecutive hyphens: {value}")
    if value.endswith("-"):
        raise ValueError(f"Cluster identifier cannot end with a hyphen: {value}")
    return value


def validate_tag_map(v: Dict[str, str]) -> Dict[str, str]:
    """Validate tag keys and values."""
    for key, value in v.items():
        if not key or not isinstance(key, str):
            raise ValueError(f"Tag key must be a non-empty string: {key}")
        if not isinstance(value, str):
            raise ValueError(f"Tag value must be a string for key '{key}': {value}")
        if len(key) > 128:
            raise ValueError(f"Tag key exceeds 128 characters: {key}")
        if len(value) > 256:
            raise ValueError(f"Tag value exceeds 256 characters for key '{key}'")
    return v


class TimeoutsConfig(BaseModel):
    """Per-operation time budgets, in seconds once parsed."""

    create: float = DEFAULT_TIMEOUT
    update: float = DEFAULT_TIMEOUT
    delete: float = DEFAULT_TIMEOUT

    @field_validator("create", "update", "delete", mode="before")
    @classmethod
    def validate_duration(cls, v: Union[str, int, float]) -> float:
        return parse_duration(v)


class WaiterConfig(BaseModel):
    """Polling cadence for remote status waits."""

    poll_interval: float = Field(10.0, gt=0)
    delay: float = Field(60.0, ge=0)
    not_found_checks: int = Field(20, ge=0)
    delete_retry_timeout: float = Field(300.0, gt=0)

    @field_validator("poll_interval", "delay", "delete_retry_timeout", mode="before")
    @classmethod
    def validate_duration(cls, v: Union[str, int, float]) -> float:
        return parse_duration(v)


class ProviderConfig(BaseModel):
    """AWS connection settings shared by every resource."""

    region: Optional[str] = Field(None, pattern="^[a-z]{2}(-[a-z]+)+-\\d$")
    profile: Optional[str] = None
    default_tags: Dict[str, str] = Field(default_factory=dict)
    max_parallel: int = Field(4, ge=1, le=32)
    waiters: WaiterConfig = Field(default_factory=WaiterConfig)

    @field_validator("default_tags")
    @classmethod
    def validate_default_tags(cls, v: Dict[str, str]) -> Dict[str, str]:
        return validate_tag_map(v)


class ClusterBlueGreenConfig(BaseModel):
    """Desired configuration of one cluster blue/green resource."""

    name: Optional[str] = Field(None, min_length=1, max_length=64, pattern="^[a-z0-9-]+$")
    cluster_identifier: str = Field(..., min_length=1)
    engine: str = Field(..., min_length=1)
    engine_version: Optional[str] = None
    target_db_cluster_parameter_group_name: Optional[str] = None
    create_deployment: bool = False
    switchover_enabled: bool = False
    cleanup_resources: bool = False
    deletion_protection: bool = False
    backup_retention_period: int = Field(1, ge=0, le=35)
    apply_immediately: bool = False
    tags: Dict[str, str] = Field(default_factory=dict)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)

    @field_validator("cluster_identifier")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        return validate_cluster_identifier(v)

    @field_validator("engine")
    @classmethod
    def validate_engine(cls, v: str) -> str:
        """Validate the engine name."""
        if v in VALID_ENGINES or v.startswith("custom-"):
            return v
        raise ValueError(
            f"Invalid engine: {v}. Must be one of: {', '.join(VALID_ENGINES)} "
            "or start with 'custom-'"
        )

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Dict[str, str]) -> Dict[str, str]:
        return validate_tag_map(v)

    @model_validator(mode="after")
    def default_name(self):
        """Name the resource after its cluster unless named explicitly."""
        if not self.name:
            self.name = self.cluster_identifier
        return self

    @property
    def supports_blue_green(self) -> bool:
        return self.engine in BLUE_GREEN_ENGINES


class BlueGreenProjectConfig(BaseModel):
    """Top-level configuration file contents."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    resources: List[ClusterBlueGreenConfig] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_unique_resources(self):
        """Resource names and cluster identifiers must be unique."""
        names = [resource.name for resource in self.resources]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate resource names: {', '.join(duplicates)}")

        clusters = [resource.cluster_identifier for resource in self.resources]
        duplicates = sorted({cluster for cluster in clusters if clusters.count(cluster) > 1})
        if duplicates:
            raise ValueError(
                f"Clusters managed by more than one resource: {', '.join(duplicates)}"
            )
        return self
