"""Persisted state of a managed cluster blue/green resource."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ResourceState(BaseModel):
    """Attributes recorded after every Create, Read and Update."""

    name: str = Field(..., description="Resource name from configuration")
    id: str = Field(..., description="Tracked cluster identifier")
    arn: Optional[str] = Field(None, description="ARN of the tracked cluster")
    cluster_identifier: str
    cluster_members: List[str] = Field(default_factory=list)
    cluster_resource_id: Optional[str] = None
    engine: Optional[str] = None
    engine_version: Optional[str] = None
    deletion_protection: bool = False
    backup_retention_period: Optional[int] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    tags_all: Dict[str, str] = Field(default_factory=dict)
    deployment_identifier: Optional[str] = None
    deployment_status: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("cluster_members")
    @classmethod
    def sort_members(cls, v: List[str]) -> List[str]:
        """Members are a set; keep them sorted so equal sets compare equal."""
        return sorted(set(v))

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceState":
        return cls.model_validate(data)
