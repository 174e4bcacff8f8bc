"""Typed records for the RDS objects a blue/green workflow touches."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer

from rds_bluegreen.utils.errors import UnknownStatusError, ValidationError


class _ParsedStatus(str, Enum):
    """Base for status enums parsed from raw API strings."""

    @classmethod
    def parse(cls, raw: Optional[str]):
        """Convert a raw API status string into a member.

        Raises:
            UnknownStatusError: If the string is not a modelled status
        """
        try:
            return cls(raw)
        except ValueError:
            raise UnknownStatusError(str(raw), kind=cls.kind()) from None

    @classmethod
    def kind(cls) -> str:
        return cls.__name__


class DeploymentStatus(_ParsedStatus):
    """Blue/green deployment status."""

    @classmethod
    def kind(cls) -> str:
        return 'blue/green deployment'

    PROVISIONING = 'PROVISIONING'
    AVAILABLE = 'AVAILABLE'
    SWITCHOVER_IN_PROGRESS = 'SWITCHOVER_IN_PROGRESS'
    SWITCHOVER_COMPLETED = 'SWITCHOVER_COMPLETED'
    INVALID_CONFIGURATION = 'INVALID_CONFIGURATION'
    SWITCHOVER_FAILED = 'SWITCHOVER_FAILED'
    DELETING = 'DELETING'

    @property
    def is_failed(self) -> bool:
        return self in (DeploymentStatus.INVALID_CONFIGURATION, DeploymentStatus.SWITCHOVER_FAILED)


class ClusterStatus(_ParsedStatus):
    """DB cluster status."""

    @classmethod
    def kind(cls) -> str:
        return 'DB cluster'

    AVAILABLE = 'available'
    BACKING_UP = 'backing-up'
    BACKTRACKING = 'backtracking'
    CLONING_FAILED = 'cloning-failed'
    CONFIGURING_IAM_DATABASE_AUTH = 'configuring-iam-database-auth'
    CREATING = 'creating'
    DELETING = 'deleting'
    FAILING_OVER = 'failing-over'
    INACCESSIBLE_ENCRYPTION_CREDENTIALS = 'inaccessible-encryption-credentials'
    INACCESSIBLE_ENCRYPTION_CREDENTIALS_RECOVERABLE = 'inaccessible-encryption-credentials-recoverable'
    MAINTENANCE = 'maintenance'
    MIGRATING = 'migrating'
    MIGRATION_FAILED = 'migration-failed'
    MODIFYING = 'modifying'
    PREPARING_DATA_MIGRATION = 'preparing-data-migration'
    PROMOTING = 'promoting'
    REBOOTING = 'rebooting'
    RENAMING = 'renaming'
    RESETTING_MASTER_CREDENTIALS = 'resetting-master-credentials'
    SCALING_COMPUTE = 'scaling-compute'
    STARTING = 'starting'
    STOPPED = 'stopped'
    STOPPING = 'stopping'
    STORAGE_CONFIG_UPGRADE = 'storage-config-upgrade'
    STORAGE_OPTIMIZATION = 'storage-optimization'
    UPDATE_IOPS = 'update-iops'
    UPGRADING = 'upgrading'


class InstanceStatus(_ParsedStatus):
    """DB instance status."""

    @classmethod
    def kind(cls) -> str:
        return 'DB instance'

    AVAILABLE = 'available'
    BACKING_UP = 'backing-up'
    CONFIGURING_ENHANCED_MONITORING = 'configuring-enhanced-monitoring'
    CONFIGURING_IAM_DATABASE_AUTH = 'configuring-iam-database-auth'
    CONFIGURING_LOG_EXPORTS = 'configuring-log-exports'
    CONVERTING_TO_VPC = 'converting-to-vpc'
    CREATING = 'creating'
    DELETE_PRECHECK = 'delete-precheck'
    DELETING = 'deleting'
    FAILED = 'failed'
    INACCESSIBLE_ENCRYPTION_CREDENTIALS = 'inaccessible-encryption-credentials'
    INACCESSIBLE_ENCRYPTION_CREDENTIALS_RECOVERABLE = 'inaccessible-encryption-credentials-recoverable'
    INCOMPATIBLE_NETWORK = 'incompatible-network'
    INCOMPATIBLE_OPTION_GROUP = 'incompatible-option-group'
    INCOMPATIBLE_PARAMETERS = 'incompatible-parameters'
    INCOMPATIBLE_RESTORE = 'incompatible-restore'
    INSUFFICIENT_CAPACITY = 'insufficient-capacity'
    MAINTENANCE = 'maintenance'
    MODIFYING = 'modifying'
    MOVING_TO_VPC = 'moving-to-vpc'
    REBOOTING = 'rebooting'
    RENAMING = 'renaming'
    RESETTING_MASTER_CREDENTIALS = 'resetting-master-credentials'
    RESTORE_ERROR = 'restore-error'
    STARTING = 'starting'
    STOPPED = 'stopped'
    STOPPING = 'stopping'
    STORAGE_CONFIG_UPGRADE = 'storage-config-upgrade'
    STORAGE_FULL = 'storage-full'
    STORAGE_INITIALIZATION = 'storage-initialization'
    STORAGE_OPTIMIZATION = 'storage-optimization'
    UPGRADING = 'upgrading'


_CLUSTER_ARN = re.compile(r'^arn:aws[a-z-]*:rds:[a-z0-9-]+:\d{12}:cluster:([0-9a-z-]+)$')


def parse_db_cluster_arn(arn: str) -> str:
    """Return the cluster identifier embedded in a DB cluster ARN.

    Raises:
        ValidationError: If the string is not a DB cluster ARN
    """
    match = _CLUSTER_ARN.match(arn or '')
    if match is None:
        raise ValidationError(f"DB Cluster ARN ({arn}): invalid resource section")
    return match.group(1)


def tags_from_api(tag_list: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {tag['Key']: tag['Value'] for tag in tag_list or []}


def tags_to_api(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{'Key': key, 'Value': value} for key, value in sorted(tags.items())]


@dataclass
class SwitchoverDetail:
    """Per-member switchover progress."""
    source_member: Optional[str]
    target_member: Optional[str]
    status: Optional[str]


@dataclass
class BlueGreenDeployment:
    """One described blue/green deployment, kept together as a unit."""
    identifier: str
    name: str
    status: DeploymentStatus
    source: Optional[str] = None
    target: Optional[str] = None
    status_details: Optional[str] = None
    create_time: Optional[datetime] = None
    switchover_details: List[SwitchoverDetail] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BlueGreenDeployment":
        return cls(
            identifier=data['BlueGreenDeploymentIdentifier'],
            name=data.get('BlueGreenDeploymentName', ''),
            status=DeploymentStatus.parse(data.get('Status')),
            source=data.get('Source'),
            target=data.get('Target'),
            status_details=data.get('StatusDetails'),
            create_time=data.get('CreateTime'),
            switchover_details=[
                SwitchoverDetail(
                    source_member=detail.get('SourceMember'),
                    target_member=detail.get('TargetMember'),
                    status=detail.get('Status'),
                )
                for detail in data.get('SwitchoverDetails', [])
            ],
            tags=tags_from_api(data.get('TagList')),
        )


@dataclass
class ClusterMember:
    """An instance belonging to a DB cluster."""
    instance_identifier: str
    is_writer: bool = False


@dataclass
class DBCluster:
    """A described DB cluster."""
    identifier: str
    arn: str
    status: ClusterStatus
    resource_id: Optional[str] = None
    engine: Optional[str] = None
    engine_version: Optional[str] = None
    members: List[ClusterMember] = field(default_factory=list)
    deletion_protection: bool = False
    backup_retention_period: Optional[int] = None
    parameter_group: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def member_identifiers(self) -> List[str]:
        return sorted(member.instance_identifier for member in self.members)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DBCluster":
        return cls(
            identifier=data['DBClusterIdentifier'],
            arn=data.get('DBClusterArn', ''),
            status=ClusterStatus.parse(data.get('Status')),
            resource_id=data.get('DbClusterResourceId'),
            engine=data.get('Engine'),
            engine_version=data.get('EngineVersion'),
            members=[
                ClusterMember(
                    instance_identifier=member['DBInstanceIdentifier'],
                    is_writer=member.get('IsClusterWriter', False),
                )
                for member in data.get('DBClusterMembers', [])
            ],
            deletion_protection=data.get('DeletionProtection', False),
            backup_retention_period=data.get('BackupRetentionPeriod'),
            parameter_group=data.get('DBClusterParameterGroup'),
            tags=tags_from_api(data.get('TagList')),
        )


@dataclass
class DBInstance:
    """A described DB instance."""
    identifier: str
    status: InstanceStatus
    arn: Optional[str] = None
    cluster_identifier: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DBInstance":
        return cls(
            identifier=data['DBInstanceIdentifier'],
            status=InstanceStatus.parse(data.get('DBInstanceStatus')),
            arn=data.get('DBInstanceArn'),
            cluster_identifier=data.get('DBClusterIdentifier'),
        )


class CreateBlueGreenDeploymentParams(BaseModel):
    """Parameters of the CreateBlueGreenDeployment call."""

    name: str = Field(serialization_alias="BlueGreenDeploymentName")
    source_arn: str = Field(serialization_alias="Source")
    engine_version: Optional[str] = Field(
        serialization_alias="TargetEngineVersion", default=None
    )
    cluster_parameter_group_name: Optional[str] = Field(
        serialization_alias="TargetDBClusterParameterGroupName", default=None
    )
    tags: Optional[Dict[str, str]] = Field(serialization_alias="Tags", default=None)

    @field_serializer("tags")
    def serialize_tags(self, tags: Optional[Dict[str, str]]) -> Optional[List[Dict[str, str]]]:
        """Serialize tags as AWS API format"""
        if not tags:
            return None
        return tags_to_api(tags)

    def to_api(self) -> Dict[str, Any]:
        """Keyword arguments for ``create_blue_green_deployment``."""
        return self.model_dump(by_alias=True, exclude_none=True)
