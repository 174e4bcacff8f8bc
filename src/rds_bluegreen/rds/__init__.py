"""RDS records, finders, status probers, waiters and lifecycle operations."""

from rds_bluegreen.rds.models import (
    BlueGreenDeployment,
    ClusterMember,
    ClusterStatus,
    CreateBlueGreenDeploymentParams,
    DBCluster,
    DBInstance,
    DeploymentStatus,
    InstanceStatus,
    SwitchoverDetail,
    parse_db_cluster_arn,
)
from rds_bluegreen.rds.find import (
    find_blue_green_deployment_by_id,
    find_blue_green_deployments_by_name,
    find_db_cluster_by_id,
    find_db_instance_by_id,
)
from rds_bluegreen.rds.status import (
    status_blue_green_deployment,
    status_db_cluster,
    status_db_instance,
)
from rds_bluegreen.rds.wait import RDSWaiters
from rds_bluegreen.rds.lifecycle import ClusterLifecycle

__all__ = [
    'BlueGreenDeployment',
    'ClusterMember',
    'ClusterStatus',
    'CreateBlueGreenDeploymentParams',
    'DBCluster',
    'DBInstance',
    'DeploymentStatus',
    'InstanceStatus',
    'SwitchoverDetail',
    'parse_db_cluster_arn',
    'find_blue_green_deployment_by_id',
    'find_blue_green_deployments_by_name',
    'find_db_cluster_by_id',
    'find_db_instance_by_id',
    'status_blue_green_deployment',
    'status_db_cluster',
    'status_db_instance',
    'RDSWaiters',
    'ClusterLifecycle',
]
