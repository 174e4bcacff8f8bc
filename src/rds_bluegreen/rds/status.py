"""Status probers used as waiter refresh functions.

Each prober returns ``(record, status)``. An absent object is reported as
``(None, None)`` instead of an error so that deletion waits can treat absence
as success; every other describe failure propagates.
"""

from typing import Optional, Tuple

from rds_bluegreen.rds.find import (
    find_blue_green_deployment_by_id,
    find_db_cluster_by_id,
    find_db_instance_by_id,
)
from rds_bluegreen.rds.models import (
    BlueGreenDeployment,
    ClusterStatus,
    DBCluster,
    DBInstance,
    DeploymentStatus,
    InstanceStatus,
)
from rds_bluegreen.utils.errors import NotFoundError


def status_blue_green_deployment(
    rds_client, deployment_id: str
) -> Tuple[Optional[BlueGreenDeployment], Optional[DeploymentStatus]]:
    try:
        deployment = find_blue_green_deployment_by_id(rds_client, deployment_id)
    except NotFoundError:
        return None, None
    return deployment, deployment.status


def status_db_cluster(
    rds_client, cluster_id: str
) -> Tuple[Optional[DBCluster], Optional[ClusterStatus]]:
    try:
        cluster = find_db_cluster_by_id(rds_client, cluster_id)
    except NotFoundError:
        return None, None
    return cluster, cluster.status


def status_db_instance(
    rds_client, instance_id: str
) -> Tuple[Optional[DBInstance], Optional[InstanceStatus]]:
    try:
        instance = find_db_instance_by_id(rds_client, instance_id)
    except NotFoundError:
        return None, None
    return instance, instance.status
