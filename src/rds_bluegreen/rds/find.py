"""Finders that describe a single RDS object or raise NotFoundError."""

from typing import List

from rds_bluegreen.rds.models import BlueGreenDeployment, DBCluster, DBInstance
from rds_bluegreen.utils.errors import NotFoundError, is_aws_error
from rds_bluegreen.utils.logging import get_logger

logger = get_logger(__name__)

DEPLOYMENT_NOT_FOUND = 'BlueGreenDeploymentNotFoundFault'
CLUSTER_NOT_FOUND = 'DBClusterNotFoundFault'
INSTANCE_NOT_FOUND = 'DBInstanceNotFound'


def find_blue_green_deployment_by_id(rds_client, deployment_id: str) -> BlueGreenDeployment:
    """Describe one blue/green deployment by identifier.

    Raises:
        NotFoundError: If no such deployment exists
    """
    try:
        response = rds_client.describe_blue_green_deployments(
            BlueGreenDeploymentIdentifier=deployment_id
        )
    except Exception as e:
        if is_aws_error(e, DEPLOYMENT_NOT_FOUND):
            raise NotFoundError(
                f"blue/green deployment {deployment_id} not found", cause=e
            ) from e
        raise

    deployments = response.get('BlueGreenDeployments', [])
    if not deployments:
        raise NotFoundError(f"blue/green deployment {deployment_id} not found")

    return BlueGreenDeployment.from_api(deployments[0])


def find_blue_green_deployments_by_name(rds_client, name: str) -> List[BlueGreenDeployment]:
    """Describe every deployment whose name equals ``name``, across pages.

    Returns:
        Matching deployments; empty when nothing matches
    """
    deployments: List[BlueGreenDeployment] = []
    kwargs = {
        'Filters': [{'Name': 'blue-green-deployment-name', 'Values': [name]}],
    }

    while True:
        response = rds_client.describe_blue_green_deployments(**kwargs)
        deployments.extend(
            BlueGreenDeployment.from_api(item)
            for item in response.get('BlueGreenDeployments', [])
        )

        marker = response.get('Marker')
        if not marker:
            break
        kwargs['Marker'] = marker

    logger.debug(f"Found {len(deployments)} blue/green deployments named {name}")
    return deployments


def find_db_cluster_by_id(rds_client, cluster_id: str) -> DBCluster:
    """Describe a DB cluster by identifier or ARN.

    Raises:
        NotFoundError: If no such cluster exists
    """
    try:
        response = rds_client.describe_db_clusters(DBClusterIdentifier=cluster_id)
    except Exception as e:
        if is_aws_error(e, CLUSTER_NOT_FOUND):
            raise NotFoundError(f"DB cluster {cluster_id} not found", cause=e) from e
        raise

    clusters = response.get('DBClusters', [])
    if not clusters:
        raise NotFoundError(f"DB cluster {cluster_id} not found")

    cluster = DBCluster.from_api(clusters[0])

    # Describing by ARN returns the identifier, never the ARN, in the identifier slot
    if cluster_id not in (cluster.identifier, cluster.arn):
        raise NotFoundError(f"DB cluster {cluster_id} not found")

    return cluster


def find_db_instance_by_id(rds_client, instance_id: str) -> DBInstance:
    """Describe a DB instance by identifier.

    Raises:
        NotFoundError: If no such instance exists
    """
    try:
        response = rds_client.describe_db_instances(DBInstanceIdentifier=instance_id)
    except Exception as e:
        if is_aws_error(e, INSTANCE_NOT_FOUND):
            raise NotFoundError(f"DB instance {instance_id} not found", cause=e) from e
        raise

    instances = response.get('DBInstances', [])
    if not instances:
        raise NotFoundError(f"DB instance {instance_id} not found")

    return DBInstance.from_api(instances[0])
