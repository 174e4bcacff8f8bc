"""Blue/green deployment operations against the RDS control plane."""

from typing import Optional

from rds_bluegreen.rds.find import (
    DEPLOYMENT_NOT_FOUND,
    find_blue_green_deployment_by_id,
    find_blue_green_deployments_by_name,
    find_db_cluster_by_id,
)
from rds_bluegreen.rds.lifecycle import ClusterLifecycle
from rds_bluegreen.rds.models import (
    BlueGreenDeployment,
    CreateBlueGreenDeploymentParams,
    DeploymentStatus,
    parse_db_cluster_arn,
)
from rds_bluegreen.rds.wait import RDSWaiters
from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import (
    NotFoundError,
    UnexpectedStateError,
    is_aws_error,
)
from rds_bluegreen.utils.logging import get_logger

logger = get_logger(__name__)

ALREADY_EXISTS = 'BlueGreenDeploymentAlreadyExistsFault'


def _created_at(deployment: BlueGreenDeployment) -> float:
    return deployment.create_time.timestamp() if deployment.create_time else 0.0


class BlueGreenOrchestrator:
    """Drives one blue/green deployment through its remote lifecycle.

    The orchestrator holds no per-deployment state; identifiers and the
    deadline are passed to every call so one instance can serve several
    resources at once.
    """

    def __init__(self, rds_client, waiters: RDSWaiters, lifecycle: ClusterLifecycle):
        """Initialize orchestrator.

        Args:
            rds_client: boto3 RDS client
            waiters: Waiters for deployments, clusters and instances
            lifecycle: Cluster and instance delete/modify operations
        """
        self.rds = rds_client
        self.waiters = waiters
        self.lifecycle = lifecycle

    def create_deployment(self, params: CreateBlueGreenDeploymentParams) -> str:
        """Create a blue/green deployment, adopting one that already exists.

        Args:
            params: Create call parameters

        Returns:
            Identifier of the created or adopted deployment

        Raises:
            NotFoundError: If the API reports a duplicate that cannot be found
        """
        logger.info(
            f"Creating blue/green deployment {params.name}",
            extra={'resource_id': params.name, 'operation': 'create_deployment'}
        )

        try:
            response = self.rds.create_blue_green_deployment(**params.to_api())
        except Exception as e:
            if not is_aws_error(e, ALREADY_EXISTS):
                raise

            logger.warning(
                f"Blue/green deployment {params.name} already exists, adopting it",
                extra={'resource_id': params.name}
            )
            existing = self.find_deployment(params.name)
            if existing is None:
                raise NotFoundError(
                    f"blue/green deployment {params.name} reported as existing but not found",
                    cause=e
                ) from e
            return existing.identifier

        deployment_id = response['BlueGreenDeployment']['BlueGreenDeploymentIdentifier']
        logger.info(
            f"Created blue/green deployment {deployment_id}",
            extra={'resource_id': params.name, 'deployment_id': deployment_id}
        )
        return deployment_id

    def find_deployment(self, name: str) -> Optional[BlueGreenDeployment]:
        """Find the active deployment with the given name.

        Deployments being deleted are ignored. When several remain, the
        newest by creation time wins.
        """
        active = [
            deployment
            for deployment in find_blue_green_deployments_by_name(self.rds, name)
            if deployment.status != DeploymentStatus.DELETING
        ]

        if not active:
            return None

        if len(active) > 1:
            logger.warning(
                f"Found {len(active)} blue/green deployments named {name}; "
                f"using the newest",
                extra={'resource_id': name}
            )

        return max(active, key=_created_at)

    def describe_deployment(self, deployment_id: str) -> Optional[BlueGreenDeployment]:
        """Fresh describe of a deployment; None when it no longer exists."""
        try:
            return find_blue_green_deployment_by_id(self.rds, deployment_id)
        except NotFoundError:
            return None

    def wait_for_available(self, deployment_id: str, deadline: Deadline) -> BlueGreenDeployment:
        logger.info(
            f"Waiting for blue/green deployment {deployment_id} to become available",
            extra={'deployment_id': deployment_id, 'operation': 'wait_available'}
        )
        return self.waiters.deployment_available(deployment_id, deadline.remaining(), deadline)

    def switchover(self, deployment_id: str, deadline: Deadline) -> bool:
        """Request the switchover of a deployment.

        The request is skipped when a fresh describe shows the switchover in
        progress or already completed. A deployment still provisioning is
        waited on first.

        Returns:
            True if a switchover request was issued

        Raises:
            NotFoundError: If the deployment no longer exists
            UnexpectedStateError: If the deployment is in a failed state
        """
        deployment = self.describe_deployment(deployment_id)
        if deployment is None:
            raise NotFoundError(f"blue/green deployment {deployment_id} not found")

        if deployment.status in (
            DeploymentStatus.SWITCHOVER_IN_PROGRESS,
            DeploymentStatus.SWITCHOVER_COMPLETED,
        ):
            logger.info(
                f"Blue/green deployment {deployment_id} is {deployment.status.value}, "
                f"not requesting switchover",
                extra={'deployment_id': deployment_id}
            )
            return False

        if deployment.status == DeploymentStatus.PROVISIONING:
            self.wait_for_available(deployment_id, deadline)
        elif deployment.status != DeploymentStatus.AVAILABLE:
            raise UnexpectedStateError(
                deployment.status.value,
                expected=[DeploymentStatus.AVAILABLE.value],
                detail=deployment.status_details
            )

        logger.info(
            f"Switching over blue/green deployment {deployment_id}",
            extra={'deployment_id': deployment_id, 'operation': 'switchover'}
        )
        self.rds.switchover_blue_green_deployment(BlueGreenDeploymentIdentifier=deployment_id)
        return True

    def wait_for_switchover_completed(
        self, deployment_id: str, deadline: Deadline
    ) -> BlueGreenDeployment:
        logger.info(
            f"Waiting for blue/green deployment {deployment_id} switchover to complete",
            extra={'deployment_id': deployment_id, 'operation': 'wait_switchover_completed'}
        )
        return self.waiters.deployment_switchover_completed(
            deployment_id, deadline.remaining(), deadline
        )

    def cleanup_source(self, deployment_id: str, deadline: Deadline) -> bool:
        """Delete the old source cluster and the deployment record.

        Runs only when a fresh describe confirms SWITCHOVER_COMPLETED. Member
        instances go first, one at a time, then the cluster, then the record.
        A source cluster that is already gone skips straight to the record.

        Returns:
            True if cleanup ran, False if the guard made it a no-op
        """
        deployment = self.describe_deployment(deployment_id)

        if deployment is None or deployment.status != DeploymentStatus.SWITCHOVER_COMPLETED:
            status = deployment.status.value if deployment else 'absent'
            logger.info(
                f"Blue/green deployment {deployment_id} is {status}, skipping source cleanup",
                extra={'deployment_id': deployment_id, 'operation': 'cleanup_source'}
            )
            return False

        logger.info(
            f"Cleaning up source of blue/green deployment {deployment_id}: {deployment.source}",
            extra={'deployment_id': deployment_id, 'operation': 'cleanup_source'}
        )

        source = None
        if deployment.source:
            source_id = parse_db_cluster_arn(deployment.source)
            try:
                source = find_db_cluster_by_id(self.rds, source_id)
            except NotFoundError:
                logger.info(f"Source cluster {source_id} already deleted")

        if source is not None:
            self.lifecycle.delete_cluster_members(source, deadline)
            self.lifecycle.delete_cluster(source.identifier, deadline, delay=0)

        self.delete_deployment(deployment_id, deadline, delay=0)
        return True

    def delete_deployment(
        self, deployment_id: str, deadline: Deadline, delay: Optional[float] = None
    ) -> None:
        """Delete the deployment record, keeping the target, and wait until it is gone."""
        logger.info(
            f"Deleting blue/green deployment {deployment_id}",
            extra={'deployment_id': deployment_id, 'operation': 'delete_deployment'}
        )

        try:
            self.rds.delete_blue_green_deployment(
                BlueGreenDeploymentIdentifier=deployment_id,
                DeleteTarget=False
            )
        except Exception as e:
            if is_aws_error(e, DEPLOYMENT_NOT_FOUND):
                logger.info(f"Blue/green deployment {deployment_id} already deleted")
                return
            raise

        self.waiters.deployment_deleted(deployment_id, deadline.remaining(), deadline, delay=delay)
