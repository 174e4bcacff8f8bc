"""RDS-specific waiters built on the generic state-change waiter."""

from typing import Iterable, Optional

from rds_bluegreen.rds.models import (
    BlueGreenDeployment,
    ClusterStatus,
    DBCluster,
    DeploymentStatus,
    InstanceStatus,
)
from rds_bluegreen.rds.status import (
    status_blue_green_deployment,
    status_db_cluster,
    status_db_instance,
)
from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.logging import get_logger
from rds_bluegreen.utils.waiter import StateChangeWaiter, WaiterOptions

logger = get_logger(__name__)

CLUSTER_TRANSITIONAL_STATUSES = (
    ClusterStatus.BACKING_UP,
    ClusterStatus.CONFIGURING_IAM_DATABASE_AUTH,
    ClusterStatus.CREATING,
    ClusterStatus.DELETING,
    ClusterStatus.MIGRATING,
    ClusterStatus.MODIFYING,
    ClusterStatus.PREPARING_DATA_MIGRATION,
    ClusterStatus.REBOOTING,
    ClusterStatus.RENAMING,
    ClusterStatus.RESETTING_MASTER_CREDENTIALS,
    ClusterStatus.SCALING_COMPUTE,
    ClusterStatus.UPGRADING,
)


def _status_details(deployment: BlueGreenDeployment) -> Optional[str]:
    return deployment.status_details


class RDSWaiters:
    """Named waits for deployments, clusters and instances.

    Every method takes the wait's own ``timeout`` and the enclosing
    ``deadline``; the effective budget is the smaller of the two. ``delay``
    overrides the initial delay for a single call.
    """

    def __init__(self, rds_client, options: Optional[WaiterOptions] = None):
        """Initialize waiters.

        Args:
            rds_client: boto3 RDS client
            options: Default polling cadence for every wait
        """
        self.rds = rds_client
        self.options = options or WaiterOptions()

    def _wait(
        self,
        description: str,
        pending: Iterable,
        target: Iterable,
        refresh,
        timeout: float,
        deadline: Deadline,
        delay: Optional[float],
        continuous_target_occurence: Optional[int] = None,
        failure_detail=None
    ):
        options = self.options.with_delay(delay)
        if continuous_target_occurence is not None:
            options = WaiterOptions(
                poll_interval=options.poll_interval,
                delay=options.delay,
                continuous_target_occurence=continuous_target_occurence,
                not_found_checks=options.not_found_checks,
            )

        waiter = StateChangeWaiter(
            pending=pending,
            target=target,
            refresh=refresh,
            timeout=timeout,
            options=options,
            failure_detail=failure_detail,
            description=description,
        )
        return waiter.wait(deadline)

    def deployment_available(
        self, deployment_id: str, timeout: float, deadline: Deadline, delay: Optional[float] = None
    ) -> BlueGreenDeployment:
        return self._wait(
            f"blue/green deployment {deployment_id}",
            pending=[DeploymentStatus.PROVISIONING],
            target=[DeploymentStatus.AVAILABLE],
            refresh=lambda: status_blue_green_deployment(self.rds, deployment_id),
            timeout=timeout,
            deadline=deadline,
            delay=delay,
            failure_detail=_status_details,
        )

    def deployment_switchover_completed(
        self, deployment_id: str, timeout: float, deadline: Deadline, delay: Optional[float] = None
    ) -> BlueGreenDeployment:
        return self._wait(
            f"blue/green deployment {deployment_id} switchover",
            pending=[DeploymentStatus.SWITCHOVER_IN_PROGRESS],
            target=[DeploymentStatus.SWITCHOVER_COMPLETED],
            refresh=lambda: status_blue_green_deployment(self.rds, deployment_id),
            timeout=timeout,
            deadline=deadline,
            delay=delay,
            failure_detail=_status_details,
        )

    def deployment_deleted(
        self, deployment_id: str, timeout: float, deadline: Deadline, delay: Optional[float] = None
    ) -> None:
        self._wait(
            f"blue/green deployment {deployment_id} deletion",
            pending=list(DeploymentStatus),
            target=[],
            refresh=lambda: status_blue_green_deployment(self.rds, deployment_id),
            timeout=timeout,
            deadline=deadline,
            delay=delay,
        )

    def cluster_available(
        self, cluster_id: str, timeout: float, deadline: Deadline, delay: Optional[float] = None
    ) -> DBCluster:
        return self._wait(
            f"DB cluster {cluster_id}",
            pending=CLUSTER_TRANSITIONAL_STATUSES,
            target=[ClusterStatus.AVAILABLE],
            refresh=lambda: status_db_cluster(self.rds, cluster_id),
            timeout=timeout,
            deadline=deadline,
            delay=delay,
            continuous_target_occurence=3,
        )

    def cluster_deleted(
        self, cluster_id: str, timeout: float, deadline: Deadline, delay: Optional[float] = None
    ) -> None:
        self._wait(
            f"DB cluster {cluster_id} deletion",
            pending=list(ClusterStatus),
            target=[],
            refresh=lambda: status_db_cluster(self.rds, cluster_id),
            timeout=timeout,
            deadline=deadline,
            delay=delay,
        )

    def instance_deleted(
        self, instance_id: str, timeout: float, deadline: Deadline, delay: Optional[float] = None
    ) -> None:
        self._wait(
            f"DB instance {instance_id} deletion",
            pending=list(InstanceStatus),
            target=[],
            refresh=lambda: status_db_instance(self.rds, instance_id),
            timeout=timeout,
            deadline=deadline,
            delay=delay,
        )
