"""Cluster and instance modify/delete operations with bounded retries."""

from typing import Any, Dict, Optional

from rds_bluegreen.rds.find import (
    CLUSTER_NOT_FOUND,
    INSTANCE_NOT_FOUND,
    find_db_cluster_by_id,
)
from rds_bluegreen.rds.models import DBCluster, tags_to_api
from rds_bluegreen.rds.wait import RDSWaiters
from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import NotFoundError, is_aws_error
from rds_bluegreen.utils.logging import get_logger
from rds_bluegreen.utils.retry import (
    DELETION_PROTECTION_PENDING,
    IAM_ROLE_PROPAGATION,
    STORAGE_OPTIMIZATION,
    RetryStrategy,
    retry_on,
)

logger = get_logger(__name__)

INVALID_CLUSTER_STATE = ('InvalidDBClusterStateFault', None)

DEFAULT_DELETE_RETRY_TIMEOUT = 300.0

_modify_retryable = retry_on(IAM_ROLE_PROPAGATION, STORAGE_OPTIMIZATION, INVALID_CLUSTER_STATE)
_delete_retryable = retry_on(IAM_ROLE_PROPAGATION, DELETION_PROTECTION_PENDING, INVALID_CLUSTER_STATE)


class ClusterLifecycle:
    """Modifies and deletes DB clusters and their member instances."""

    def __init__(
        self,
        rds_client,
        waiters: RDSWaiters,
        retry_strategy: Optional[RetryStrategy] = None,
        delete_retry_timeout: float = DEFAULT_DELETE_RETRY_TIMEOUT
    ):
        """Initialize lifecycle operations.

        Args:
            rds_client: boto3 RDS client
            waiters: Waiters used to confirm each change
            retry_strategy: Backoff policy for eventual-consistency faults
            delete_retry_timeout: Cap in seconds on retrying a delete call
        """
        self.rds = rds_client
        self.waiters = waiters
        self.retry_strategy = retry_strategy or RetryStrategy()
        self.delete_retry_timeout = delete_retry_timeout

    def modify_cluster(
        self,
        cluster_id: str,
        changes: Dict[str, Any],
        deadline: Deadline,
        apply_immediately: bool = True
    ) -> DBCluster:
        """Modify a cluster and wait until it is available again.

        Args:
            cluster_id: Cluster identifier
            changes: ``ModifyDBCluster`` parameters, e.g. ``{'DeletionProtection': False}``
            deadline: Deadline of the enclosing operation
            apply_immediately: Apply outside the maintenance window

        Returns:
            The cluster as described once available
        """
        logger.info(
            f"Modifying DB cluster {cluster_id}: {', '.join(sorted(changes))}",
            extra={'resource_id': cluster_id, 'operation': 'modify_cluster'}
        )

        self.retry_strategy.execute_until(
            lambda: self.rds.modify_db_cluster(
                DBClusterIdentifier=cluster_id,
                ApplyImmediately=apply_immediately,
                **changes
            ),
            deadline,
            retryable=_modify_retryable,
            operation=f"modify DB cluster {cluster_id}"
        )

        return self.waiters.cluster_available(cluster_id, deadline.remaining(), deadline)

    def disable_deletion_protection(self, cluster: DBCluster, deadline: Deadline) -> DBCluster:
        logger.info(f"Disabling deletion protection on DB cluster {cluster.identifier}")
        return self.modify_cluster(cluster.identifier, {'DeletionProtection': False}, deadline)

    def delete_instance(
        self, instance_id: str, deadline: Deadline, delay: Optional[float] = None
    ) -> None:
        """Delete a DB instance without a final snapshot and wait until it is gone.

        An instance that is already absent counts as deleted.
        """
        logger.info(f"Deleting DB instance {instance_id}", extra={'resource_id': instance_id})

        try:
            self.retry_strategy.execute_until(
                lambda: self.rds.delete_db_instance(
                    DBInstanceIdentifier=instance_id,
                    SkipFinalSnapshot=True
                ),
                deadline,
                timeout=self.delete_retry_timeout,
                retryable=_delete_retryable,
                operation=f"delete DB instance {instance_id}"
            )
        except Exception as e:
            if is_aws_error(e, INSTANCE_NOT_FOUND):
                logger.info(f"DB instance {instance_id} already deleted")
                return
            raise

        self.waiters.instance_deleted(instance_id, deadline.remaining(), deadline, delay=delay)

    def delete_cluster_members(self, cluster: DBCluster, deadline: Deadline) -> None:
        """Delete every member instance, one at a time, each confirmed before the next."""
        for index, instance_id in enumerate(cluster.member_identifiers):
            self.delete_instance(instance_id, deadline, delay=None if index == 0 else 0)

    def delete_cluster(
        self, cluster_id: str, deadline: Deadline, delay: Optional[float] = None
    ) -> None:
        """Delete a cluster without a final snapshot and wait until it is gone.

        Deletion protection is read from a fresh describe and cleared first
        when set. An already-absent cluster counts as deleted.

        Args:
            cluster_id: Cluster identifier or ARN
            deadline: Deadline of the enclosing operation
            delay: Initial delay override for the deletion wait
        """
        try:
            cluster = find_db_cluster_by_id(self.rds, cluster_id)
        except NotFoundError:
            logger.info(f"DB cluster {cluster_id} already deleted")
            return

        if cluster.deletion_protection:
            self.disable_deletion_protection(cluster, deadline)

        logger.info(
            f"Deleting DB cluster {cluster.identifier}",
            extra={'resource_id': cluster.identifier, 'operation': 'delete_cluster'}
        )

        try:
            self.retry_strategy.execute_until(
                lambda: self.rds.delete_db_cluster(
                    DBClusterIdentifier=cluster.identifier,
                    SkipFinalSnapshot=True
                ),
                deadline,
                timeout=self.delete_retry_timeout,
                retryable=_delete_retryable,
                operation=f"delete DB cluster {cluster.identifier}"
            )
        except Exception as e:
            if is_aws_error(e, CLUSTER_NOT_FOUND):
                logger.info(f"DB cluster {cluster.identifier} already deleted")
                return
            raise

        self.waiters.cluster_deleted(cluster.identifier, deadline.remaining(), deadline, delay=delay)

    def update_tags(
        self,
        arn: str,
        old_tags: Dict[str, str],
        new_tags: Dict[str, str],
        live_tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Apply the difference between two tag maps to a resource.

        Args:
            arn: Resource ARN
            old_tags: Previously managed tags; keys missing from ``new_tags`` are removed
            new_tags: Desired tags
            live_tags: Tags currently on the resource; values already set there
                are not added again. Defaults to ``old_tags``.
        """
        current = old_tags if live_tags is None else live_tags
        removed = sorted(key for key in old_tags if key not in new_tags)
        updated = {
            key: value for key, value in new_tags.items()
            if current.get(key) != value
        }

        if removed:
            logger.debug(f"Removing tags {removed} from {arn}")
            self.rds.remove_tags_from_resource(ResourceName=arn, TagKeys=removed)

        if updated:
            logger.debug(f"Adding tags {sorted(updated)} to {arn}")
            self.rds.add_tags_to_resource(ResourceName=arn, Tags=tags_to_api(updated))
