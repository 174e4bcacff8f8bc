"""Create/Read/Update/Delete handler for a cluster blue/green resource."""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from rds_bluegreen.config.models import BLUE_GREEN_ENGINES, ClusterBlueGreenConfig
from rds_bluegreen.orchestrator.orchestrator import BlueGreenOrchestrator
from rds_bluegreen.orchestrator.workflow import (
    BlueGreenWorkflow,
    WorkflowContext,
    WorkflowResult,
    plan_steps,
)
from rds_bluegreen.rds.find import find_db_cluster_by_id
from rds_bluegreen.rds.lifecycle import DEFAULT_DELETE_RETRY_TIMEOUT, ClusterLifecycle
from rds_bluegreen.rds.models import CreateBlueGreenDeploymentParams, DBCluster
from rds_bluegreen.rds.status import status_db_cluster
from rds_bluegreen.rds.wait import RDSWaiters
from rds_bluegreen.state.models import ResourceState
from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import (
    ConfigurationError,
    DeploymentError,
    ErrorContext,
    ErrorHandler,
    NotFoundError,
    ValidationError,
)
from rds_bluegreen.utils.logging import get_logger
from rds_bluegreen.utils.retry import RetryStrategy
from rds_bluegreen.utils.waiter import WaiterOptions

logger = get_logger(__name__)


@dataclass
class HandlerResult:
    """New state (None means "not present") plus any diagnostics."""
    state: Optional[ResourceState]
    diagnostics: List[DeploymentError] = field(default_factory=list)
    workflow: Optional[WorkflowResult] = None

    def has_errors(self) -> bool:
        return len(self.diagnostics) > 0

    def messages(self) -> List[str]:
        return [diagnostic.to_user_message() for diagnostic in self.diagnostics]


class ClusterBlueGreenResource:
    """Reconciles one configured cluster with its blue/green deployment.

    Create and Update share one workflow driver; every operation runs under
    its own deadline built from the configured timeouts.
    """

    def __init__(
        self,
        rds_client,
        default_tags: Optional[Dict[str, str]] = None,
        waiter_options: Optional[WaiterOptions] = None,
        retry_strategy: Optional[RetryStrategy] = None,
        delete_retry_timeout: float = DEFAULT_DELETE_RETRY_TIMEOUT,
        waiters: Optional[RDSWaiters] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """Initialize resource handler.

        Args:
            rds_client: boto3 RDS client
            default_tags: Provider-wide tags merged under each resource's tags
            waiter_options: Polling cadence for every wait
            retry_strategy: Backoff policy for eventual-consistency faults
            delete_retry_timeout: Cap in seconds on retrying delete calls
            waiters: Prebuilt waiters, replacing ones built from ``waiter_options``
            clock: Monotonic clock for deadlines
            sleep: Sleep function for deadlines
            cancel_event: Event that cancels in-flight operations when set
        """
        self.rds = rds_client
        self.default_tags = dict(default_tags or {})
        self.waiters = waiters or RDSWaiters(rds_client, waiter_options)
        self.lifecycle = ClusterLifecycle(
            rds_client,
            self.waiters,
            retry_strategy=retry_strategy,
            delete_retry_timeout=delete_retry_timeout,
        )
        self.orchestrator = BlueGreenOrchestrator(rds_client, self.waiters, self.lifecycle)
        self.error_handler = ErrorHandler()
        self.workflow = BlueGreenWorkflow(self.orchestrator, self.error_handler)
        self.clock = clock
        self.sleep = sleep
        self.cancel_event = cancel_event or threading.Event()

    def tags_all(self, config: ClusterBlueGreenConfig) -> Dict[str, str]:
        """Provider default tags overlaid with the resource's own tags."""
        return {**self.default_tags, **config.tags}

    def validate(self, config: ClusterBlueGreenConfig) -> List[DeploymentError]:
        """Plan-time checks that need no remote calls.

        Returns:
            Diagnostics; empty when the configuration can be applied
        """
        diagnostics: List[DeploymentError] = []

        if config.create_deployment and not config.supports_blue_green:
            diagnostics.append(ValidationError(
                f"engine {config.engine} does not support blue/green deployments",
                context=ErrorContext(resource_id=config.cluster_identifier, operation='validate'),
                suggestions=[
                    f"Use one of: {', '.join(BLUE_GREEN_ENGINES)}",
                    "Or set create_deployment to false",
                ]
            ))

        if config.create_deployment and not (
            config.engine_version or config.target_db_cluster_parameter_group_name
        ):
            diagnostics.append(ValidationError(
                "create_deployment needs a target: set engine_version or "
                "target_db_cluster_parameter_group_name",
                context=ErrorContext(resource_id=config.cluster_identifier, operation='validate'),
                suggestions=["Without a target the green cluster would be an identical copy"]
            ))

        return diagnostics

    def create(self, config: ClusterBlueGreenConfig) -> HandlerResult:
        """Start managing an existing cluster and run the configured workflow."""
        diagnostics = self.validate(config)
        if diagnostics:
            return HandlerResult(state=None, diagnostics=diagnostics)

        deadline = self._deadline(config.timeouts.create)

        try:
            cluster = find_db_cluster_by_id(self.rds, config.cluster_identifier)
            self._check_engine(config, cluster)
        except Exception as e:
            return HandlerResult(state=None, diagnostics=[self._diagnostic(e, config, 'create')])

        workflow_result = self._run_workflow(config, cluster, deadline)
        return self._finish(config, None, workflow_result, [])

    def read(
        self, config: ClusterBlueGreenConfig, prior: Optional[ResourceState] = None
    ) -> HandlerResult:
        """Sync persisted attributes from the live cluster.

        A missing cluster yields no state, which removes the resource from
        state. Other describe failures keep the prior state.
        """
        try:
            cluster = find_db_cluster_by_id(self.rds, config.cluster_identifier)
        except NotFoundError:
            logger.warning(
                f"DB cluster {config.cluster_identifier} not found, removing from state",
                extra={'resource_id': config.cluster_identifier}
            )
            return HandlerResult(state=None)
        except Exception as e:
            return HandlerResult(state=prior, diagnostics=[self._diagnostic(e, config, 'read')])

        deployment_identifier = None
        deployment_status = None
        try:
            deployment = self.orchestrator.find_deployment(cluster.identifier)
        except Exception as e:
            return HandlerResult(state=prior, diagnostics=[self._diagnostic(e, config, 'read')])

        if deployment is not None:
            deployment_identifier = deployment.identifier
            deployment_status = deployment.status.value

        state = ResourceState(
            name=config.name,
            id=cluster.identifier,
            arn=cluster.arn,
            cluster_identifier=cluster.identifier,
            cluster_members=cluster.member_identifiers,
            cluster_resource_id=cluster.resource_id,
            engine=cluster.engine,
            engine_version=cluster.engine_version,
            deletion_protection=cluster.deletion_protection,
            backup_retention_period=cluster.backup_retention_period,
            tags=self._resource_tags(config, cluster.tags),
            tags_all=cluster.tags,
            deployment_identifier=deployment_identifier,
            deployment_status=deployment_status,
        )
        return HandlerResult(state=state)

    def update(
        self, prior: Optional[ResourceState], config: ClusterBlueGreenConfig
    ) -> HandlerResult:
        """Apply cluster settings and tag changes, then run the configured workflow."""
        diagnostics = self.validate(config)
        if diagnostics:
            return HandlerResult(state=prior, diagnostics=diagnostics)

        deadline = self._deadline(config.timeouts.update)

        try:
            cluster = find_db_cluster_by_id(self.rds, config.cluster_identifier)
            self._check_engine(config, cluster)
            self._apply_settings(config, cluster, deadline)

            old_tags = prior.tags_all if prior is not None else cluster.tags
            self.lifecycle.update_tags(
                cluster.arn, old_tags, self.tags_all(config), live_tags=cluster.tags
            )
        except Exception as e:
            return HandlerResult(state=prior, diagnostics=[self._diagnostic(e, config, 'update')])

        workflow_result = self._run_workflow(config, cluster, deadline)
        return self._finish(config, prior, workflow_result, [])

    def delete(
        self, state: Optional[ResourceState], config: ClusterBlueGreenConfig
    ) -> HandlerResult:
        """Stop managing the cluster and remove its blue/green deployment record.

        The cluster itself, and the deployment's target, are left in place.
        """
        deadline = self._deadline(config.timeouts.delete)
        cluster_id = state.cluster_identifier if state is not None else config.cluster_identifier

        try:
            _, status = status_db_cluster(self.rds, cluster_id)
            if status is None:
                logger.warning(
                    f"DB cluster {cluster_id} not found, skipping availability wait",
                    extra={'resource_id': cluster_id}
                )
            else:
                self.waiters.cluster_available(cluster_id, deadline.remaining(), deadline)

            deployment = self.orchestrator.find_deployment(cluster_id)
            if deployment is not None:
                self.orchestrator.delete_deployment(deployment.identifier, deadline)
        except Exception as e:
            return HandlerResult(state=state, diagnostics=[self._diagnostic(e, config, 'delete')])

        return HandlerResult(state=None)

    def _check_engine(self, config: ClusterBlueGreenConfig, cluster: DBCluster) -> None:
        if cluster.engine and cluster.engine != config.engine:
            raise ConfigurationError(
                f"engine {config.engine} does not match the engine of DB cluster "
                f"{cluster.identifier} ({cluster.engine})",
                context=ErrorContext(resource_id=cluster.identifier),
                suggestions=[f"Set engine to {cluster.engine}"]
            )

    def _apply_settings(
        self, config: ClusterBlueGreenConfig, cluster: DBCluster, deadline: Deadline
    ) -> None:
        changes = {}
        if config.deletion_protection != cluster.deletion_protection:
            changes['DeletionProtection'] = config.deletion_protection
        if config.backup_retention_period != cluster.backup_retention_period:
            changes['BackupRetentionPeriod'] = config.backup_retention_period

        if changes:
            self.lifecycle.modify_cluster(
                cluster.identifier,
                changes,
                deadline,
                apply_immediately=config.apply_immediately,
            )

    def _run_workflow(
        self, config: ClusterBlueGreenConfig, cluster: DBCluster, deadline: Deadline
    ) -> WorkflowResult:
        tags = self.tags_all(config)
        params = CreateBlueGreenDeploymentParams(
            name=cluster.identifier,
            source_arn=cluster.arn,
            engine_version=config.engine_version,
            cluster_parameter_group_name=config.target_db_cluster_parameter_group_name,
            tags=tags or None,
        )
        ctx = WorkflowContext(
            cluster=cluster,
            params=params,
            deadline=deadline,
            engine_version=config.engine_version,
        )
        steps = plan_steps(
            config.create_deployment,
            config.switchover_enabled,
            config.cleanup_resources,
        )
        return self.workflow.run(steps, ctx)

    def _finish(
        self,
        config: ClusterBlueGreenConfig,
        prior: Optional[ResourceState],
        workflow_result: WorkflowResult,
        diagnostics: List[DeploymentError]
    ) -> HandlerResult:
        diagnostics = diagnostics + workflow_result.errors()

        read_result = self.read(config, prior)
        diagnostics.extend(read_result.diagnostics)

        if not read_result.diagnostics and read_result.state is None:
            diagnostics.append(NotFoundError(
                f"DB cluster {config.cluster_identifier} disappeared during apply",
                context=ErrorContext(resource_id=config.cluster_identifier, operation='read')
            ))

        return HandlerResult(
            state=read_result.state,
            diagnostics=diagnostics,
            workflow=workflow_result,
        )

    def _resource_tags(self, config: ClusterBlueGreenConfig, live_tags: Dict[str, str]) -> Dict[str, str]:
        """Live tags minus the ones that only come from provider defaults."""
        return {
            key: value for key, value in live_tags.items()
            if key in config.tags or self.default_tags.get(key) != value
        }

    def _deadline(self, timeout: float) -> Deadline:
        return Deadline(timeout, clock=self.clock, sleep=self.sleep, cancel_event=self.cancel_event)

    def _diagnostic(
        self, error: Exception, config: ClusterBlueGreenConfig, operation: str
    ) -> DeploymentError:
        diagnostic = self.error_handler.handle_exception(
            error,
            ErrorContext(resource_id=config.cluster_identifier, operation=operation)
        )
        self.error_handler.log_error(diagnostic)
        return diagnostic
