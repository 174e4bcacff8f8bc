"""Ordered, named workflow steps shared by resource Create and Update."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from rds_bluegreen.orchestrator.orchestrator import BlueGreenOrchestrator
from rds_bluegreen.rds.models import (
    CreateBlueGreenDeploymentParams,
    DBCluster,
    DeploymentStatus,
)
from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.errors import (
    DeploymentError,
    ErrorContext,
    ErrorHandler,
    UnexpectedStateError,
)
from rds_bluegreen.utils.logging import get_logger

logger = get_logger(__name__)


class StepName(str, Enum):
    """Named steps of a blue/green workflow."""
    ENSURE_DEPLOYMENT = 'ensure_deployment'
    WAIT_AVAILABLE = 'wait_available'
    LOCATE_DEPLOYMENT = 'locate_deployment'
    SWITCHOVER = 'switchover'
    WAIT_SWITCHOVER_COMPLETED = 'wait_switchover_completed'
    CLEANUP_SOURCE = 'cleanup_source'


class ExecutionStatus(Enum):
    """Status of execution."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WorkflowStep:
    """One planned step; deferred steps run even after a failure."""
    name: StepName
    deferred: bool = False


def plan_steps(
    create_deployment: bool,
    switchover_enabled: bool,
    cleanup_resources: bool = False
) -> List[WorkflowStep]:
    """Translate the workflow flags into an ordered step list.

    Args:
        create_deployment: Create (or adopt) a deployment and wait for it
        switchover_enabled: Switch over and wait for completion
        cleanup_resources: Delete the old source after a completed switchover,
            whether or not this run switched over

    Returns:
        Steps in execution order; empty when there is nothing to do
    """
    steps: List[WorkflowStep] = []

    if create_deployment:
        steps.append(WorkflowStep(StepName.ENSURE_DEPLOYMENT))
        steps.append(WorkflowStep(StepName.WAIT_AVAILABLE))
    elif switchover_enabled:
        steps.append(WorkflowStep(StepName.LOCATE_DEPLOYMENT))

    if switchover_enabled:
        steps.append(WorkflowStep(StepName.SWITCHOVER))
        steps.append(WorkflowStep(StepName.WAIT_SWITCHOVER_COMPLETED))

    if cleanup_resources:
        steps.append(WorkflowStep(StepName.CLEANUP_SOURCE, deferred=True))

    return steps


@dataclass
class WorkflowContext:
    """Per-run data handed explicitly through every step."""
    cluster: DBCluster
    params: CreateBlueGreenDeploymentParams
    deadline: Deadline
    engine_version: Optional[str] = None
    deployment_id: Optional[str] = None
    deployment_status: Optional[DeploymentStatus] = None
    halted: bool = False

    @property
    def resource_id(self) -> str:
        return self.cluster.identifier


@dataclass
class StepResult:
    """Result of executing a single step."""
    step: StepName
    status: ExecutionStatus
    message: Optional[str] = None
    error: Optional[DeploymentError] = None
    duration: float = 0.0  # seconds

    def is_success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def is_failed(self) -> bool:
        return self.status == ExecutionStatus.FAILED


@dataclass
class WorkflowResult:
    """Outcome of one workflow run."""
    resource_id: str
    step_results: List[StepResult] = field(default_factory=list)
    deployment_id: Optional[str] = None
    deployment_status: Optional[DeploymentStatus] = None

    @property
    def status(self) -> ExecutionStatus:
        if any(result.is_failed() for result in self.step_results):
            return ExecutionStatus.FAILED
        return ExecutionStatus.SUCCESS

    def is_success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def failed_steps(self) -> List[StepName]:
        return [result.step for result in self.step_results if result.is_failed()]

    def errors(self) -> List[DeploymentError]:
        return [result.error for result in self.step_results if result.error is not None]

    def diagnostics(self) -> List[str]:
        """One message per failed step, naming the step and the resource."""
        return [
            f"{self.resource_id}: step '{result.step.value}' failed: {result.error.message}"
            for result in self.step_results
            if result.is_failed() and result.error is not None
        ]


StepOutcome = Tuple[ExecutionStatus, Optional[str]]


class BlueGreenWorkflow:
    """Runs a planned step list against one cluster.

    A failed step halts the remaining regular steps; deferred steps still
    run. Nothing is rolled back.
    """

    def __init__(self, orchestrator: BlueGreenOrchestrator, error_handler: Optional[ErrorHandler] = None):
        self.orchestrator = orchestrator
        self.error_handler = error_handler or ErrorHandler()
        self._actions: Dict[StepName, Callable[[WorkflowContext], StepOutcome]] = {
            StepName.ENSURE_DEPLOYMENT: self._ensure_deployment,
            StepName.WAIT_AVAILABLE: self._wait_available,
            StepName.LOCATE_DEPLOYMENT: self._locate_deployment,
            StepName.SWITCHOVER: self._switchover,
            StepName.WAIT_SWITCHOVER_COMPLETED: self._wait_switchover_completed,
            StepName.CLEANUP_SOURCE: self._cleanup_source,
        }

    def run(self, steps: List[WorkflowStep], ctx: WorkflowContext) -> WorkflowResult:
        """Execute steps in order.

        Args:
            steps: Planned steps, see ``plan_steps``
            ctx: Run context; updated in place with the deployment identifier

        Returns:
            WorkflowResult with one StepResult per planned step
        """
        result = WorkflowResult(resource_id=ctx.resource_id)
        failed = False

        if steps:
            logger.info(
                f"Running blue/green workflow: {', '.join(step.name.value for step in steps)}",
                extra={'resource_id': ctx.resource_id}
            )

        regular = [step for step in steps if not step.deferred]
        deferred = [step for step in steps if step.deferred]

        for step in regular:
            if failed:
                result.step_results.append(
                    StepResult(step.name, ExecutionStatus.SKIPPED, "previous step failed")
                )
                continue
            if ctx.halted:
                result.step_results.append(
                    StepResult(step.name, ExecutionStatus.SKIPPED, "no blue/green deployment")
                )
                continue

            step_result = self._execute(step, ctx)
            result.step_results.append(step_result)
            failed = step_result.is_failed()

        for step in deferred:
            if ctx.deadline.cancelled:
                result.step_results.append(
                    StepResult(step.name, ExecutionStatus.SKIPPED, "operation cancelled")
                )
                continue
            result.step_results.append(self._execute(step, ctx))

        result.deployment_id = ctx.deployment_id
        result.deployment_status = ctx.deployment_status
        return result

    def _execute(self, step: WorkflowStep, ctx: WorkflowContext) -> StepResult:
        started = ctx.deadline.now()
        extra = {
            'resource_id': ctx.resource_id,
            'deployment_id': ctx.deployment_id,
            'operation': step.name.value,
        }

        try:
            status, message = self._actions[step.name](ctx)
        except Exception as e:
            duration = ctx.deadline.now() - started
            error = self.error_handler.handle_exception(
                e,
                ErrorContext(
                    resource_id=ctx.resource_id,
                    deployment_id=ctx.deployment_id,
                    operation=step.name.value,
                )
            )
            self.error_handler.log_error(error)
            return StepResult(step.name, ExecutionStatus.FAILED, error=error, duration=duration)

        duration = ctx.deadline.now() - started
        extra['duration'] = duration
        if status == ExecutionStatus.SKIPPED:
            logger.info(f"Skipped {step.name.value}: {message}", extra=extra)
        else:
            logger.info(f"Completed {step.name.value} in {duration:.1f}s", extra=extra)
        return StepResult(step.name, status, message, duration=duration)

    def _ensure_deployment(self, ctx: WorkflowContext) -> StepOutcome:
        existing = self.orchestrator.find_deployment(ctx.params.name)
        if existing is not None:
            ctx.deployment_id = existing.identifier
            ctx.deployment_status = existing.status
            return ExecutionStatus.SUCCESS, f"adopted existing deployment {existing.identifier}"

        if self._converged(ctx):
            ctx.halted = True
            return ExecutionStatus.SKIPPED, "cluster already matches the blue/green target"

        ctx.deployment_id = self.orchestrator.create_deployment(ctx.params)
        ctx.deployment_status = DeploymentStatus.PROVISIONING
        return ExecutionStatus.SUCCESS, f"created deployment {ctx.deployment_id}"

    def _converged(self, ctx: WorkflowContext) -> bool:
        """True when every requested target setting is already live on the cluster."""
        targets = [
            (ctx.engine_version, ctx.cluster.engine_version),
            (ctx.params.cluster_parameter_group_name, ctx.cluster.parameter_group),
        ]
        requested = [(wanted, live) for wanted, live in targets if wanted]
        return bool(requested) and all(wanted == live for wanted, live in requested)

    def _wait_available(self, ctx: WorkflowContext) -> StepOutcome:
        deployment = self.orchestrator.describe_deployment(ctx.deployment_id)

        if deployment is not None:
            if deployment.status.is_failed:
                ctx.deployment_status = deployment.status
                raise UnexpectedStateError(
                    deployment.status.value,
                    expected=[DeploymentStatus.AVAILABLE.value],
                    detail=deployment.status_details
                )
            if deployment.status in (
                DeploymentStatus.SWITCHOVER_IN_PROGRESS,
                DeploymentStatus.SWITCHOVER_COMPLETED,
            ):
                ctx.deployment_status = deployment.status
                return ExecutionStatus.SKIPPED, f"deployment already {deployment.status.value}"

        available = self.orchestrator.wait_for_available(ctx.deployment_id, ctx.deadline)
        ctx.deployment_status = available.status
        return ExecutionStatus.SUCCESS, None

    def _locate_deployment(self, ctx: WorkflowContext) -> StepOutcome:
        existing = self.orchestrator.find_deployment(ctx.params.name)
        if existing is None:
            logger.warning(
                f"No blue/green deployment named {ctx.params.name} to switch over",
                extra={'resource_id': ctx.resource_id}
            )
            ctx.halted = True
            return ExecutionStatus.SKIPPED, "no blue/green deployment found"

        ctx.deployment_id = existing.identifier
        ctx.deployment_status = existing.status
        return ExecutionStatus.SUCCESS, f"found deployment {existing.identifier}"

    def _switchover(self, ctx: WorkflowContext) -> StepOutcome:
        if self.orchestrator.switchover(ctx.deployment_id, ctx.deadline):
            ctx.deployment_status = DeploymentStatus.SWITCHOVER_IN_PROGRESS
            return ExecutionStatus.SUCCESS, None
        return ExecutionStatus.SKIPPED, "switchover already requested"

    def _wait_switchover_completed(self, ctx: WorkflowContext) -> StepOutcome:
        deployment = self.orchestrator.describe_deployment(ctx.deployment_id)
        if deployment is not None and deployment.status == DeploymentStatus.SWITCHOVER_COMPLETED:
            ctx.deployment_status = deployment.status
            return ExecutionStatus.SKIPPED, "switchover already completed"

        completed = self.orchestrator.wait_for_switchover_completed(ctx.deployment_id, ctx.deadline)
        ctx.deployment_status = completed.status
        return ExecutionStatus.SUCCESS, None

    def _cleanup_source(self, ctx: WorkflowContext) -> StepOutcome:
        if ctx.deployment_id is None:
            existing = self.orchestrator.find_deployment(ctx.params.name)
            if existing is None:
                return ExecutionStatus.SKIPPED, "no blue/green deployment"
            ctx.deployment_id = existing.identifier

        if self.orchestrator.cleanup_source(ctx.deployment_id, ctx.deadline):
            ctx.deployment_status = None
            return ExecutionStatus.SUCCESS, None
        return ExecutionStatus.SKIPPED, "switchover not completed"
