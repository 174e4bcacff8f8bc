"""Blue/green deployment orchestration and the step workflow driver."""

from rds_bluegreen.orchestrator.orchestrator import BlueGreenOrchestrator
from rds_bluegreen.orchestrator.workflow import (
    BlueGreenWorkflow,
    ExecutionStatus,
    StepName,
    StepResult,
    WorkflowContext,
    WorkflowResult,
    WorkflowStep,
    plan_steps,
)

__all__ = [
    'BlueGreenOrchestrator',
    'BlueGreenWorkflow',
    'ExecutionStatus',
    'StepName',
    'StepResult',
    'WorkflowContext',
    'WorkflowResult',
    'WorkflowStep',
    'plan_steps',
]
