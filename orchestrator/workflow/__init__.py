"""Sequential agent workflows."""

from orchestrator.workflow.engine import RunStatus, WorkflowEngine, merge_context
from orchestrator.workflow.step import StepOutcome, WorkflowStep

__all__ = ["RunStatus", "StepOutcome", "WorkflowEngine", "WorkflowStep", "merge_context"]
