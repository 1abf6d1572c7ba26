"""YAML workflow definitions."""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
import yaml

from orchestrator.errors import WorkflowDefinitionError
from orchestrator.workflow.step import StepCondition, StepOutcome


logger = structlog.get_logger(__name__)

_WORKFLOW_KEYS = {"id", "name", "description", "metadata", "steps"}
_STEP_KEYS = {"id", "agent", "action", "params", "timeout", "description", "continue_if"}


def context_flag(key: str) -> StepCondition:
    """Condition that continues the run while ``context[key]`` is truthy."""
    def condition(outcome: StepOutcome, context: Dict[str, Any]) -> bool:
        return bool(context.get(key))

    condition.__name__ = f"continue_if_{key}"
    return condition


def _step_config(index: int, data: Any) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        raise WorkflowDefinitionError(f"Step {index + 1} must be a mapping")

    unknown = set(data) - _STEP_KEYS
    if unknown:
        raise WorkflowDefinitionError(
            f"Step {data.get('id', index + 1)} has unknown keys: {sorted(unknown)}"
        )

    params = data.get("params") or {}
    if not isinstance(params, Mapping):
        raise WorkflowDefinitionError(f"Params of step {data.get('id')} must be a mapping")

    config = {
        "id": data.get("id"),
        "agent_id": data.get("agent"),
        "action": data.get("action"),
        "params": dict(params),
        "description": data.get("description", ""),
    }
    if data.get("timeout") is not None:
        config["timeout"] = data["timeout"]

    flag = data.get("continue_if")
    if flag is not None:
        if not isinstance(flag, str) or not flag:
            raise WorkflowDefinitionError(
                f"continue_if of step {data.get('id')} must name a context key"
            )
        config["condition"] = context_flag(flag)

    return config


def parse_workflow(data: Any, source: Optional[str] = None) -> Dict[str, Any]:
    """Turn one YAML document into a config for ``WorkflowEngine.register_workflow``."""
    if not isinstance(data, Mapping):
        raise WorkflowDefinitionError("Workflow document must be a mapping")

    unknown = set(data) - _WORKFLOW_KEYS
    if unknown:
        raise WorkflowDefinitionError(f"Workflow has unknown keys: {sorted(unknown)}")

    steps = data.get("steps")
    if not isinstance(steps, list) or not steps:
        raise WorkflowDefinitionError(
            f"Workflow {data.get('id') or data.get('name')} needs a non-empty steps list"
        )

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise WorkflowDefinitionError("Workflow metadata must be a mapping")

    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "description": data.get("description", ""),
        "metadata": dict(metadata),
        "steps": [_step_config(i, step) for i, step in enumerate(steps)],
        "source": source,
    }


def parse_string(text: str, source: Optional[str] = None) -> List[Dict[str, Any]]:
    """Parse every workflow document in a YAML string."""
    try:
        documents = [doc for doc in yaml.safe_load_all(text) if doc is not None]
    except yaml.YAMLError as e:
        raise WorkflowDefinitionError(f"Invalid YAML: {e}") from e

    if not documents:
        raise WorkflowDefinitionError("No workflow documents found")

    return [parse_workflow(doc, source) for doc in documents]


def load_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Parse the workflows in a YAML file."""
    path = Path(path)
    if not path.exists():
        raise WorkflowDefinitionError(f"Workflow file not found: {path}")

    configs = parse_string(path.read_text(), source=str(path))
    logger.info("workflows_loaded", path=str(path), count=len(configs))
    return configs


def register_file(engine: Any, path: Union[str, Path]) -> List[str]:
    """Load a YAML file and register each workflow with ``engine``."""
    return [engine.register_workflow(config) for config in load_file(path)]
