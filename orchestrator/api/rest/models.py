"""Pydantic models for REST API."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.scheduler.queue import Priority


class CamelModel(BaseModel):
    """Accepts camelCase aliases as well as field names."""
    model_config = ConfigDict(populate_by_name=True)


class TaskOptions(BaseModel):
    priority: Priority = Priority.NORMAL


class ScheduleTaskRequest(CamelModel):
    """Queue an agent action."""
    agent_name: str = Field(alias="agentName", min_length=1)
    action: str = Field(min_length=1)
    params: Optional[Union[Dict[str, Any], List[Any], str]] = None
    options: TaskOptions = Field(default_factory=TaskOptions)


class CreateScheduleRequest(CamelModel):
    """Create a cron job."""
    agent_id: str = Field(alias="agentId", min_length=1)
    name: str = Field(min_length=1)
    cron_expression: str = Field(alias="cronExpression", min_length=1)
    action: str = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)


class ScheduleFromDescriptionRequest(CamelModel):
    agent_id: str = Field(alias="agentId", min_length=1)
    description: str = Field(min_length=1)


class WorkflowStepModel(CamelModel):
    id: str = Field(min_length=1)
    agent_id: str = Field(alias="agentId", min_length=1)
    action: str = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    timeout: Optional[float] = Field(default=None, gt=0)


class WorkflowCreate(CamelModel):
    """Register a workflow from JSON steps or a YAML document."""
    id: Optional[str] = None
    name: Optional[str] = None
    description: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    steps: List[WorkflowStepModel] = Field(default_factory=list)
    yaml_content: Optional[str] = Field(default=None, alias="yamlContent")


class RunWorkflowRequest(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)
