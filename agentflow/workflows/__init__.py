"""Workflow engine and the built-in workflow types."""

from .base import BaseWorkflow, step
from .registry import (
    WORKFLOW_REGISTRY,
    get_workflow_class,
    register_workflow,
    workflow_types,
)
from .dispatcher import DispatcherWorkflow, DraftWriter
from .pm_copilot import PMCopilotWorkflow
from .task_execution import TaskExecutionWorkflow, TaskExecutor

__all__ = [
    "BaseWorkflow",
    "DispatcherWorkflow",
    "DraftWriter",
    "PMCopilotWorkflow",
    "TaskExecutionWorkflow",
    "TaskExecutor",
    "WORKFLOW_REGISTRY",
    "get_workflow_class",
    "register_workflow",
    "step",
    "workflow_types",
]
