"""agentflow: durable, resumable agent workflows with human approval checkpoints."""

from .approval import ApprovalService
from .customization import StepSkipPolicy, WorkflowCustomization
from .errors import AgentflowError, InvalidTransition, TransitionReason
from .orchestrator import WorkflowOrchestrator
from .persistence import WorkflowState, WorkflowStatus, get_repository
from .routing import RoutingService
from .runner import WorkflowRunner
from .workflows import BaseWorkflow, register_workflow, step

__version__ = "0.1.0"
__all__ = [
    "AgentflowError",
    "ApprovalService",
    "BaseWorkflow",
    "InvalidTransition",
    "RoutingService",
    "StepSkipPolicy",
    "TransitionReason",
    "WorkflowCustomization",
    "WorkflowOrchestrator",
    "WorkflowRunner",
    "WorkflowState",
    "WorkflowStatus",
    "get_repository",
    "register_workflow",
    "step",
]
