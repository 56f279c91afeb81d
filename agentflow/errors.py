"""Exception hierarchy for agentflow."""

from __future__ import annotations

from enum import Enum


class AgentflowError(Exception):
    """Base class for all agentflow errors."""


class TransitionReason(str, Enum):
    """Stable, machine-readable reason codes for rejected transitions."""

    INVALID_TRANSITION = "invalid_transition"
    PERMISSION_DENIED = "permission_denied"
    COMMENT_REQUIRED = "comment_required"
    NOT_DESIGNATED_REVIEWER = "not_designated_reviewer"
    AI_AGENT_RESTRICTED = "ai_agent_restricted"
    APPROVAL_PENDING = "approval_pending"
    UNKNOWN_STEP = "unknown_step"


class InvalidTransition(AgentflowError):
    """Raised when an operation is attempted against a state in the wrong status.

    ``from_status`` and ``to_status`` hold status values for status changes and
    node names for step moves.
    """

    def __init__(
        self,
        message: str,
        *,
        from_status: str,
        to_status: str,
        reason: TransitionReason = TransitionReason.INVALID_TRANSITION,
    ) -> None:
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason

    @classmethod
    def not_allowed(cls, from_status: str, to_status: str) -> "InvalidTransition":
        return cls(
            f"Transition from '{from_status}' to '{to_status}' is not allowed",
            from_status=from_status,
            to_status=to_status,
        )

    @classmethod
    def unknown_step(cls, from_node: str, to_node: str) -> "InvalidTransition":
        return cls(
            f"Step '{to_node}' is not part of this workflow",
            from_status=from_node,
            to_status=to_node,
            reason=TransitionReason.UNKNOWN_STEP,
        )

    @classmethod
    def approval_pending(cls, status: str, approval_id: str) -> "InvalidTransition":
        return cls(
            f"Approval {approval_id} is still pending for this workflow",
            from_status=status,
            to_status=status,
            reason=TransitionReason.APPROVAL_PENDING,
        )


class WorkflowNotFound(AgentflowError):
    """Raised when a workflow id does not exist in the repository."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id


class ApprovalNotFound(AgentflowError):
    """Raised when an approval id does not exist in the repository."""

    def __init__(self, approval_id: str) -> None:
        super().__init__(f"Approval {approval_id} not found")
        self.approval_id = approval_id


class UnknownWorkflowType(AgentflowError):
    """Raised when no workflow class is registered for a workflow type."""

    def __init__(self, workflow_type: str) -> None:
        super().__init__(f"No workflow registered for type '{workflow_type}'")
        self.workflow_type = workflow_type


class SkipPolicyError(AgentflowError):
    """Raised when the skip policy cannot decide because its lookup failed."""


class ParameterLookupError(AgentflowError):
    """Raised when a workflow parameter cannot be resolved."""
