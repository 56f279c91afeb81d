"""Data models for persisted workflow state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from ..constants import NODE_NONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class WorkflowStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowState(BaseModel):
    """Durable record of one workflow run.

    ``state_data`` is a JSON document; top-level keys are merged on every
    update and never dropped.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    workflow_type: str
    team_id: Optional[str] = None
    agent_id: Optional[str] = None
    current_node: str = NODE_NONE
    status: WorkflowStatus = WorkflowStatus.RUNNING
    state_data: dict[str, JsonValue] = Field(default_factory=dict)
    pause_reason: Optional[str] = None
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def merge_state_data(self, data: Mapping[str, Any]) -> None:
        """Overwrite ``state_data`` keys present in ``data``, keep the rest."""
        self.state_data = {**self.state_data, **data}

    def get_data(self, key: str, default: Any = None) -> Any:
        return self.state_data.get(key, default)

    @property
    def is_paused(self) -> bool:
        return self.status == WorkflowStatus.PAUSED

    @property
    def is_completed(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == WorkflowStatus.FAILED


class StepRecord(BaseModel):
    """Record of an individual step execution."""

    id: Optional[int] = None
    workflow_id: str
    step_name: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: Optional[str] = None
    output: Optional[dict[str, JsonValue]] = None
    error: Optional[str] = None


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ApprovalRecord(BaseModel):
    """A human-review request raised by a workflow step."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    team_id: Optional[str] = None
    title: str
    content_preview: str = ""
    full_content: str = ""
    source_name: str = "Unknown Agent"
    urgency: Urgency = Urgency.NORMAL
    status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING
