"""Shared constants for agentflow."""

# Sentinel values for ``WorkflowState.current_node``.
NODE_NONE = "none"
NODE_COMPLETED = "completed"

RESERVED_NODE_NAMES = frozenset({NODE_NONE, NODE_COMPLETED})

# Status markers returned by step handlers and stored in step history.
STEP_COMPLETED = "completed"
STEP_PAUSED = "paused"
STEP_FAILED = "failed"
STEP_SKIPPED = "skipped"

DEFAULT_PAUSE_REASON = "Awaiting human approval"
