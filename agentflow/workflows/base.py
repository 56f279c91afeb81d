"""Step-sequenced workflow engine."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Mapping, Optional

from pydantic import TypeAdapter

from ..approval import ApprovalService
from ..constants import (
    DEFAULT_PAUSE_REASON,
    NODE_COMPLETED,
    RESERVED_NODE_NAMES,
    STEP_COMPLETED,
    STEP_FAILED,
)
from ..errors import AgentflowError, InvalidTransition
from ..orchestrator import WorkflowOrchestrator
from ..persistence.models import (
    ApprovalRecord,
    StepRecord,
    Urgency,
    WorkflowState,
    WorkflowStatus,
)

logger = logging.getLogger(__name__)

RERUN_REASON = "Withdrawn: step re-run after failure"

StepHandler = Callable[[Any, WorkflowState], Awaitable[Optional[Mapping[str, Any]]]]

# Handler results are stored in step history as JSON.
_STEP_OUTPUT = TypeAdapter(Dict[str, Any])


def step(name: str) -> Callable[[StepHandler], StepHandler]:
    """Register a coroutine method as the workflow step called ``name``.

    Steps run in the order they are defined in the class body.
    """

    def decorator(func: StepHandler) -> StepHandler:
        func._step_name = name  # type: ignore[attr-defined]
        return func

    return decorator


class BaseWorkflow:
    """Drives an ordered list of named steps against one ``WorkflowState``.

    Subclasses set ``workflow_type`` and define steps with :func:`step`.
    Lifecycle hooks are no-ops unless overridden.
    """

    workflow_type: ClassVar[str] = ""
    description: ClassVar[str] = ""
    _steps: ClassVar[Dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        steps: Dict[str, str] = dict(getattr(cls, "_steps", {}))
        seen: set[str] = set()
        for attr, value in cls.__dict__.items():
            name = getattr(value, "_step_name", None)
            if name is None:
                continue
            if name in RESERVED_NODE_NAMES:
                raise TypeError(f"{cls.__name__}: step name '{name}' is reserved")
            if name in seen:
                raise TypeError(f"{cls.__name__}: duplicate step '{name}'")
            seen.add(name)
            steps[name] = attr
        cls._steps = steps

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        approvals: ApprovalService | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._approvals = approvals or ApprovalService(orchestrator)
        self._state: WorkflowState | None = None

    @classmethod
    def from_services(
        cls,
        orchestrator: WorkflowOrchestrator,
        approvals: ApprovalService | None = None,
        services: Mapping[str, Any] | None = None,
    ) -> "BaseWorkflow":
        """Build the workflow, picking any collaborators it needs from ``services``."""
        return cls(orchestrator, approvals)

    @classmethod
    def step_names(cls) -> List[str]:
        return list(cls._steps)

    @property
    def state(self) -> WorkflowState:
        if self._state is None:
            raise AgentflowError(f"{type(self).__name__} has no workflow state attached")
        return self._state

    @property
    def repository(self):
        return self._orchestrator.repository

    # ------------------------------------------------------------------
    # Entry points
    async def start(
        self,
        input: Mapping[str, Any],
        team_id: str | None = None,
        agent_id: str | None = None,
    ) -> WorkflowState:
        self._state = await self._orchestrator.execute(
            self.workflow_type, input, team_id, agent_id
        )
        await self.on_start(input)
        return self._state

    def attach(self, state: WorkflowState) -> None:
        """Continue an existing run with this workflow instance."""
        if state.workflow_type != self.workflow_type:
            raise ValueError(
                f"Workflow {state.id} is of type '{state.workflow_type}', "
                f"not '{self.workflow_type}'"
            )
        self._state = state

    async def resume(
        self, state: WorkflowState, approval_data: Mapping[str, Any] | None = None
    ) -> WorkflowState:
        """Clear the pause on ``state``. Call :meth:`run` afterwards to continue.

        A run paused at a step whose handler then raised is not resumed past
        that step; use :meth:`rerun_current_step` instead.
        """
        self.attach(state)
        last = await self._last_record(state.current_node)
        if state.is_paused and last is not None and last.status == STEP_FAILED:
            raise InvalidTransition(
                f"Step '{state.current_node}' failed and must be re-run, not resumed",
                from_status=state.status.value,
                to_status=WorkflowStatus.RUNNING.value,
            )
        self._state = await self._orchestrator.resume(state, approval_data)
        await self.on_resume(dict(approval_data or {}))
        return self._state

    async def run(self) -> WorkflowState:
        while await self.execute_next_step():
            pass
        return self.state

    async def execute_next_step(self) -> bool:
        """Run the next non-skipped step.

        Returns ``True`` while the workflow can keep going and ``False`` once
        it is paused, completed or failed.
        """
        state = self.state
        if state.current_node == NODE_COMPLETED or state.is_completed:
            return False
        if state.is_paused or state.is_failed:
            return False

        names = self.step_names()
        index = names.index(state.current_node) if state.current_node in names else -1
        next_index = index + 1

        while next_index < len(names) and self._orchestrator.should_skip_step(
            state, names[next_index]
        ):
            skipped = names[next_index]
            await self._advance_to(skipped)
            await self._orchestrator.record_skipped_step(state, skipped)
            logger.info(f"Workflow {state.id} skipped step {skipped}")
            next_index += 1

        if next_index >= len(names):
            await self.complete()
            return False

        name = names[next_index]
        await self._advance_to(name)
        return await self._run_step(name)

    async def rerun_current_step(self) -> bool:
        """Invoke the handler of the current step again after it raised.

        If the failed attempt paused the run before raising, its approval
        request is withdrawn and the run is set back to running first.
        """
        state = self.state
        name = state.current_node
        if state.status not in (WorkflowStatus.RUNNING, WorkflowStatus.PAUSED):
            raise InvalidTransition.not_allowed(
                state.status.value, WorkflowStatus.RUNNING.value
            )
        last = await self._last_record(name)
        if name not in self._steps or last is None or last.status != STEP_FAILED:
            raise InvalidTransition(
                f"Step '{name}' has not failed and cannot be re-run",
                from_status=name,
                to_status=name,
            )
        if state.is_paused:
            self._state = await self._orchestrator.resume(
                state, {"approved": False, "rejection_reason": RERUN_REASON}
            )
        logger.info(f"Workflow {state.id} re-running step {name}")
        return await self._run_step(name)

    async def _last_record(self, name: str) -> Optional[StepRecord]:
        history = await self.repository.list_steps(self.state.id)
        return next((s for s in reversed(history) if s.step_name == name), None)

    # ------------------------------------------------------------------
    # Internals
    async def _advance_to(self, name: str) -> None:
        state = self.state
        names = self.step_names()
        if name not in names:
            raise InvalidTransition.unknown_step(state.current_node, name)
        current = names.index(state.current_node) if state.current_node in names else -1
        if names.index(name) <= current:
            raise InvalidTransition.not_allowed(state.current_node, name)
        await self._orchestrator.update_node(state, name)

    async def _run_step(self, name: str) -> bool:
        state = self.state
        await self.before_step(name)
        result = await self._invoke(name)
        await self.after_step(name, result)

        self._state = await self._orchestrator.reload(state.id)
        if self._state.is_paused or self._state.is_completed or self._state.is_failed:
            return False
        if name == self.step_names()[-1]:
            await self.complete()
            return False
        return True

    async def _invoke(self, name: str) -> Dict[str, Any]:
        state = self.state
        handler = getattr(self, self._steps[name])
        await self.repository.mark_step_started(state.id, name)
        try:
            result = await handler(state)
            output = _STEP_OUTPUT.dump_python(dict(result or {}), mode="json")
            await self.repository.mark_step_completed(
                state.id, name, output.get("status", STEP_COMPLETED), output=output
            )
        except Exception as exc:
            await self.repository.mark_step_completed(
                state.id, name, STEP_FAILED, error=str(exc)
            )
            logger.error(f"Workflow {state.id} step {name} failed: {exc}")
            raise
        return output

    # ------------------------------------------------------------------
    # Helpers for step handlers
    async def complete(self, result: Mapping[str, Any] | None = None) -> None:
        await self._orchestrator.complete(self.state, result)
        await self.on_complete(dict(result or {}))

    async def fail(self, reason: str) -> None:
        await self._orchestrator.fail(self.state, reason)

    async def pause_for_approval(
        self,
        action_description: str,
        reason: str = DEFAULT_PAUSE_REASON,
        urgency: Urgency = Urgency.NORMAL,
    ) -> ApprovalRecord:
        return await self._approvals.request_approval(
            self.state, action_description, urgency=urgency, reason=reason
        )

    def get_parameter(self, key: str, default: Any = None) -> Any:
        return self._orchestrator.get_parameter(self.state, key, default)

    async def merge_state_data(self, data: Mapping[str, Any]) -> None:
        await self._orchestrator.merge_state_data(self.state, data)

    # ------------------------------------------------------------------
    # Lifecycle hooks
    async def on_start(self, input: Mapping[str, Any]) -> None:
        pass

    async def on_resume(self, approval_data: Dict[str, Any]) -> None:
        pass

    async def before_step(self, step_name: str) -> None:
        pass

    async def after_step(self, step_name: str, result: Dict[str, Any]) -> None:
        pass

    async def on_complete(self, result: Dict[str, Any]) -> None:
        pass
