"""Per-team workflow customizations and the step skip policy."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import yaml
from pydantic import BaseModel, Field, JsonValue

from .errors import ParameterLookupError, SkipPolicyError
from .persistence.models import WorkflowState, _new_id

logger = logging.getLogger(__name__)


class WorkflowCustomization(BaseModel):
    """Team-specific adjustments to a workflow type."""

    id: str = Field(default_factory=_new_id)
    team_id: str
    workflow_type: str
    enabled: bool = True
    disabled_steps: List[str] = Field(default_factory=list)
    skip_conditions: Dict[str, Dict[str, JsonValue]] = Field(default_factory=dict)
    parameters: Dict[str, JsonValue] = Field(default_factory=dict)

    def is_step_disabled(self, step_name: str) -> bool:
        return step_name in self.disabled_steps

    def matches_skip_condition(self, step_name: str, state_data: Dict[str, Any]) -> bool:
        """True when every expected value for ``step_name`` equals ``state_data``."""
        conditions = self.skip_conditions.get(step_name)
        if not conditions:
            return False
        missing = object()
        return all(
            state_data.get(key, missing) == expected
            for key, expected in conditions.items()
        )

    def get_parameter(self, key: str, default: Any = None) -> Any:
        return self.parameters.get(key, default)


class CustomizationProvider(Protocol):
    """Lookup of workflow customizations."""

    def find_customization(
        self, team_id: str | None, workflow_type: str
    ) -> Optional[WorkflowCustomization]:
        """Return the enabled customization for a team and workflow type."""

    def get_customization(self, customization_id: str) -> Optional[WorkflowCustomization]:
        """Return a customization by id regardless of its enabled flag."""


class InMemoryCustomizationProvider:
    """Customizations held in local memory."""

    def __init__(self, customizations: Iterable[WorkflowCustomization] = ()) -> None:
        self._items: Dict[str, WorkflowCustomization] = {}
        for customization in customizations:
            self.add(customization)

    def add(self, customization: WorkflowCustomization) -> None:
        self._items[customization.id] = customization

    def find_customization(
        self, team_id: str | None, workflow_type: str
    ) -> Optional[WorkflowCustomization]:
        if team_id is None:
            return None
        for customization in self._items.values():
            if (
                customization.team_id == team_id
                and customization.workflow_type == workflow_type
                and customization.enabled
            ):
                return customization
        return None

    def get_customization(self, customization_id: str) -> Optional[WorkflowCustomization]:
        return self._items.get(customization_id)


def load_customizations(path: str | Path) -> InMemoryCustomizationProvider:
    """Load customizations from a YAML file with a top-level ``customizations`` list."""

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    items = [
        WorkflowCustomization.model_validate(item)
        for item in data.get("customizations") or []
    ]
    logger.debug(f"Loaded {len(items)} workflow customizations from {path}")
    return InMemoryCustomizationProvider(items)


class StepSkipPolicy:
    """Decides whether a step is bypassed for a workflow state.

    The customization is looked up through ``state_data["customization_id"]``.
    A state without one, or whose customization is gone or disabled, skips
    nothing. Failures of the provider are raised as ``SkipPolicyError``
    (or ``ParameterLookupError`` for parameters) instead of being guessed.
    """

    def __init__(self, provider: CustomizationProvider | None = None) -> None:
        self._provider = provider

    def _customization(self, state: WorkflowState) -> Optional[WorkflowCustomization]:
        customization_id = state.state_data.get("customization_id")
        if customization_id is None or self._provider is None:
            return None
        customization = self._provider.get_customization(str(customization_id))
        if customization is None or not customization.enabled:
            return None
        return customization

    def should_skip(self, state: WorkflowState, step_name: str) -> bool:
        try:
            customization = self._customization(state)
        except Exception as exc:
            raise SkipPolicyError(
                f"Could not load customization for workflow {state.id}: {exc}"
            ) from exc
        if customization is None:
            return False
        return customization.is_step_disabled(step_name) or (
            customization.matches_skip_condition(step_name, state.state_data)
        )

    def get_parameter(self, state: WorkflowState, key: str, default: Any = None) -> Any:
        try:
            customization = self._customization(state)
        except Exception as exc:
            raise ParameterLookupError(
                f"Could not load parameter '{key}' for workflow {state.id}: {exc}"
            ) from exc
        if customization is None:
            return default
        return customization.get_parameter(key, default)
