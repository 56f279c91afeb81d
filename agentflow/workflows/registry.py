"""Lookup of workflow classes by workflow type."""

from __future__ import annotations

from typing import Dict, List, Type, TypeVar

from ..errors import UnknownWorkflowType
from .base import BaseWorkflow

W = TypeVar("W", bound=Type[BaseWorkflow])

# Populated at import time by ``register_workflow``.
WORKFLOW_REGISTRY: Dict[str, Type[BaseWorkflow]] = {}


def register_workflow(cls: W) -> W:
    """Class decorator adding ``cls`` to ``WORKFLOW_REGISTRY`` under its type.

    Registering a second class for the same type replaces the first.
    """

    if not cls.workflow_type:
        raise TypeError(f"{cls.__name__} does not define workflow_type")
    WORKFLOW_REGISTRY[cls.workflow_type] = cls
    return cls


def get_workflow_class(workflow_type: str) -> Type[BaseWorkflow]:
    try:
        return WORKFLOW_REGISTRY[workflow_type]
    except KeyError:
        raise UnknownWorkflowType(workflow_type) from None


def workflow_types() -> List[str]:
    return sorted(WORKFLOW_REGISTRY)
