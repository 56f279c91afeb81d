import logging

import pytest

import agentflow.persistence as persistence
from agentflow.customization import InMemoryCustomizationProvider
from agentflow.orchestrator import WorkflowOrchestrator
from agentflow.persistence import InMemoryWorkflowRepository


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from real config files, databases and log handlers."""
    monkeypatch.setenv("AGENTFLOW_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.delenv("AGENTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("AGENTFLOW_LOG_LEVEL", raising=False)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None
    logger = logging.getLogger("agentflow")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


@pytest.fixture
def repository():
    return InMemoryWorkflowRepository()


@pytest.fixture
def customizations():
    return InMemoryCustomizationProvider()


@pytest.fixture
def orchestrator(repository, customizations):
    return WorkflowOrchestrator(repository, customizations)
