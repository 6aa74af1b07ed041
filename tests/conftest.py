"""Shared fixtures: an in-memory tracker with failure injection."""

from collections.abc import Callable
from typing import Any

import pytest

from linear_manager.backends.memory import MemoryBackend
from linear_manager.client import RateLimitedClient, Throttle
from linear_manager.context import RunContext
from linear_manager.exceptions import LinearManagerError, TrackerRequestError
from linear_manager.payloads import TeamRecord


class FlakyBackend(MemoryBackend):
    """Memory backend whose calls can be made to fail on demand."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: dict[str, tuple[Callable[[Any], bool], type[LinearManagerError]]] = {}

    def fail(
        self,
        operation: str,
        when: Callable[[Any], bool] = lambda arg: True,
        error: type[LinearManagerError] = TrackerRequestError,
    ) -> None:
        """Make ``operation`` raise ``error`` whenever ``when(argument)`` is true."""
        self.failures[operation] = (when, error)

    def _check(self, operation: str, arg: Any) -> None:
        if operation in self.failures:
            when, error = self.failures[operation]
            if when(arg):
                self.calls.append(operation)
                raise error(f"Injected failure in {operation}")

    async def create_team(self, payload):
        self._check("create_team", payload)
        return await super().create_team(payload)

    async def get_team(self, team_id):
        self._check("get_team", team_id)
        return await super().get_team(team_id)

    async def list_workflow_states(self, team_id):
        self._check("list_workflow_states", team_id)
        return await super().list_workflow_states(team_id)

    async def create_label(self, payload):
        self._check("create_label", payload)
        return await super().create_label(payload)

    async def list_labels(self, team_id):
        self._check("list_labels", team_id)
        return await super().list_labels(team_id)

    async def create_project(self, payload):
        self._check("create_project", payload)
        return await super().create_project(payload)

    async def list_projects(self, team_id):
        self._check("list_projects", team_id)
        return await super().list_projects(team_id)

    async def create_milestone(self, payload):
        self._check("create_milestone", payload)
        return await super().create_milestone(payload)

    async def list_milestones(self, project_id):
        self._check("list_milestones", project_id)
        return await super().list_milestones(project_id)

    async def create_work_item(self, payload):
        self._check("create_work_item", payload)
        return await super().create_work_item(payload)

    async def update_work_item(self, item_id, payload):
        self._check("update_work_item", item_id)
        return await super().update_work_item(item_id, payload)

    async def list_work_items(self, filters):
        self._check("list_work_items", filters)
        return await super().list_work_items(filters)

    async def get_work_item_labels(self, item_id):
        self._check("get_work_item_labels", item_id)
        return await super().get_work_item_labels(item_id)

    async def get_work_item_assignee(self, item_id):
        self._check("get_work_item_assignee", item_id)
        return await super().get_work_item_assignee(item_id)

    async def get_work_item_project(self, item_id):
        self._check("get_work_item_project", item_id)
        return await super().get_work_item_project(item_id)

    async def create_relation(self, payload):
        self._check("create_relation", payload)
        return await super().create_relation(payload)

    async def list_work_item_relations(self, item_id):
        self._check("list_work_item_relations", item_id)
        return await super().list_work_item_relations(item_id)


@pytest.fixture
def backend() -> FlakyBackend:
    """Create an empty in-memory backend."""
    return FlakyBackend()


@pytest.fixture
def team(backend: FlakyBackend) -> TeamRecord:
    """Create a team with the default workflow states."""
    return backend.add_team("Engineering", "ENG", "Core engineering")


@pytest.fixture
def client(backend: FlakyBackend) -> RateLimitedClient:
    """Create a client that does not wait between mutations."""
    return RateLimitedClient(backend, Throttle(delay=0))


@pytest.fixture
def context(client: RateLimitedClient) -> RunContext:
    """Create a fresh run context."""
    return RunContext(client)
