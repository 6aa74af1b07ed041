"""Sequential, throttled access to a tracker backend.

Every engine component talks to the tracker through ``RateLimitedClient``.
Calls are awaited one at a time; mutating calls additionally wait on a
``Throttle`` first. Failures of individual calls come back as a failed
``CallResult`` instead of an exception so batch operations can record them
and move on. Nothing is retried.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog
from pydantic import ValidationError

from linear_manager.backend import Backend
from linear_manager.exceptions import TrackerError, TrackerRequestError
from linear_manager.payloads import (
    CreatedWorkItem,
    LabelCreate,
    LabelRecord,
    MilestoneCreate,
    MilestoneRecord,
    NamedRef,
    ProjectCreate,
    ProjectRecord,
    RelationCreate,
    RelationRecord,
    TeamCreate,
    TeamRecord,
    UserRecord,
    WorkflowStateRecord,
    WorkItemCreate,
    WorkItemFilter,
    WorkItemRecord,
    WorkItemUpdate,
)

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_DELAY = 0.2


@dataclass
class CallResult(Generic[T]):
    """Outcome of one remote call."""

    operation: str
    value: T | None = None
    error: TrackerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class _TokenBucket:
    """Token bucket refilled continuously at ``rate`` tokens per minute."""

    def __init__(self, rate: float, burst: int, clock: Callable[[], float]) -> None:
        self.rate = rate
        self.burst = burst
        self.tokens = float(burst)
        self.clock = clock
        self.last_refill = clock()

    def delay_for_next(self) -> float:
        """Consume a token, returning how long the caller must wait for it."""
        now = self.clock()
        self.tokens = min(self.burst, self.tokens + (now - self.last_refill) * (self.rate / 60.0))
        self.last_refill = now
        self.tokens -= 1.0
        if self.tokens >= 0:
            return 0.0
        return -self.tokens * 60.0 / self.rate


class Throttle:
    """Spaces mutating calls.

    Enforces a fixed minimum ``delay`` between consecutive mutations and,
    when ``per_minute`` is set, a token-bucket ceiling on sustained rate.

    Args:
        delay: Minimum seconds between two mutating calls
        per_minute: Optional sustained limit of mutations per minute
        burst: Bucket size for ``per_minute``
        sleep: Coroutine used to wait (injectable for tests)
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        delay: float = DEFAULT_DELAY,
        per_minute: float | None = None,
        burst: int = 10,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if delay < 0:
            raise ValueError("Throttle delay must not be negative")
        if per_minute is not None and per_minute <= 0:
            raise ValueError("Throttle per_minute must be positive")
        self.delay = delay
        self.sleep = sleep
        self.clock = clock
        self.bucket = _TokenBucket(per_minute, max(burst, 1), clock) if per_minute else None
        self._last: float | None = None

    async def wait(self) -> None:
        """Wait until the next mutation may start."""
        wait_for = 0.0
        if self._last is not None:
            wait_for = max(0.0, self.delay - (self.clock() - self._last))
        if self.bucket is not None:
            wait_for = max(wait_for, self.bucket.delay_for_next())
        if wait_for > 0:
            logger.debug("Throttling mutation", wait_seconds=round(wait_for, 3))
            await self.sleep(wait_for)
        self._last = self.clock()


class RateLimitedClient:
    """Sequential adapter over a backend that reports per-call success or failure."""

    def __init__(self, backend: Backend, throttle: Throttle | None = None) -> None:
        self.backend = backend
        self.throttle = throttle or Throttle()

    async def close(self) -> None:
        await self.backend.close()

    async def _call(self, operation: str, call: Callable[[], Awaitable[T]], mutating: bool) -> CallResult[T]:
        if mutating:
            await self.throttle.wait()
        try:
            value = await call()
        except ValidationError as e:
            logger.warning("Rejected invalid request", operation=operation, error=str(e))
            return CallResult(operation, error=TrackerRequestError(f"Invalid {operation} request: {e}"))
        except TrackerError as e:
            logger.warning("Tracker call failed", operation=operation, error=str(e))
            return CallResult(operation, error=e)
        logger.debug("Tracker call succeeded", operation=operation)
        return CallResult(operation, value=value)

    # Teams

    async def create_team(self, name: str, key: str, description: str | None = None) -> CallResult[TeamRecord]:
        return await self._call(
            "create_team",
            lambda: self.backend.create_team(TeamCreate(name=name, key=key, description=description)),
            mutating=True,
        )

    async def get_team(self, team_id: str) -> CallResult[TeamRecord]:
        return await self._call("get_team", lambda: self.backend.get_team(team_id), mutating=False)

    async def list_workflow_states(self, team_id: str) -> CallResult[list[WorkflowStateRecord]]:
        return await self._call(
            "list_workflow_states", lambda: self.backend.list_workflow_states(team_id), mutating=False
        )

    # Labels

    async def create_label(
        self, team_id: str, name: str, color: str | None = None, description: str | None = None
    ) -> CallResult[LabelRecord]:
        return await self._call(
            "create_label",
            lambda: self.backend.create_label(
                LabelCreate(team_id=team_id, name=name, color=color, description=description)
            ),
            mutating=True,
        )

    async def list_labels(self, team_id: str) -> CallResult[list[LabelRecord]]:
        return await self._call("list_labels", lambda: self.backend.list_labels(team_id), mutating=False)

    # Projects and milestones

    async def create_project(
        self,
        team_id: str,
        name: str,
        description: str | None = None,
        state: str | None = None,
        start_date: str | None = None,
        target_date: str | None = None,
    ) -> CallResult[ProjectRecord]:
        return await self._call(
            "create_project",
            lambda: self.backend.create_project(
                ProjectCreate(
                    team_id=team_id,
                    name=name,
                    description=description,
                    state=state,
                    start_date=start_date,
                    target_date=target_date,
                )
            ),
            mutating=True,
        )

    async def list_projects(self, team_id: str) -> CallResult[list[ProjectRecord]]:
        return await self._call("list_projects", lambda: self.backend.list_projects(team_id), mutating=False)

    async def create_milestone(
        self, project_id: str, name: str, target_date: str | None = None, description: str | None = None
    ) -> CallResult[MilestoneRecord]:
        return await self._call(
            "create_milestone",
            lambda: self.backend.create_milestone(
                MilestoneCreate(project_id=project_id, name=name, target_date=target_date, description=description)
            ),
            mutating=True,
        )

    async def list_milestones(self, project_id: str) -> CallResult[list[MilestoneRecord]]:
        return await self._call("list_milestones", lambda: self.backend.list_milestones(project_id), mutating=False)

    # Work items

    async def create_work_item(self, **fields: Any) -> CallResult[CreatedWorkItem]:
        """Create a work item. ``fields`` are the attributes of ``WorkItemCreate``."""
        return await self._call(
            "create_work_item", lambda: self.backend.create_work_item(WorkItemCreate(**fields)), mutating=True
        )

    async def update_work_item(self, item_id: str, **fields: Any) -> CallResult[None]:
        """Update a work item. ``fields`` are the attributes of ``WorkItemUpdate``."""
        return await self._call(
            "update_work_item",
            lambda: self.backend.update_work_item(item_id, WorkItemUpdate(**fields)),
            mutating=True,
        )

    async def get_work_item(self, item_id: str) -> CallResult[WorkItemRecord]:
        return await self._call("get_work_item", lambda: self.backend.get_work_item(item_id), mutating=False)

    async def list_work_items(self, **filters: Any) -> CallResult[list[WorkItemRecord]]:
        """List work items. ``filters`` are the attributes of ``WorkItemFilter``."""
        return await self._call(
            "list_work_items", lambda: self.backend.list_work_items(WorkItemFilter(**filters)), mutating=False
        )

    async def get_work_item_labels(self, item_id: str) -> CallResult[list[LabelRecord]]:
        return await self._call(
            "get_work_item_labels", lambda: self.backend.get_work_item_labels(item_id), mutating=False
        )

    async def get_work_item_assignee(self, item_id: str) -> CallResult[UserRecord | None]:
        return await self._call(
            "get_work_item_assignee", lambda: self.backend.get_work_item_assignee(item_id), mutating=False
        )

    async def get_work_item_project(self, item_id: str) -> CallResult[NamedRef | None]:
        return await self._call(
            "get_work_item_project", lambda: self.backend.get_work_item_project(item_id), mutating=False
        )

    # Relations

    async def create_relation(self, source_id: str, target_id: str, relation_type: Any = "blocks") -> CallResult[None]:
        return await self._call(
            "create_relation",
            lambda: self.backend.create_relation(
                RelationCreate(source_id=source_id, target_id=target_id, type=relation_type)
            ),
            mutating=True,
        )

    async def list_work_item_relations(self, item_id: str) -> CallResult[list[RelationRecord]]:
        return await self._call(
            "list_work_item_relations", lambda: self.backend.list_work_item_relations(item_id), mutating=False
        )
