"""Backend interface for the remote work tracker."""

from abc import ABC, abstractmethod

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


class Backend(ABC):
    """Abstract base class for tracker backends.

    Every method performs exactly one remote round trip (paginated listings
    aside) and raises ``TrackerError`` when the tracker rejects the call.
    Transport-level failures raise ``TrackerUnavailableError`` while the
    tracker has never answered, and ``TrackerTransportError`` afterwards.
    """

    @abstractmethod
    async def create_team(self, payload: TeamCreate) -> TeamRecord:
        """Create a team."""
        pass

    @abstractmethod
    async def get_team(self, team_id: str) -> TeamRecord:
        """Read a team by ID."""
        pass

    @abstractmethod
    async def list_workflow_states(self, team_id: str) -> list[WorkflowStateRecord]:
        """List the workflow states of a team, ordered by position."""
        pass

    @abstractmethod
    async def create_label(self, payload: LabelCreate) -> LabelRecord:
        """Create a label in a team."""
        pass

    @abstractmethod
    async def list_labels(self, team_id: str) -> list[LabelRecord]:
        """List the labels of a team."""
        pass

    @abstractmethod
    async def create_project(self, payload: ProjectCreate) -> ProjectRecord:
        """Create a project owned by a team."""
        pass

    @abstractmethod
    async def list_projects(self, team_id: str) -> list[ProjectRecord]:
        """List the projects of a team."""
        pass

    @abstractmethod
    async def create_milestone(self, payload: MilestoneCreate) -> MilestoneRecord:
        """Create a milestone in a project."""
        pass

    @abstractmethod
    async def list_milestones(self, project_id: str) -> list[MilestoneRecord]:
        """List the milestones of a project."""
        pass

    @abstractmethod
    async def create_work_item(self, payload: WorkItemCreate) -> CreatedWorkItem:
        """Create a work item."""
        pass

    @abstractmethod
    async def update_work_item(self, item_id: str, payload: WorkItemUpdate) -> None:
        """Update fields of a work item in place."""
        pass

    @abstractmethod
    async def get_work_item(self, item_id: str) -> WorkItemRecord:
        """Read a work item by ID or identifier."""
        pass

    @abstractmethod
    async def list_work_items(self, filters: WorkItemFilter) -> list[WorkItemRecord]:
        """List work items matching a filter."""
        pass

    @abstractmethod
    async def get_work_item_labels(self, item_id: str) -> list[LabelRecord]:
        """List the labels attached to a work item."""
        pass

    @abstractmethod
    async def get_work_item_assignee(self, item_id: str) -> UserRecord | None:
        """Read the assignee of a work item."""
        pass

    @abstractmethod
    async def get_work_item_project(self, item_id: str) -> NamedRef | None:
        """Read the project of a work item."""
        pass

    @abstractmethod
    async def create_relation(self, payload: RelationCreate) -> None:
        """Create a relation between two work items."""
        pass

    @abstractmethod
    async def list_work_item_relations(self, item_id: str) -> list[RelationRecord]:
        """List relations in which the work item is either endpoint."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass
