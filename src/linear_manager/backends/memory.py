"""In-memory backend implementation.

Keeps a whole workspace in process memory with the same rules the engine
relies on from Linear: ids are assigned on creation, label names are unique
per team, and every work item starts in the team's default state unless told
otherwise. Useful for rehearsing a restore or a bulk run before touching the
real workspace.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from linear_manager.backend import Backend
from linear_manager.exceptions import TrackerRequestError
from linear_manager.models import StateType
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
    StateRef,
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

DEFAULT_STATES = [
    ("Backlog", StateType.BACKLOG),
    ("Todo", StateType.UNSTARTED),
    ("In Progress", StateType.STARTED),
    ("Done", StateType.COMPLETED),
    ("Canceled", StateType.CANCELED),
]


@dataclass
class _StoredItem:
    id: str
    identifier: str
    number: int
    team_id: str
    title: str
    description: str
    priority: int
    state_id: str
    label_ids: list[str] = field(default_factory=list)
    project_id: str | None = None
    assignee: UserRecord | None = None
    created_at: str = ""


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryBackend(Backend):
    """Backend storing teams, labels, projects, work items and relations in memory."""

    def __init__(self) -> None:
        self.teams: dict[str, TeamRecord] = {}
        self.states: dict[str, list[WorkflowStateRecord]] = {}
        self.labels: dict[str, list[LabelRecord]] = {}
        self.projects: dict[str, ProjectRecord] = {}
        self.project_teams: dict[str, str] = {}
        self.milestones: dict[str, list[MilestoneRecord]] = {}
        self.items: dict[str, _StoredItem] = {}
        self.relations: list[tuple[str, str, str]] = []
        self.calls: list[str] = []
        self._counters: dict[str, int] = {}
        logger.debug("Memory backend initialized")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def add_team(
        self, name: str, key: str, description: str | None = None, team_id: str | None = None
    ) -> TeamRecord:
        """Create a team with the default workflow states without going through the call log."""
        team = TeamRecord(id=team_id or _new_id(), name=name, key=key.upper(), description=description)
        self.teams[team.id] = team
        self.states[team.id] = [
            WorkflowStateRecord(id=_new_id(), name=state_name, type=state_type, position=float(position))
            for position, (state_name, state_type) in enumerate(DEFAULT_STATES)
        ]
        self.labels[team.id] = []
        return team

    def _team(self, team_id: str) -> TeamRecord:
        if team_id not in self.teams:
            raise TrackerRequestError(f"Team not found: {team_id}")
        return self.teams[team_id]

    def _item(self, item_id: str) -> _StoredItem:
        if item_id in self.items:
            return self.items[item_id]
        for item in self.items.values():
            if item.identifier == item_id:
                return item
        raise TrackerRequestError(f"Issue not found: {item_id}")

    def _state(self, state_id: str) -> WorkflowStateRecord:
        for states in self.states.values():
            for state in states:
                if state.id == state_id:
                    return state
        raise TrackerRequestError(f"Workflow state not found: {state_id}")

    def _label(self, label_id: str) -> LabelRecord:
        for labels in self.labels.values():
            for label in labels:
                if label.id == label_id:
                    return label
        raise TrackerRequestError(f"Label not found: {label_id}")

    def _record(self, item: _StoredItem) -> WorkItemRecord:
        state = self._state(item.state_id)
        team = self.teams[item.team_id]
        project = self.projects.get(item.project_id) if item.project_id else None
        return WorkItemRecord(
            id=item.id,
            identifier=item.identifier,
            title=item.title,
            description=item.description,
            priority=item.priority,
            state=StateRef(id=state.id, name=state.name, type=state.type),
            team=NamedRef(id=team.id, name=team.name),
            project=NamedRef(id=project.id, name=project.name) if project else None,
            url=f"memory://issue/{item.identifier}",
            created_at=item.created_at,
        )

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def create_team(self, payload: TeamCreate) -> TeamRecord:
        self.calls.append("create_team")
        if any(t.key == payload.key for t in self.teams.values()):
            raise TrackerRequestError(f"Team key {payload.key} is already in use")
        return self.add_team(payload.name, payload.key, payload.description)

    async def get_team(self, team_id: str) -> TeamRecord:
        self.calls.append("get_team")
        return self._team(team_id)

    async def list_workflow_states(self, team_id: str) -> list[WorkflowStateRecord]:
        self.calls.append("list_workflow_states")
        self._team(team_id)
        return sorted(self.states[team_id], key=lambda s: s.position)

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    async def create_label(self, payload: LabelCreate) -> LabelRecord:
        self.calls.append("create_label")
        self._team(payload.team_id)
        if any(label.name == payload.name for label in self.labels[payload.team_id]):
            raise TrackerRequestError(f"Duplicate label name: {payload.name}")
        label = LabelRecord(id=_new_id(), name=payload.name, color=payload.color, description=payload.description)
        self.labels[payload.team_id].append(label)
        return label

    async def list_labels(self, team_id: str) -> list[LabelRecord]:
        self.calls.append("list_labels")
        self._team(team_id)
        return list(self.labels[team_id])

    # ------------------------------------------------------------------
    # Projects and milestones
    # ------------------------------------------------------------------

    async def create_project(self, payload: ProjectCreate) -> ProjectRecord:
        self.calls.append("create_project")
        self._team(payload.team_id)
        project = ProjectRecord(
            id=_new_id(),
            name=payload.name,
            description=payload.description,
            state=payload.state,
            start_date=payload.start_date,
            target_date=payload.target_date,
        )
        self.projects[project.id] = project
        self.project_teams[project.id] = payload.team_id
        self.milestones[project.id] = []
        return project

    async def list_projects(self, team_id: str) -> list[ProjectRecord]:
        self.calls.append("list_projects")
        self._team(team_id)
        return [p for p in self.projects.values() if self.project_teams[p.id] == team_id]

    async def create_milestone(self, payload: MilestoneCreate) -> MilestoneRecord:
        self.calls.append("create_milestone")
        if payload.project_id not in self.projects:
            raise TrackerRequestError(f"Project not found: {payload.project_id}")
        milestone = MilestoneRecord(
            id=_new_id(), name=payload.name, target_date=payload.target_date, description=payload.description
        )
        self.milestones[payload.project_id].append(milestone)
        return milestone

    async def list_milestones(self, project_id: str) -> list[MilestoneRecord]:
        self.calls.append("list_milestones")
        if project_id not in self.projects:
            raise TrackerRequestError(f"Project not found: {project_id}")
        return list(self.milestones[project_id])

    # ------------------------------------------------------------------
    # Work items
    # ------------------------------------------------------------------

    async def create_work_item(self, payload: WorkItemCreate) -> CreatedWorkItem:
        self.calls.append("create_work_item")
        team = self._team(payload.team_id)
        for label_id in payload.label_ids:
            self._label(label_id)
        if payload.project_id is not None and payload.project_id not in self.projects:
            raise TrackerRequestError(f"Project not found: {payload.project_id}")
        state_id = payload.state_id or min(self.states[team.id], key=lambda s: s.position).id
        self._state(state_id)

        number = self._counters.get(team.id, 0) + 1
        self._counters[team.id] = number
        item = _StoredItem(
            id=_new_id(),
            identifier=f"{team.key}-{number}",
            number=number,
            team_id=team.id,
            title=payload.title,
            description=payload.description,
            priority=int(payload.priority),
            state_id=state_id,
            label_ids=list(payload.label_ids),
            project_id=payload.project_id,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.items[item.id] = item
        return CreatedWorkItem(
            id=item.id, identifier=item.identifier, title=item.title, url=f"memory://issue/{item.identifier}"
        )

    async def update_work_item(self, item_id: str, payload: WorkItemUpdate) -> None:
        self.calls.append("update_work_item")
        item = self._item(item_id)
        if payload.title is not None:
            item.title = payload.title
        if payload.description is not None:
            item.description = payload.description
        if payload.priority is not None:
            item.priority = int(payload.priority)
        if payload.state_id is not None:
            self._state(payload.state_id)
            item.state_id = payload.state_id
        if payload.project_id is not None:
            if payload.project_id not in self.projects:
                raise TrackerRequestError(f"Project not found: {payload.project_id}")
            item.project_id = payload.project_id
        if payload.label_ids is not None:
            for label_id in payload.label_ids:
                self._label(label_id)
            item.label_ids = list(payload.label_ids)

    async def get_work_item(self, item_id: str) -> WorkItemRecord:
        self.calls.append("get_work_item")
        return self._record(self._item(item_id))

    async def list_work_items(self, filters: WorkItemFilter) -> list[WorkItemRecord]:
        self.calls.append("list_work_items")
        records = []
        for item in self.items.values():
            if filters.team_id is not None and item.team_id != filters.team_id:
                continue
            if filters.project_id is not None and item.project_id != filters.project_id:
                continue
            if filters.no_project and item.project_id is not None:
                continue
            if self._state(item.state_id).type in filters.exclude_state_types:
                continue
            records.append(self._record(item))
        return records[: filters.first]

    async def get_work_item_labels(self, item_id: str) -> list[LabelRecord]:
        self.calls.append("get_work_item_labels")
        return [self._label(label_id) for label_id in self._item(item_id).label_ids]

    async def get_work_item_assignee(self, item_id: str) -> UserRecord | None:
        self.calls.append("get_work_item_assignee")
        return self._item(item_id).assignee

    async def get_work_item_project(self, item_id: str) -> NamedRef | None:
        self.calls.append("get_work_item_project")
        project_id = self._item(item_id).project_id
        if project_id is None:
            return None
        project = self.projects[project_id]
        return NamedRef(id=project.id, name=project.name)

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    async def create_relation(self, payload: RelationCreate) -> None:
        self.calls.append("create_relation")
        source = self._item(payload.source_id)
        target = self._item(payload.target_id)
        relation = (source.id, target.id, payload.type.value)
        if relation in self.relations:
            raise TrackerRequestError("Relation already exists")
        self.relations.append(relation)

    async def list_work_item_relations(self, item_id: str) -> list[RelationRecord]:
        self.calls.append("list_work_item_relations")
        item = self._item(item_id)
        return [
            RelationRecord(
                type=relation_type,
                source=self._record(self.items[source_id]),
                target=self._record(self.items[target_id]),
            )
            for source_id, target_id, relation_type in self.relations
            if item.id in (source_id, target_id)
        ]
