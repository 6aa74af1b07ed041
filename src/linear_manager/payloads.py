"""Request and response payloads exchanged with tracker backends.

Every remote operation takes a validated request model and returns validated
record models, so shape errors surface at the boundary instead of as missing
keys deep inside the engine. Records accept Linear's camelCase field names as
well as the snake_case attribute names.
"""

import re

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from linear_manager.models import (
    Label,
    Milestone,
    Priority,
    Project,
    RelationType,
    StateType,
    Team,
    WorkflowState,
    WorkItem,
)

MAX_TITLE_LENGTH = 255

_TEAM_KEY_RE = re.compile(r"^[A-Z0-9]{1,7}$")
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _required_text(value: str, field_name: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{field_name} must not be empty")
    return value


def _plain_date(value: str | None, field_name: str) -> str | None:
    # Linear takes plain dates; exported values may carry a time part.
    if value is None:
        return None
    if not _DATE_RE.match(value):
        raise ValueError(f"{field_name} {value!r} must start with YYYY-MM-DD")
    return value[:10]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TeamCreate(_Payload):
    name: str
    key: str
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_text(v, "Team name")

    @field_validator("key")
    @classmethod
    def _key(cls, v: str) -> str:
        v = v.strip().upper()
        if not _TEAM_KEY_RE.fullmatch(v):
            raise ValueError(f"Team key {v!r} must be 1-7 letters or digits")
        return v


class LabelCreate(_Payload):
    team_id: str
    name: str
    color: str | None = None
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_text(v, "Label name")

    @field_validator("color")
    @classmethod
    def _color(cls, v: str | None) -> str | None:
        if v is not None and not _COLOR_RE.fullmatch(v):
            raise ValueError(f"Label color {v!r} must look like #rrggbb")
        return v


class ProjectCreate(_Payload):
    team_id: str
    name: str
    description: str | None = None
    state: str | None = None
    start_date: str | None = None
    target_date: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_text(v, "Project name")

    @field_validator("start_date", "target_date")
    @classmethod
    def _dates(cls, v: str | None) -> str | None:
        return _plain_date(v, "Project date")


class MilestoneCreate(_Payload):
    project_id: str
    name: str
    target_date: str | None = None
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_text(v, "Milestone name")

    @field_validator("target_date")
    @classmethod
    def _target_date(cls, v: str | None) -> str | None:
        return _plain_date(v, "Milestone target date")


class WorkItemCreate(_Payload):
    team_id: str
    title: str
    description: str = ""
    priority: Priority = Priority.NONE
    label_ids: tuple[str, ...] = ()
    project_id: str | None = None
    state_id: str | None = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        return _required_text(v, "Title")[:MAX_TITLE_LENGTH]

    @field_validator("label_ids")
    @classmethod
    def _label_ids(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(v))


class WorkItemUpdate(_Payload):
    title: str | None = None
    description: str | None = None
    priority: Priority | None = None
    state_id: str | None = None
    project_id: str | None = None
    label_ids: tuple[str, ...] | None = None

    @model_validator(mode="after")
    def _not_empty(self) -> "WorkItemUpdate":
        if not self.model_dump(exclude_none=True):
            raise ValueError("An update must change at least one field")
        return self


class RelationCreate(_Payload):
    source_id: str
    target_id: str
    type: RelationType = RelationType.BLOCKS

    @model_validator(mode="after")
    def _distinct(self) -> "RelationCreate":
        if self.source_id == self.target_id:
            raise ValueError("A work item cannot be related to itself")
        return self


class WorkItemFilter(_Payload):
    """Selection of work items. ``no_project`` selects orphans, ``first=None`` reads every match."""

    team_id: str | None = None
    project_id: str | None = None
    no_project: bool = False
    exclude_state_types: tuple[StateType, ...] = ()
    first: int | None = None

    @model_validator(mode="after")
    def _consistent(self) -> "WorkItemFilter":
        if self.team_id is None and self.project_id is None:
            raise ValueError("Filter needs a team or a project")
        if self.project_id is not None and self.no_project:
            raise ValueError("Cannot filter by project and for items without a project at once")
        if self.first is not None and self.first < 1:
            raise ValueError("first must be positive")
        return self


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class NamedRef(_Payload):
    id: str
    name: str


class StateRef(_Payload):
    id: str
    name: str
    type: StateType


class UserRecord(_Payload):
    id: str
    name: str
    email: str | None = None


class TeamRecord(_Payload):
    id: str
    name: str
    key: str
    description: str | None = None

    def to_model(self, states: "list[WorkflowStateRecord] | None" = None) -> Team:
        return Team(
            id=self.id,
            name=self.name,
            key=self.key,
            description=self.description,
            states=[s.to_model() for s in states or []],
        )


class WorkflowStateRecord(_Payload):
    id: str
    name: str
    type: StateType
    position: float = 0.0

    def to_model(self) -> WorkflowState:
        return WorkflowState(id=self.id, name=self.name, type=self.type, position=self.position)


class LabelRecord(_Payload):
    id: str
    name: str
    color: str | None = None
    description: str | None = None

    def to_model(self) -> Label:
        return Label(name=self.name, color=self.color, description=self.description, id=self.id)


class ProjectRecord(_Payload):
    id: str
    name: str
    description: str | None = None
    state: str | None = None
    start_date: str | None = None
    target_date: str | None = None

    def to_model(self, milestones: "list[MilestoneRecord] | None" = None) -> Project:
        return Project(
            name=self.name,
            description=self.description,
            state=self.state,
            start_date=self.start_date,
            target_date=self.target_date,
            milestones=[m.to_model() for m in milestones or []],
            id=self.id,
        )


class MilestoneRecord(_Payload):
    id: str
    name: str
    target_date: str | None = None
    description: str | None = None

    def to_model(self) -> Milestone:
        return Milestone(name=self.name, target_date=self.target_date, description=self.description, id=self.id)


class CreatedWorkItem(_Payload):
    id: str
    title: str
    identifier: str | None = None
    url: str | None = None


class WorkItemRecord(_Payload):
    id: str
    title: str
    identifier: str | None = None
    description: str | None = None
    priority: Priority = Priority.NONE
    state: StateRef | None = None
    team: NamedRef | None = None
    project: NamedRef | None = None
    url: str | None = None
    created_at: str | None = None

    def to_work_item(self, labels: "list[str] | None" = None) -> WorkItem:
        return WorkItem(
            title=self.title,
            description=self.description or "",
            priority=self.priority,
            state=self.state.type if self.state else StateType.BACKLOG,
            state_name=self.state.name if self.state else None,
            labels=set(labels or []),
            project=self.project.name if self.project else None,
            remote_id=self.id,
            identifier=self.identifier,
            url=self.url,
            created_at=self.created_at,
        )


class RelationRecord(_Payload):
    """A relation as stored remotely: ``source`` blocks/relates to/duplicates ``target``."""

    type: RelationType
    source: WorkItemRecord
    target: WorkItemRecord
    id: str | None = None
