"""Data models for linear manager."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class StateType(str, Enum):
    """Workflow state category of a work item."""

    BACKLOG = "backlog"
    UNSTARTED = "unstarted"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({StateType.COMPLETED, StateType.CANCELED})


class RelationType(str, Enum):
    """Kind of relation between two work items."""

    BLOCKS = "blocks"
    RELATED = "related"
    DUPLICATE = "duplicate"


class Priority(IntEnum):
    """Canonical priority scale. Lower values are more urgent.

    Linear itself encodes "no priority" as 0, which would sort ahead of
    urgent work; use ``priority_from_linear``/``priority_to_linear`` when
    crossing that boundary.
    """

    URGENT = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4
    NONE = 5


_PRIORITY_WORDS = {
    "urgent": Priority.URGENT,
    "critical": Priority.URGENT,
    "high": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "normal": Priority.MEDIUM,
    "low": Priority.LOW,
    "none": Priority.NONE,
    "no": Priority.NONE,
}


def priority_from_linear(value: int | None) -> Priority:
    """Map a Linear wire priority (0 = none, 1 = urgent .. 4 = low) to the canonical scale."""
    if value is None or value == 0:
        return Priority.NONE
    if 1 <= value <= 4:
        return Priority(value)
    raise ValueError(f"Invalid Linear priority: {value!r}")


def priority_to_linear(priority: Priority) -> int:
    """Map a canonical priority back to Linear's wire scale."""
    return 0 if priority == Priority.NONE else int(priority)


def parse_priority(value: "int | str | Priority | None", default: Priority = Priority.MEDIUM) -> Priority:
    """Parse user input into a canonical priority.

    Accepts canonical integers (1-5), numeric strings and the words
    urgent/high/medium/low/none.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Priority):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _PRIORITY_WORDS:
            return _PRIORITY_WORDS[word]
        if not word.isdigit():
            raise ValueError(f"Unknown priority: {value!r}")
        value = int(word)
    try:
        return Priority(value)
    except ValueError:
        raise ValueError(f"Priority must be between 1 (urgent) and 5 (none), got {value!r}") from None


@dataclass
class Label:
    """A team label. ``name`` is the join key across teams."""

    name: str
    color: str | None = None
    description: str | None = None
    id: str | None = None


@dataclass
class Milestone:
    """A named project milestone."""

    name: str
    target_date: str | None = None
    description: str | None = None
    id: str | None = None


@dataclass
class Project:
    """A project and its ordered milestones. ``name`` is the join key across teams."""

    name: str
    description: str | None = None
    state: str | None = None
    start_date: str | None = None
    target_date: str | None = None
    milestones: list[Milestone] = field(default_factory=list)
    id: str | None = None


@dataclass
class WorkflowState:
    """A workflow state of a team."""

    id: str
    name: str
    type: StateType
    position: float = 0.0


@dataclass
class Team:
    """A team and its workflow states."""

    id: str
    name: str
    key: str
    description: str | None = None
    states: list[WorkflowState] = field(default_factory=list)

    @property
    def default_state(self) -> WorkflowState | None:
        """First workflow state by position, which Linear treats as the default."""
        if not self.states:
            return None
        return min(self.states, key=lambda s: s.position)

    def find_state(self, name: str | None = None, state_type: StateType | None = None) -> WorkflowState | None:
        """Find a state by name (case-insensitive), falling back to the first state of a type."""
        if name:
            for state in self.states:
                if state.name.lower() == name.lower():
                    return state
        if state_type is not None:
            candidates = [s for s in self.states if s.type == state_type]
            if candidates:
                return min(candidates, key=lambda s: s.position)
        return None


@dataclass
class WorkItem:
    """A work item (issue).

    Before remote creation a work item is known only by ``local_index``;
    afterwards it also carries ``remote_id``.
    """

    title: str
    description: str = ""
    priority: Priority = Priority.NONE
    state: StateType = StateType.BACKLOG
    labels: set[str] = field(default_factory=set)
    project: str | None = None
    local_index: int | None = None
    remote_id: str | None = None
    identifier: str | None = None
    url: str | None = None
    state_name: str | None = None
    created_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def ref(self) -> "int | str":
        """Key of this item inside a ``GraphModel``."""
        if self.local_index is not None:
            return self.local_index
        if self.remote_id is not None:
            return self.remote_id
        raise ValueError(f"Work item {self.title!r} has neither a local index nor a remote id")


@dataclass
class Relation:
    """A directed relation. For ``blocks``, ``source`` must finish before ``target`` can start."""

    source: "int | str"
    target: "int | str"
    type: RelationType = RelationType.BLOCKS


@dataclass
class WorkItemSpec:
    """Request to create one work item as part of a batch.

    ``blocked_by`` holds positions of other specs in the same batch.
    """

    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    label_names: list[str] = field(default_factory=list)
    blocked_by: list[int] = field(default_factory=list)
