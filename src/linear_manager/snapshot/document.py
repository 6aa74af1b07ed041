"""Portable snapshot document.

A snapshot holds one team's labels, projects (with milestones) and work
items. Items refer to labels and projects by name, never by id, so a
snapshot can be restored into any team. Relations refer to items by their
position in ``issues``.

Documents without a ``version`` key come from the older backup tooling,
which stored Linear's wire priorities (0 = none). They are read as version 1
with their priorities mapped onto the canonical scale.
"""

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from linear_manager.exceptions import SnapshotError
from linear_manager.graph import GraphModel
from linear_manager.models import (
    Label,
    Milestone,
    Priority,
    Project,
    RelationType,
    StateType,
    WorkItem,
    parse_priority,
    priority_from_linear,
)

logger = structlog.get_logger()

SNAPSHOT_VERSION = 1


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NameRef(_Document):
    name: str


class SnapshotAssignee(_Document):
    name: str
    email: str | None = None


class SnapshotTeam(_Document):
    name: str
    description: str | None = None
    key: str | None = None


class SnapshotLabel(_Document):
    name: str
    color: str | None = None
    description: str | None = None


class SnapshotMilestone(_Document):
    name: str
    target_date: str | None = None
    description: str | None = None


class SnapshotProject(_Document):
    name: str
    description: str | None = None
    state: str | None = None
    start_date: str | None = None
    target_date: str | None = None
    milestones: list[SnapshotMilestone] = []

    @field_validator("milestones", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return v or []


class SnapshotIssue(_Document):
    title: str
    description: str | None = None
    priority: Priority = Priority.NONE
    state: str | None = None
    state_type: StateType | None = None
    labels: list[NameRef] = []
    project: NameRef | None = None
    assignee: SnapshotAssignee | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v: Any) -> Any:
        return parse_priority(v, default=Priority.NONE)

    @field_validator("labels", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return v or []


class SnapshotRelation(_Document):
    type: RelationType
    source: int
    target: int


class Snapshot(_Document):
    """One team's exported graph."""

    version: int = SNAPSHOT_VERSION
    team: SnapshotTeam
    labels: list[SnapshotLabel] = []
    projects: list[SnapshotProject] = []
    issues: list[SnapshotIssue] = []
    relations: list[SnapshotRelation] = []

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "version" in data:
            return data
        data = dict(data)
        data["version"] = SNAPSHOT_VERSION
        issues = []
        for issue in data.get("issues") or []:
            if isinstance(issue, dict) and isinstance(issue.get("priority"), int):
                issue = {**issue, "priority": priority_from_linear(issue["priority"])}
            issues.append(issue)
        data["issues"] = issues
        for key in ("labels", "projects", "relations"):
            data[key] = data.get(key) or []
        return data

    @model_validator(mode="after")
    def _check(self) -> "Snapshot":
        if self.version > SNAPSHOT_VERSION:
            raise ValueError(f"Snapshot version {self.version} is newer than supported version {SNAPSHOT_VERSION}")
        for relation in self.relations:
            for index in (relation.source, relation.target):
                if not 0 <= index < len(self.issues):
                    raise ValueError(f"Relation refers to issue {index}, but the snapshot has {len(self.issues)}")
            if relation.source == relation.target:
                raise ValueError(f"Relation of issue {relation.source} to itself")
        return self

    def label_names(self) -> set[str]:
        return {label.name for label in self.labels}

    def project_names(self) -> set[str]:
        return {project.name for project in self.projects}

    def counts(self) -> dict[str, int]:
        return {
            "labels": len(self.labels),
            "projects": len(self.projects),
            "milestones": sum(len(p.milestones) for p in self.projects),
            "issues": len(self.issues),
            "relations": len(self.relations),
        }


def parse_snapshot(data: Any) -> Snapshot:
    """Validate a decoded snapshot document.

    Raises:
        SnapshotError: If the document does not have the snapshot shape
    """
    try:
        return Snapshot.model_validate(data)
    except ValidationError as e:
        raise SnapshotError(f"Invalid snapshot: {e}") from e


def load_snapshot(path: "str | Path") -> Snapshot:
    """Read a snapshot JSON file.

    Raises:
        SnapshotError: If the file is missing, unreadable, not JSON, or not a snapshot
    """
    path = Path(path)
    logger.debug("Loading snapshot", path=str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SnapshotError(f"Cannot read snapshot file {path}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Snapshot file {path} is not valid JSON: {e}") from e
    snapshot = parse_snapshot(data)
    logger.info("Snapshot loaded", path=str(path), **snapshot.counts())
    return snapshot


def dump_snapshot(snapshot: Snapshot, path: "str | Path") -> Path:
    """Write a snapshot as indented JSON, creating parent directories.

    Raises:
        SnapshotError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(snapshot.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as e:
        raise SnapshotError(f"Cannot write snapshot file {path}: {e}") from e
    logger.info("Snapshot saved", path=str(path))
    return path


def snapshot_to_graph(snapshot: Snapshot) -> GraphModel:
    """Build a graph of the snapshot, keyed by issue position."""
    graph = GraphModel()
    for label in snapshot.labels:
        graph.add_label(Label(name=label.name, color=label.color, description=label.description))
    for project in snapshot.projects:
        graph.add_project(
            Project(
                name=project.name,
                description=project.description,
                state=project.state,
                start_date=project.start_date,
                target_date=project.target_date,
                milestones=[
                    Milestone(name=m.name, target_date=m.target_date, description=m.description)
                    for m in project.milestones
                ],
            )
        )
    for index, issue in enumerate(snapshot.issues):
        graph.add_work_item(
            WorkItem(
                title=issue.title,
                description=issue.description or "",
                priority=issue.priority,
                state=issue.state_type or StateType.BACKLOG,
                state_name=issue.state,
                labels={label.name for label in issue.labels},
                project=issue.project.name if issue.project else None,
                local_index=index,
            )
        )
    for relation in snapshot.relations:
        graph.add_relation(relation.source, relation.target, relation.type)
    return graph
