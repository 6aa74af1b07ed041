"""Export a live team into a ``Snapshot``."""

from dataclasses import dataclass

import structlog

from linear_manager.client import CallResult, RateLimitedClient
from linear_manager.exceptions import SnapshotError, TeamResolutionError
from linear_manager.payloads import WorkItemRecord
from linear_manager.snapshot.document import (
    NameRef,
    Snapshot,
    SnapshotAssignee,
    SnapshotIssue,
    SnapshotLabel,
    SnapshotMilestone,
    SnapshotProject,
    SnapshotRelation,
    SnapshotTeam,
)

logger = structlog.get_logger()


@dataclass
class ExportOptions:
    """Which parts of a team to export."""

    include_labels: bool = True
    include_projects: bool = True
    include_milestones: bool = True
    include_issues: bool = True
    include_relations: bool = True


class SnapshotExporter:
    """Walks a team through the client and builds a snapshot of it.

    Every item costs one round trip per sub-resource (labels, assignee,
    project, relations). A failed sub-fetch leaves that field empty and the
    export carries on. Failing to list the team's labels, projects or
    items aborts the export, since the snapshot would silently be missing
    whole categories.
    """

    def __init__(self, client: RateLimitedClient, options: ExportOptions | None = None) -> None:
        self.client = client
        self.options = options or ExportOptions()
        self.downgraded = 0

    async def export(self, team_id: str) -> Snapshot:
        """Export ``team_id``.

        Raises:
            TeamResolutionError: If the team cannot be fetched
            SnapshotError: If a top-level listing fails
        """
        log = logger.bind(team_id=team_id)
        team_result = await self.client.get_team(team_id)
        if not team_result.ok:
            raise TeamResolutionError(f"Cannot fetch team {team_id}: {team_result.error}")
        team = team_result.value
        log.info("Exporting team", team=team.name, key=team.key)

        labels = await self._labels(team_id) if self.options.include_labels else []
        projects = await self._projects(team_id) if self.options.include_projects else []

        issues: list[SnapshotIssue] = []
        relations: list[SnapshotRelation] = []
        if self.options.include_issues:
            records = self._required(await self.client.list_work_items(team_id=team_id), "work items")
            for record in records:
                issues.append(await self._issue(record))
            if self.options.include_relations:
                relations = await self._relations(records)

        snapshot = Snapshot(
            team=SnapshotTeam(name=team.name, description=team.description, key=team.key),
            labels=labels,
            projects=projects,
            issues=issues,
            relations=relations,
        )
        log.info("Team exported", downgraded_fields=self.downgraded, **snapshot.counts())
        return snapshot

    def _required(self, result: CallResult, what: str):
        if not result.ok:
            raise SnapshotError(f"Cannot list {what}: {result.error}")
        return result.value or []

    async def _labels(self, team_id: str) -> list[SnapshotLabel]:
        records = self._required(await self.client.list_labels(team_id), "labels")
        return [SnapshotLabel(name=r.name, color=r.color, description=r.description) for r in records]

    async def _projects(self, team_id: str) -> list[SnapshotProject]:
        projects = []
        for record in self._required(await self.client.list_projects(team_id), "projects"):
            milestones: list[SnapshotMilestone] = []
            if self.options.include_milestones:
                listed = await self.client.list_milestones(record.id)
                if listed.ok:
                    milestones = [
                        SnapshotMilestone(name=m.name, target_date=m.target_date, description=m.description)
                        for m in listed.value or []
                    ]
                else:
                    self._downgrade("milestones", record.name, listed)
            projects.append(
                SnapshotProject(
                    name=record.name,
                    description=record.description,
                    state=record.state,
                    start_date=record.start_date,
                    target_date=record.target_date,
                    milestones=milestones,
                )
            )
        return projects

    async def _issue(self, record: WorkItemRecord) -> SnapshotIssue:
        labels: list[NameRef] = []
        listed = await self.client.get_work_item_labels(record.id)
        if listed.ok:
            labels = [NameRef(name=label.name) for label in listed.value or []]
        else:
            self._downgrade("labels", record.title, listed)

        assignee = None
        fetched = await self.client.get_work_item_assignee(record.id)
        if fetched.ok:
            if fetched.value is not None:
                assignee = SnapshotAssignee(name=fetched.value.name, email=fetched.value.email)
        else:
            self._downgrade("assignee", record.title, fetched)

        project = None
        if self.options.include_projects:
            fetched_project = await self.client.get_work_item_project(record.id)
            if fetched_project.ok:
                if fetched_project.value is not None:
                    project = NameRef(name=fetched_project.value.name)
            else:
                self._downgrade("project", record.title, fetched_project)

        return SnapshotIssue(
            title=record.title,
            description=record.description,
            priority=record.priority,
            state=record.state.name if record.state else None,
            state_type=record.state.type if record.state else None,
            labels=labels,
            project=project,
            assignee=assignee,
        )

    async def _relations(self, records: list[WorkItemRecord]) -> list[SnapshotRelation]:
        positions = {record.id: index for index, record in enumerate(records)}
        seen: set[tuple[str, int, int]] = set()
        relations = []
        for record in records:
            listed = await self.client.list_work_item_relations(record.id)
            if not listed.ok:
                self._downgrade("relations", record.title, listed)
                continue
            for relation in listed.value or []:
                source = positions.get(relation.source.id)
                target = positions.get(relation.target.id)
                if source is None or target is None:
                    # Edge leaves the team.
                    logger.debug("Skipping relation outside the team", source=relation.source.id, target=relation.target.id)
                    continue
                key = (relation.type.value, source, target)
                if key in seen or source == target:
                    continue
                seen.add(key)
                relations.append(SnapshotRelation(type=relation.type, source=source, target=target))
        return relations

    def _downgrade(self, field_name: str, owner: str, result: CallResult) -> None:
        self.downgraded += 1
        logger.warning("Could not fetch field, leaving it empty", field=field_name, owner=owner, error=str(result.error))


async def export_team(client: RateLimitedClient, team_id: str, options: ExportOptions | None = None) -> Snapshot:
    """Shortcut for ``SnapshotExporter(client, options).export(team_id)``."""
    return await SnapshotExporter(client, options).export(team_id)
