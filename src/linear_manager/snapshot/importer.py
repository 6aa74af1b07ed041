"""Rebuild a ``Snapshot`` inside a target team.

Old remote ids are never reused. Labels and projects are matched by name:
each phase fills a ``name -> new id`` map that later phases read, so an
item can only point at a label or project that already exists in the
target. Phases run strictly in the order labels, projects, items,
relations.
"""

from dataclasses import dataclass, field

from linear_manager.context import RunContext, RunReport
from linear_manager.exceptions import TeamResolutionError
from linear_manager.models import Team
from linear_manager.snapshot.document import Snapshot, SnapshotIssue

DEFAULT_TEAM_KEY = "APP"


def derive_team_key(key: str | None) -> str:
    """Key for a restored team: first four characters of the source key, upper-cased."""
    return (key or DEFAULT_TEAM_KEY)[:4].upper()


@dataclass
class ImportTarget:
    """Where to import: a new team by name, or an existing team by id."""

    new_team_name: str | None = None
    existing_team_id: str | None = None
    team_key: str | None = None

    def __post_init__(self) -> None:
        if bool(self.new_team_name) == bool(self.existing_team_id):
            raise ValueError("Exactly one of new_team_name and existing_team_id must be given")


@dataclass
class ImportOptions:
    """What to import.

    Args:
        include_labels: Recreate the snapshot's labels
        include_projects: Recreate the snapshot's projects and milestones
        include_issues: Recreate the snapshot's work items
        recreate_relations: Recreate relations between recreated items
        target_project_id: Put every item into this existing project instead of
            recreating projects
        preserve_states: Move items into a state matching their exported one
            instead of the team's default state
    """

    include_labels: bool = True
    include_projects: bool = True
    include_issues: bool = True
    recreate_relations: bool = False
    target_project_id: str | None = None
    preserve_states: bool = False


@dataclass
class ImportResult:
    """Outcome of an import: the target team, name maps and created items."""

    team_id: str
    team_name: str
    label_ids: dict[str, str] = field(default_factory=dict)
    project_ids: dict[str, str] = field(default_factory=dict)
    item_ids: dict[int, str] = field(default_factory=dict)
    relations: list[tuple[int, int, str]] = field(default_factory=list)
    report: RunReport = field(default_factory=RunReport)


class SnapshotImporter:
    """Recreates a snapshot in a target team, tolerating per-entity failures."""

    def __init__(self, context: RunContext, options: ImportOptions | None = None) -> None:
        self.context = context
        self.client = context.client
        self.options = options or ImportOptions()

    async def run(self, snapshot: Snapshot, target: ImportTarget) -> ImportResult:
        """Import ``snapshot`` into ``target``.

        Raises:
            TeamResolutionError: If the target team cannot be created or fetched
        """
        team = await self._resolve_team(snapshot, target)
        log = self.context.log.bind(team_id=team.id)
        log.info("Importing snapshot", team=team.name, **snapshot.counts())

        result = ImportResult(team_id=team.id, team_name=team.name, report=self.context.report)
        if self.options.include_labels:
            await self._import_labels(snapshot, team, result)
        if self.options.target_project_id:
            log.info("Using existing project for all items", project_id=self.options.target_project_id)
        elif self.options.include_projects:
            await self._import_projects(snapshot, team, result)
        if self.options.include_issues:
            await self._import_issues(snapshot, team, result)
            await self._import_relations(snapshot, result)

        log.info("Snapshot imported", summary=self.context.report.summary())
        return result

    # Team

    async def _resolve_team(self, snapshot: Snapshot, target: ImportTarget) -> Team:
        if target.existing_team_id:
            fetched = await self.client.get_team(target.existing_team_id)
            if not fetched.ok:
                raise TeamResolutionError(f"Cannot fetch team {target.existing_team_id}: {fetched.error}")
            record = fetched.value
        else:
            key = derive_team_key(target.team_key or snapshot.team.key)
            created = await self.client.create_team(target.new_team_name, key, snapshot.team.description)
            if not created.ok:
                raise TeamResolutionError(f"Cannot create team {target.new_team_name!r}: {created.error}")
            record = created.value
            self.context.succeeded("team", record.name, record.key)

        states = await self.client.list_workflow_states(record.id)
        if not states.ok:
            self.context.log.warning(
                "Could not list workflow states, items will use the tracker default", error=str(states.error)
            )
        return record.to_model(states.value if states.ok else [])

    # Labels

    async def _import_labels(self, snapshot: Snapshot, team: Team, result: ImportResult) -> None:
        existing = await self.client.list_labels(team.id)
        if existing.ok:
            for label in existing.value or []:
                self.context.label_ids.setdefault((team.id, label.name), label.id)
        else:
            self.context.log.warning("Could not list existing labels", error=str(existing.error))

        for label in snapshot.labels:
            if label.name in result.label_ids:
                continue
            known = self.context.label_ids.get((team.id, label.name))
            if known is not None:
                self.context.log.debug("Reusing existing label", label=label.name)
                result.label_ids[label.name] = known
                continue
            created = await self.client.create_label(team.id, label.name, label.color, label.description)
            if not created.ok:
                self.context.failed("label", label.name, label.name, str(created.error))
                continue
            self.context.label_ids[(team.id, label.name)] = created.value.id
            result.label_ids[label.name] = created.value.id
            self.context.succeeded("label", label.name)

    # Projects

    async def _import_projects(self, snapshot: Snapshot, team: Team, result: ImportResult) -> None:
        existing: dict[str, str] = {}
        listed = await self.client.list_projects(team.id)
        if listed.ok:
            existing = {p.name: p.id for p in listed.value or []}
        else:
            self.context.log.warning("Could not list existing projects", error=str(listed.error))

        for project in snapshot.projects:
            if project.name in result.project_ids:
                continue
            if project.name in existing:
                self.context.log.debug("Reusing existing project", project=project.name)
                result.project_ids[project.name] = existing[project.name]
                continue
            created = await self.client.create_project(
                team.id, project.name, project.description, project.state, project.start_date, project.target_date
            )
            if not created.ok:
                self.context.failed("project", project.name, project.name, str(created.error))
                continue
            project_id = created.value.id
            result.project_ids[project.name] = project_id
            self.context.succeeded("project", project.name)

            for milestone in project.milestones:
                made = await self.client.create_milestone(
                    project_id, milestone.name, milestone.target_date, milestone.description
                )
                name = f"{project.name} / {milestone.name}"
                if made.ok:
                    self.context.succeeded("milestone", name)
                else:
                    self.context.failed("milestone", name, name, str(made.error))

    # Work items

    def _state_for(self, issue: SnapshotIssue, team: Team) -> str | None:
        state = None
        if self.options.preserve_states:
            state = team.find_state(issue.state, issue.state_type)
        if state is None:
            state = team.default_state
        return state.id if state else None

    async def _import_issues(self, snapshot: Snapshot, team: Team, result: ImportResult) -> None:
        for index, issue in enumerate(snapshot.issues):
            label_ids = [result.label_ids[ref.name] for ref in issue.labels if ref.name in result.label_ids]
            project_id = self.options.target_project_id
            if project_id is None and issue.project is not None:
                project_id = result.project_ids.get(issue.project.name)

            created = await self.client.create_work_item(
                team_id=team.id,
                title=issue.title,
                description=issue.description or "",
                priority=issue.priority,
                label_ids=label_ids,
                project_id=project_id,
                state_id=self._state_for(issue, team),
            )
            if not created.ok:
                self.context.failed("issue", index, issue.title, str(created.error))
                continue
            result.item_ids[index] = created.value.id
            self.context.succeeded("issue", issue.title, created.value.identifier)

    # Relations

    async def _import_relations(self, snapshot: Snapshot, result: ImportResult) -> None:
        if not snapshot.relations:
            return
        if not self.options.recreate_relations:
            note = f"{len(snapshot.relations)} relation(s) in the snapshot were not recreated"
            self.context.log.warning("Relations not recreated", count=len(snapshot.relations))
            self.context.report.record_skip("relation", len(snapshot.relations), note)
            return

        for relation in snapshot.relations:
            source = result.item_ids.get(relation.source)
            target = result.item_ids.get(relation.target)
            if source is None or target is None:
                self.context.log.debug("Skipping relation to missing item", source=relation.source, target=relation.target)
                continue
            name = f"#{relation.source} {relation.type.value} #{relation.target}"
            created = await self.client.create_relation(source, target, relation.type)
            if not created.ok:
                self.context.failed("relation", name, name, str(created.error))
                continue
            result.relations.append((relation.source, relation.target, relation.type.value))
            self.context.succeeded("relation", name)


async def import_snapshot(
    context: RunContext, snapshot: Snapshot, target: ImportTarget, options: ImportOptions | None = None
) -> ImportResult:
    """Shortcut for ``SnapshotImporter(context, options).run(snapshot, target)``."""
    return await SnapshotImporter(context, options).run(snapshot, target)
