"""Finding work items without a project and assigning them to one."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from linear_manager.client import RateLimitedClient
from linear_manager.context import RunContext
from linear_manager.models import WorkItem


@dataclass
class OrphanAssignment:
    """Result of ``assign_orphans``."""

    assigned: dict[str, str] = field(default_factory=dict)
    unknown_projects: list[str] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)


async def find_orphans(client: RateLimitedClient, team_id: str, with_labels: bool = True) -> list[WorkItem]:
    """List a team's work items that belong to no project, oldest first.

    Label lookups that fail leave the item's labels empty.

    Raises:
        TrackerError: If the work items cannot be listed
    """
    records = (await client.list_work_items(team_id=team_id, no_project=True)).unwrap()
    orphans = []
    for record in records:
        labels: list[str] = []
        if with_labels:
            listed = await client.get_work_item_labels(record.id)
            if listed.ok:
                labels = [label.name for label in listed.value or []]
        orphans.append(record.to_work_item(labels))
    orphans.sort(key=lambda item: item.created_at or "")
    return orphans


async def assign_orphans(context: RunContext, team_id: str, mapping: Mapping[str, list[str]]) -> OrphanAssignment:
    """Assign orphans to projects.

    Args:
        context: Run context
        team_id: Team whose orphans to assign
        mapping: Project name to the identifiers (e.g. ``ENG-12``) of orphans it should receive

    Returns:
        What was assigned, which project names do not exist, which identifiers
        were not orphans of the team, and which orphans remain unassigned

    Raises:
        TrackerError: If projects or orphans cannot be listed
    """
    client = context.client
    projects = {p.name: p.id for p in (await client.list_projects(team_id)).unwrap()}
    orphans = await find_orphans(client, team_id, with_labels=False)
    by_identifier = {item.identifier: item for item in orphans if item.identifier}

    result = OrphanAssignment()
    for project_name, identifiers in mapping.items():
        project_id = projects.get(project_name)
        if project_id is None:
            context.failed("project", project_name, project_name, "project not found in team")
            result.unknown_projects.append(project_name)
            continue
        for identifier in identifiers:
            item = by_identifier.get(identifier)
            if item is None:
                context.log.debug("Identifier is not an orphan of this team", identifier=identifier)
                result.unmatched.append(identifier)
                continue
            updated = await client.update_work_item(item.remote_id, project_id=project_id)
            if not updated.ok:
                context.failed("issue", identifier, item.title, str(updated.error))
                continue
            result.assigned[identifier] = project_name
            context.succeeded("issue", item.title, f"{identifier} -> {project_name}")

    result.remaining = [i for i in by_identifier if i not in result.assigned]
    return result
