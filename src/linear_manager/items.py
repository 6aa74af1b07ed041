"""Operations on individual work items: create, link, close and reassign."""

import structlog

from linear_manager.client import RateLimitedClient
from linear_manager.context import RunContext
from linear_manager.exceptions import TrackerError
from linear_manager.models import Priority, RelationType, StateType
from linear_manager.payloads import CreatedWorkItem

logger = structlog.get_logger()


async def create_work_item(
    context: RunContext,
    team_id: str,
    title: str,
    description: str = "",
    priority: Priority = Priority.MEDIUM,
    label_names: list[str] | None = None,
    project_id: str | None = None,
) -> CreatedWorkItem:
    """Create one work item, reusing or creating its labels by name.

    Labels that cannot be resolved are left off the item.

    Raises:
        TrackerError: If the work item itself cannot be created
    """
    label_ids = []
    for name in dict.fromkeys(label_names or []):
        label_id = await context.resolve_label(team_id, name)
        if label_id is not None:
            label_ids.append(label_id)

    created = (
        await context.client.create_work_item(
            team_id=team_id,
            title=title,
            description=description,
            priority=priority,
            label_ids=label_ids,
            project_id=project_id,
        )
    ).unwrap()
    context.succeeded("issue", title, created.identifier)
    return created


async def link_work_items(
    client: RateLimitedClient, source_id: str, target_id: str, relation_type: RelationType = RelationType.BLOCKS
) -> None:
    """Relate two existing items. For ``blocks``, ``source_id`` must finish before ``target_id`` can start.

    Raises:
        TrackerError: If the relation cannot be created
    """
    logger.info("Linking work items", source_id=source_id, target_id=target_id, relation_type=str(relation_type))
    (await client.create_relation(source_id, target_id, RelationType(relation_type))).unwrap()


async def close_work_item(client: RateLimitedClient, item_id: str, completed: bool = True) -> str:
    """Move an item to its team's first completed (or canceled) state.

    Returns:
        Name of the state the item was moved to

    Raises:
        TrackerError: If the item, its team states, or a matching state cannot be found,
            or the update is rejected
    """
    record = (await client.get_work_item(item_id)).unwrap()
    if record.team is None:
        raise TrackerError(f"Work item {item_id} has no team")
    states = (await client.list_workflow_states(record.team.id)).unwrap()

    wanted = StateType.COMPLETED if completed else StateType.CANCELED
    matching = sorted((s for s in states if s.type == wanted), key=lambda s: s.position)
    if not matching:
        raise TrackerError(f"No {wanted.value} state found for team {record.team.name}")

    target = matching[0]
    (await client.update_work_item(record.id, state_id=target.id)).unwrap()
    logger.info("Closed work item", item_id=item_id, state=target.name)
    return target.name


async def assign_project(client: RateLimitedClient, item_id: str, project_id: str) -> None:
    """Put a work item into a project, replacing its current project.

    Raises:
        TrackerError: If the update is rejected
    """
    logger.info("Assigning work item to project", item_id=item_id, project_id=project_id)
    (await client.update_work_item(item_id, project_id=project_id)).unwrap()
