"""Relation and dependency commands for linear manager CLI."""

from typing import Literal

from cyclopts import App

from linear_manager.models import WorkItem

link_app = App(name="link", help="Manage relations and inspect blocking dependencies")


def _describe(item: WorkItem) -> str:
    key = item.identifier or item.remote_id
    return f"{key}: {item.title} [{item.state_name or item.state.value}, priority {int(item.priority)}]"


@link_app.command
def add(
    source_id: str,
    *target_ids: str,
    type: Literal["blocks", "related", "duplicate"] = "blocks",
) -> None:
    """Relate a source work item to target work items.

    For "blocks", the source must be finished before each target can start.
    """
    from linear_manager.cli import open_client, run
    from linear_manager.items import link_work_items

    async def main() -> None:
        async with open_client() as client:
            for target_id in target_ids:
                await link_work_items(client, source_id, target_id, type)
                print(f"{source_id} --[{type}]--> {target_id}")

    run(main)


@link_app.command
def blockers(item_id: str) -> None:
    """Show whether a work item is blocked, and by what."""
    from linear_manager.cli import open_client, run
    from linear_manager.resolver import check_blockers

    async def main() -> None:
        async with open_client() as client:
            status = await check_blockers(client, item_id)
        if not status.blocked:
            print(f"{item_id} can start")
            return
        print(f"{item_id} is blocked by:")
        for blocker in status.blockers:
            print(f"  {_describe(blocker)}")

    run(main)


@link_app.command
def chain(item_id: str) -> None:
    """Show the direct blockers and dependents of a work item."""
    from linear_manager.cli import open_client, run
    from linear_manager.resolver import fetch_dependency_chain

    async def main() -> None:
        async with open_client() as client:
            result = await fetch_dependency_chain(client, item_id)
        print(_describe(result.item))
        print(f"Can start: {'yes' if result.can_start else 'no'}\n")
        print("Blocked by:")
        for item in result.blocked_by or []:
            print(f"  {_describe(item)}")
        if not result.blocked_by:
            print("  (nothing)")
        print("Blocks:")
        for item in result.blocks:
            print(f"  {_describe(item)}")
        if not result.blocks:
            print("  (nothing)")

    run(main)


@link_app.command(name="next")
def next_items(team_id: str | None = None, project_id: str | None = None, limit: int = 20) -> None:
    """List open work items that are not blocked, most urgent first."""
    from linear_manager.cli import open_client, resolve_team_id, run
    from linear_manager.resolver import fetch_next_available

    async def main() -> None:
        async with open_client() as client:
            items = await fetch_next_available(client, resolve_team_id(team_id), project_id, limit)
        if not items:
            print("No available work items")
            return
        print(f"Found {len(items)} available work item(s):\n")
        for item in items:
            print(f"● {_describe(item)}")

    run(main)
