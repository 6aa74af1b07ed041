"""Commands for work items without a project."""

from pathlib import Path

import yaml
from cyclopts import App

orphans_app = App(name="orphans", help="Find and assign work items without a project")


@orphans_app.command(name="list")
def list_orphans(team_id: str | None = None) -> None:
    """List a team's work items that belong to no project, oldest first."""
    from linear_manager.cli import open_client, resolve_team_id, run
    from linear_manager.orphans import find_orphans

    async def main() -> None:
        async with open_client() as client:
            orphans = await find_orphans(client, resolve_team_id(team_id))
        if not orphans:
            print("No orphan work items")
            return
        print(f"Found {len(orphans)} orphan work item(s):\n")
        for item in orphans:
            labels = f" [{', '.join(sorted(item.labels))}]" if item.labels else ""
            print(f"○ {item.identifier}: {item.title}{labels}")

    run(main)


@orphans_app.command
def assign(mapping: Path, team_id: str | None = None) -> None:
    """Assign orphans to projects.

    Args:
        mapping: YAML file mapping project names to lists of identifiers
        team_id: Team whose orphans to assign (defaults to linear.team_id)
    """
    from linear_manager.cli import open_client, print_progress, print_summary, resolve_team_id, run
    from linear_manager.context import RunContext
    from linear_manager.exceptions import ConfigurationError
    from linear_manager.orphans import assign_orphans

    try:
        data = yaml.safe_load(mapping.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read mapping file {mapping}: {e}") from e
    if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
        raise ConfigurationError(f"Mapping file {mapping} must map project names to lists of identifiers")
    project_map = {str(k): [str(i) for i in v] for k, v in data.items()}

    async def main() -> None:
        async with open_client() as client:
            context = RunContext(client, on_progress=print_progress)
            result = await assign_orphans(context, resolve_team_id(team_id), project_map)
        for name in result.unknown_projects:
            print(f"Unknown project: {name}")
        for identifier in result.unmatched:
            print(f"Not an orphan of this team: {identifier}")
        if result.remaining:
            print(f"Still without project: {', '.join(result.remaining)}")
        print_summary(context.report)

    run(main)
