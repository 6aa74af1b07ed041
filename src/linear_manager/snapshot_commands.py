"""Snapshot commands for linear manager CLI."""

from pathlib import Path

from cyclopts import App

snapshot_app = App(name="snapshot", help="Export, inspect and migrate whole teams")


@snapshot_app.command
def export(
    output: Path,
    team_id: str | None = None,
    relations: bool = True,
    milestones: bool = True,
) -> None:
    """Export a team into a snapshot file.

    Args:
        output: File to write
        team_id: Team to export (defaults to linear.team_id)
        relations: Include relations between the team's work items
        milestones: Include project milestones
    """
    from linear_manager.cli import open_client, resolve_team_id, run
    from linear_manager.snapshot import ExportOptions, dump_snapshot, export_team

    options = ExportOptions(include_relations=relations, include_milestones=milestones)

    async def main() -> None:
        async with open_client() as client:
            snapshot = await export_team(client, resolve_team_id(team_id), options)
        dump_snapshot(snapshot, output)
        counts = ", ".join(f"{n} {what}" for what, n in snapshot.counts().items())
        print(f"Exported {snapshot.team.name} to {output} ({counts})")

    run(main)


@snapshot_app.command
def show(file: Path) -> None:
    """Summarize a snapshot file."""
    from linear_manager.snapshot import load_snapshot, snapshot_to_graph

    snapshot = load_snapshot(file)
    graph = snapshot_to_graph(snapshot)
    team = snapshot.team
    print(f"Team: {team.name}" + (f" ({team.key})" if team.key else ""))
    for what, n in snapshot.counts().items():
        print(f"  {what}: {n}")
    for project in snapshot.projects:
        items = [i for i in graph.items() if i.project == project.name]
        print(f"\n{project.name}: {len(items)} issue(s), {len(project.milestones)} milestone(s)")
        for milestone in project.milestones:
            print(f"  - {milestone.name}" + (f" ({milestone.target_date})" if milestone.target_date else ""))
    orphans = [i for i in graph.items() if i.project is None]
    if orphans:
        print(f"\nWithout project: {len(orphans)} issue(s)")


@snapshot_app.command
def migrate(
    source_team_id: str,
    new_team: str | None = None,
    team_id: str | None = None,
    recreate_relations: bool = False,
) -> None:
    """Copy a team's labels, projects and work items into another team.

    Args:
        source_team_id: Team to copy from
        new_team: Name of a team to create as destination
        team_id: Existing destination team
        recreate_relations: Also recreate relations between copied items
    """
    from linear_manager.cli import open_client, print_progress, print_summary, run
    from linear_manager.context import RunContext
    from linear_manager.exceptions import ConfigurationError
    from linear_manager.snapshot import ImportOptions, ImportTarget, migrate_team

    if bool(new_team) == bool(team_id):
        raise ConfigurationError("Give exactly one of --new-team and --team-id")
    target = ImportTarget(new_team_name=new_team, existing_team_id=team_id)

    async def main() -> None:
        async with open_client() as client:
            context = RunContext(client, on_progress=print_progress)
            result = await migrate_team(context, source_team_id, target, ImportOptions(recreate_relations=recreate_relations))
        print(f"\nMigrated into team {result.team_name} ({result.team_id})")
        print_summary(result.report)

    run(main)
