"""CLI for linear manager."""

import asyncio
import json
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any, Literal, TypeVar

import structlog
import yaml
from cyclopts import App, Parameter

from linear_manager.backend import Backend
from linear_manager.backends import LinearBackend, MemoryBackend
from linear_manager.backends.linear import DEFAULT_API_URL
from linear_manager.bulk import BulkCreator, parse_specs
from linear_manager.client import DEFAULT_DELAY, RateLimitedClient, Throttle
from linear_manager.config import Config, get_config
from linear_manager.config_commands import config_app
from linear_manager.context import ProgressEvent, RunContext, RunReport
from linear_manager.exceptions import ConfigurationError, LinearManagerError
from linear_manager.items import close_work_item, create_work_item
from linear_manager.link_commands import link_app
from linear_manager.models import parse_priority
from linear_manager.orphan_commands import orphans_app
from linear_manager.snapshot import ImportOptions, ImportTarget, SnapshotImporter, load_snapshot
from linear_manager.snapshot_commands import snapshot_app

logger = structlog.get_logger()

T = TypeVar("T")

MEMORY_TEAM_KEY = "REH"

app = App(
    help="Linear Manager - dependency-aware bulk creation and snapshot/restore for Linear teams",
)

app.command(config_app)
app.command(link_app)
app.command(snapshot_app)
app.command(orphans_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_backend(config: Config | None = None) -> Backend:
    """Get the configured backend."""
    config = config or get_config()
    backend_type = config.get("backend", "linear")

    if backend_type == "linear":
        api_key = config.get("linear.api_key")
        if not api_key:
            raise ConfigurationError(
                "Linear API key not configured. Set it using:\n"
                "  lm config set linear.api_key <key>\n"
                "or export LINEAR_API_KEY"
            )
        return LinearBackend(api_key=api_key, api_url=config.get("linear.api_url", DEFAULT_API_URL))
    elif backend_type == "memory":
        backend = MemoryBackend()
        team = backend.add_team("Rehearsal", MEMORY_TEAM_KEY, team_id=config.get("linear.team_id"))
        logger.info("Using in-memory backend", team_id=team.id)
        return backend
    else:
        raise ConfigurationError(f"Unknown backend: {backend_type}")


def get_throttle(config: Config) -> Throttle:
    """Build the mutation throttle from ``throttle.delay`` and ``throttle.per_minute``."""
    return Throttle(
        delay=config.get_float("throttle.delay", DEFAULT_DELAY),
        per_minute=config.get_float("throttle.per_minute"),
    )


@asynccontextmanager
async def open_client() -> AsyncIterator[RateLimitedClient]:
    """Yield a client for the configured backend and close it afterwards."""
    config = get_config()
    client = RateLimitedClient(get_backend(config), get_throttle(config))
    try:
        yield client
    finally:
        await client.close()


def resolve_team_id(team_id: str | None) -> str:
    """Return ``team_id`` or the configured ``linear.team_id``."""
    team_id = team_id or get_config().get("linear.team_id")
    if not team_id:
        raise ConfigurationError("No team given. Pass --team-id or run: lm config set linear.team_id <id>")
    return team_id


def run(main: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine, turning raised errors into a message and exit code 1."""
    try:
        return asyncio.run(main())
    except LinearManagerError as e:
        logger.error("Run aborted", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1) from e


def print_progress(event: ProgressEvent) -> None:
    """Print one progress marker per entity."""
    marker = "✓" if event.ok else "✗"
    detail = f" ({event.detail})" if event.detail else ""
    print(f"{marker} {event.category}: {event.name}{detail}")


def print_summary(report: RunReport) -> None:
    """Print created/failed/skipped counts per category."""
    summary = report.summary()
    if not summary:
        print("\nNothing to do")
        return
    print("\nSummary:")
    for category, counts in summary.items():
        line = f"  {category}: {counts['created']} created, {counts['failed']} failed"
        if counts["skipped"]:
            line += f", {counts['skipped']} skipped"
        print(line)
    for note in report.notes:
        print(f"  note: {note}")


def load_items_file(path: Path) -> list[dict[str, Any]]:
    """Read bulk-create input: a YAML or JSON list, or a mapping with an ``issues`` list."""
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read items file {path}: {e}") from e
    if isinstance(data, dict):
        data = data.get("issues")
    if not isinstance(data, list):
        raise ConfigurationError(f"Items file {path} must contain a list of items")
    return data


@app.command
def create(
    title: str,
    description: str = "",
    priority: str = "medium",
    labels: str = "",
    team_id: str | None = None,
    project_id: str | None = None,
) -> None:
    """Create a work item.

    Args:
        title: Work item title
        description: Markdown description
        priority: urgent, high, medium, low, none or 1-5
        labels: Comma separated label names, created when missing
        team_id: Team to create the item in (defaults to linear.team_id)
        project_id: Project to put the item in
    """
    label_names = [name.strip() for name in labels.split(",") if name.strip()]
    try:
        parsed_priority = parse_priority(priority)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    async def main() -> None:
        async with open_client() as client:
            context = RunContext(client)
            created = await create_work_item(
                context, resolve_team_id(team_id), title, description, parsed_priority, label_names, project_id
            )
        print(f"Created {created.identifier}: {created.title}")
        if created.url:
            print(created.url)

    run(main)


@app.command
def bulk(file: Path, team_id: str | None = None, project_id: str | None = None) -> None:
    """Create work items from a YAML or JSON file, then their blocking relations.

    Each entry has a title and optionally description, priority, labels and
    blocked_by (positions of other entries in the file).

    Args:
        file: Items file
        team_id: Team to create the items in (defaults to linear.team_id)
        project_id: Project to put every item in
    """
    try:
        specs = parse_specs(load_items_file(file))
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    async def main() -> None:
        async with open_client() as client:
            context = RunContext(client, on_progress=print_progress)
            result = await BulkCreator(context).run(resolve_team_id(team_id), specs, project_id)
        print()
        for item in result.created:
            print(f"#{item.local_index} -> {item.identifier} {item.url or ''}".rstrip())
        print_summary(result.report)

    run(main)


@app.command
def close(item_id: str, canceled: bool = False) -> None:
    """Close a work item.

    Args:
        item_id: Work item id or identifier
        canceled: Move to the team's canceled state instead of completed
    """

    async def main() -> None:
        async with open_client() as client:
            state = await close_work_item(client, item_id, completed=not canceled)
        print(f"Moved {item_id} to {state}")

    run(main)


@app.command
def restore(
    file: Path,
    new_team: str | None = None,
    team_id: str | None = None,
    create_new_project: Literal["true", "false"] | None = None,
    project_id: str | None = None,
    recreate_relations: bool = False,
    preserve_states: bool = False,
) -> None:
    """Restore a snapshot into a new or existing team.

    Without --new-team or --team-id a new team named "<file name> - Restore"
    is created.

    Args:
        file: Snapshot file
        new_team: Name of the team to create
        team_id: Existing team to restore into
        create_new_project: Recreate the snapshot's projects (default true, or false with --project-id)
        project_id: Existing project to put every restored item in
        recreate_relations: Also recreate relations between restored items
        preserve_states: Keep each item's exported workflow state where the team has one
    """
    if new_team and team_id:
        raise ConfigurationError("Use either --new-team or --team-id, not both")
    create_projects = (create_new_project or ("false" if project_id else "true")) == "true"
    if create_projects and project_id:
        raise ConfigurationError("--project-id cannot be combined with --create-new-project true")

    snapshot = load_snapshot(file)
    target = ImportTarget(new_team_name=new_team or (None if team_id else f"{file.stem} - Restore"), existing_team_id=team_id)
    options = ImportOptions(
        include_projects=create_projects,
        target_project_id=project_id,
        recreate_relations=recreate_relations,
        preserve_states=preserve_states,
    )

    async def main() -> None:
        async with open_client() as client:
            context = RunContext(client, on_progress=print_progress)
            result = await SnapshotImporter(context, options).run(snapshot, target)
        print(f"\nRestored into team {result.team_name} ({result.team_id})")
        print_summary(result.report)

    run(main)


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    try:
        app(tokens)
    except LinearManagerError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1) from e


if __name__ == "__main__":
    app.meta()
