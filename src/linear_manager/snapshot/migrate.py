"""Copy one team into another without a snapshot file in between."""

from linear_manager.context import RunContext
from linear_manager.snapshot.exporter import ExportOptions, SnapshotExporter
from linear_manager.snapshot.importer import ImportOptions, ImportResult, ImportTarget, SnapshotImporter


async def migrate_team(
    context: RunContext,
    source_team_id: str,
    target: ImportTarget,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Export ``source_team_id`` and import it into ``target``.

    Relations are always exported so that skipped ones are reported.

    Raises:
        TeamResolutionError: If either team cannot be resolved
        SnapshotError: If the source team cannot be listed
    """
    options = options or ImportOptions()
    if target.existing_team_id == source_team_id:
        raise ValueError("Source and destination team must differ")

    export_options = ExportOptions(
        include_labels=options.include_labels,
        include_projects=options.include_projects and options.target_project_id is None,
        include_issues=options.include_issues,
        include_relations=True,
    )
    context.log.info("Migrating team", source_team_id=source_team_id)
    snapshot = await SnapshotExporter(context.client, export_options).export(source_team_id)
    return await SnapshotImporter(context, options).run(snapshot, target)
