"""Export, import and migration of whole teams."""

from linear_manager.snapshot.document import Snapshot, dump_snapshot, load_snapshot, parse_snapshot, snapshot_to_graph
from linear_manager.snapshot.exporter import ExportOptions, SnapshotExporter, export_team
from linear_manager.snapshot.importer import (
    ImportOptions,
    ImportResult,
    ImportTarget,
    SnapshotImporter,
    derive_team_key,
    import_snapshot,
)
from linear_manager.snapshot.migrate import migrate_team

__all__ = [
    "ExportOptions",
    "ImportOptions",
    "ImportResult",
    "ImportTarget",
    "Snapshot",
    "SnapshotExporter",
    "SnapshotImporter",
    "derive_team_key",
    "dump_snapshot",
    "export_team",
    "import_snapshot",
    "load_snapshot",
    "migrate_team",
    "parse_snapshot",
    "snapshot_to_graph",
]
