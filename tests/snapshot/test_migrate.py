"""Tests for export followed by import, through a file and directly."""

from pathlib import Path

import pytest

from linear_manager.client import RateLimitedClient
from linear_manager.context import RunContext
from linear_manager.models import Priority
from linear_manager.payloads import TeamRecord
from linear_manager.snapshot import (
    ImportOptions,
    ImportTarget,
    dump_snapshot,
    export_team,
    import_snapshot,
    load_snapshot,
    migrate_team,
)


async def _seed(client: RateLimitedClient, team: TeamRecord) -> None:
    labels = {name: (await client.create_label(team.id, name)).unwrap().id for name in ("bug", "ui", "infra")}
    alpha = (await client.create_project(team.id, "Alpha")).unwrap()
    beta = (await client.create_project(team.id, "Beta")).unwrap()
    (await client.create_milestone(alpha.id, "Preview")).unwrap()
    (await client.create_milestone(alpha.id, "GA", "2024-09-01")).unwrap()
    rows = [
        ("Login form", ["ui"], alpha.id, Priority.HIGH),
        ("Session store", ["infra", "bug"], alpha.id, Priority.URGENT),
        ("Dark mode", ["ui"], beta.id, Priority.LOW),
        ("Stray", [], None, Priority.NONE),
    ]
    ids = []
    for title, names, project_id, priority in rows:
        created = await client.create_work_item(
            team_id=team.id,
            title=title,
            label_ids=[labels[n] for n in names],
            project_id=project_id,
            priority=priority,
        )
        ids.append(created.unwrap().id)
    (await client.create_relation(ids[1], ids[0])).unwrap()


async def _shape(client: RateLimitedClient, team_id: str) -> dict:
    projects = (await client.list_projects(team_id)).unwrap()
    milestones = {
        p.name: {m.name for m in (await client.list_milestones(p.id)).unwrap()} for p in projects
    }
    items = {}
    for record in (await client.list_work_items(team_id=team_id)).unwrap():
        labels = frozenset(label.name for label in (await client.get_work_item_labels(record.id)).unwrap())
        items[record.title] = (labels, record.project.name if record.project else None, record.priority)
    return {
        "labels": {label.name for label in (await client.list_labels(team_id)).unwrap()},
        "projects": {p.name for p in projects},
        "milestones": milestones,
        "items": items,
    }


async def test_export_then_import_preserves_names(
    context: RunContext, backend, team: TeamRecord, tmp_path: Path
) -> None:
    """Test that a file round trip keeps every name-based association while ids change."""
    await _seed(context.client, team)
    source_ids = set(backend.items)

    path = dump_snapshot(await export_team(context.client, team.id), tmp_path / "eng.json")
    result = await import_snapshot(
        context, load_snapshot(path), ImportTarget(new_team_name="Copy", team_key="COPY")
    )

    assert await _shape(context.client, result.team_id) == await _shape(context.client, team.id)
    assert not source_ids & set(result.item_ids.values())
    assert not context.report.has_failures


async def test_migrate_team_with_relations(context: RunContext, backend, team: TeamRecord) -> None:
    """Test copying a team directly, relations included."""
    await _seed(context.client, team)
    destination = backend.add_team("Destination", "DST")

    result = await migrate_team(
        context, team.id, ImportTarget(existing_team_id=destination.id), ImportOptions(recreate_relations=True)
    )

    assert await _shape(context.client, destination.id) == await _shape(context.client, team.id)
    titles = {item.id: item.title for item in backend.items.values()}
    copied = [(titles[s], titles[t]) for s, t, _ in backend.relations if s in result.item_ids.values()]
    assert copied == [("Session store", "Login form")]


async def test_migrate_without_relations_reports_skipped_edges(
    context: RunContext, backend, team: TeamRecord
) -> None:
    """Test that relations left behind by a migration are counted and noted."""
    await _seed(context.client, team)
    destination = backend.add_team("Destination", "DST")

    await migrate_team(context, team.id, ImportTarget(existing_team_id=destination.id))

    assert "list_work_item_relations" in backend.calls
    assert context.report.skipped["relation"] == 1
    assert context.report.notes == ["1 relation(s) in the snapshot were not recreated"]
    assert len(backend.relations) == 1


async def test_migrate_into_itself_is_rejected(context: RunContext, team: TeamRecord) -> None:
    """Test that source and destination must differ."""
    with pytest.raises(ValueError):
        await migrate_team(context, team.id, ImportTarget(existing_team_id=team.id))
