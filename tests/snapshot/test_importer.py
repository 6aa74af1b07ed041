"""Tests for rebuilding a snapshot in a target team."""

import pytest

from linear_manager.client import RateLimitedClient
from linear_manager.context import RunContext
from linear_manager.exceptions import TeamResolutionError
from linear_manager.models import Priority
from linear_manager.payloads import TeamRecord
from linear_manager.snapshot.document import Snapshot, parse_snapshot
from linear_manager.snapshot.importer import (
    ImportOptions,
    ImportTarget,
    SnapshotImporter,
    derive_team_key,
    import_snapshot,
)


def _snapshot() -> Snapshot:
    """Three labels, two projects, ten issues: six in Alpha, four in Beta."""
    label_sets = [["bug"], ["feature"], ["chore"], ["bug", "feature"], [], ["chore"], ["bug"], [], ["feature"], ["bug", "chore"]]
    issues = [
        {
            "title": f"Issue {n}",
            "priority": (n % 5) + 1,
            "labels": [{"name": name} for name in label_sets[n]],
            "project": {"name": "Alpha" if n < 6 else "Beta"},
        }
        for n in range(10)
    ]
    return parse_snapshot(
        {
            "version": 1,
            "team": {"name": "Source", "key": "source", "description": "Original team"},
            "labels": [{"name": "bug", "color": "#ff0000"}, {"name": "feature"}, {"name": "chore"}],
            "projects": [
                {"name": "Alpha", "milestones": [{"name": "M1", "target_date": "2024-03-01"}, {"name": "M2"}]},
                {"name": "Beta", "state": "planned", "startDate": "2024-02-01", "targetDate": "2024-04-30T00:00:00.000Z"},
            ],
            "issues": issues,
            "relations": [{"type": "blocks", "source": 0, "target": 1}, {"type": "related", "source": 2, "target": 7}],
        }
    )


async def _team_contents(client: RateLimitedClient, team_id: str) -> dict[str, tuple[set[str], str | None]]:
    contents = {}
    for record in (await client.list_work_items(team_id=team_id)).unwrap():
        labels = {label.name for label in (await client.get_work_item_labels(record.id)).unwrap()}
        contents[record.title] = (labels, record.project.name if record.project else None)
    return contents


def test_derive_team_key() -> None:
    """Test the key given to restored teams."""
    assert derive_team_key("engineering") == "ENGI"
    assert derive_team_key("ab") == "AB"
    assert derive_team_key(None) == "APP"


def test_import_target_needs_exactly_one_mode() -> None:
    """Test that the target is either a new team or an existing one."""
    with pytest.raises(ValueError):
        ImportTarget()
    with pytest.raises(ValueError):
        ImportTarget(new_team_name="New", existing_team_id="t1")


async def test_import_into_new_team(context: RunContext, backend) -> None:
    """Test the three-labels, two-projects, ten-issues restore."""
    snapshot = _snapshot()

    result = await import_snapshot(context, snapshot, ImportTarget(new_team_name="Restored"))

    team = backend.teams[result.team_id]
    assert team.name == "Restored"
    assert team.key == "SOUR"
    assert team.description == "Original team"
    assert {label.name for label in backend.labels[team.id]} == {"bug", "feature", "chore"}
    assert set(result.project_ids) == {"Alpha", "Beta"}
    assert [m.name for m in backend.milestones[result.project_ids["Alpha"]]] == ["M1", "M2"]
    assert backend.milestones[result.project_ids["Beta"]] == []
    beta = backend.projects[result.project_ids["Beta"]]
    assert (beta.state, beta.start_date, beta.target_date) == ("planned", "2024-02-01", "2024-04-30")

    contents = await _team_contents(context.client, team.id)
    assert len(contents) == 10
    for issue in snapshot.issues:
        assert contents[issue.title] == ({label.name for label in issue.labels}, issue.project.name)
    assert sum(1 for _, project in contents.values() if project == "Alpha") == 6
    assert sum(1 for _, project in contents.values() if project == "Beta") == 4

    assert len(set(result.item_ids.values())) == 10
    assert not context.report.has_failures
    assert context.report.summary()["issue"]["created"] == 10


async def test_items_start_in_default_state_with_their_priority(context: RunContext, backend) -> None:
    """Test that restored items land in the team's first state and keep their priority."""
    snapshot = _snapshot()

    result = await import_snapshot(context, snapshot, ImportTarget(new_team_name="Restored"))

    records = {r.title: r for r in (await context.client.list_work_items(team_id=result.team_id)).unwrap()}
    assert {r.state.name for r in records.values()} == {"Backlog"}
    assert records["Issue 0"].priority == Priority.URGENT
    assert records["Issue 4"].priority == Priority.NONE


async def test_rejected_label_is_dropped_from_items(context: RunContext, backend) -> None:
    """Test a duplicate-name rejection for one of three labels."""
    backend.fail("create_label", lambda payload: payload.name == "chore")

    result = await import_snapshot(context, _snapshot(), ImportTarget(new_team_name="Restored"))

    assert {label.name for label in backend.labels[result.team_id]} == {"bug", "feature"}
    assert len(context.report.failures_for("label")) == 1
    contents = await _team_contents(context.client, result.team_id)
    assert len(contents) == 10
    assert contents["Issue 2"] == (set(), "Alpha")
    assert contents["Issue 5"] == (set(), "Alpha")
    assert contents["Issue 9"] == ({"bug"}, "Beta")


async def test_failed_project_leaves_items_without_project(context: RunContext, backend) -> None:
    """Test that items of a project that could not be created are still imported."""
    backend.fail("create_project", lambda payload: payload.name == "Beta")

    result = await import_snapshot(context, _snapshot(), ImportTarget(new_team_name="Restored"))

    contents = await _team_contents(context.client, result.team_id)
    assert contents["Issue 7"][1] is None
    assert contents["Issue 0"][1] == "Alpha"
    assert [f.key for f in context.report.failures_for("project")] == ["Beta"]


async def test_failed_item_is_skipped(context: RunContext, backend) -> None:
    """Test that one rejected item does not stop the others."""
    backend.fail("create_work_item", lambda payload: payload.title == "Issue 3")

    result = await import_snapshot(context, _snapshot(), ImportTarget(new_team_name="Restored"))

    assert len(result.item_ids) == 9
    assert 3 not in result.item_ids
    assert [f.key for f in context.report.failures_for("issue")] == [3]


async def test_relations_skipped_visibly_by_default(context: RunContext, backend) -> None:
    """Test that relations are not recreated silently."""
    await import_snapshot(context, _snapshot(), ImportTarget(new_team_name="Restored"))

    assert backend.relations == []
    assert context.report.skipped["relation"] == 2
    assert context.report.notes == ["2 relation(s) in the snapshot were not recreated"]


async def test_recreate_relations(context: RunContext, backend) -> None:
    """Test recreating relations between restored items."""
    backend.fail("create_work_item", lambda payload: payload.title == "Issue 7")
    options = ImportOptions(recreate_relations=True)

    result = await import_snapshot(context, _snapshot(), ImportTarget(new_team_name="Restored"), options)

    assert result.relations == [(0, 1, "blocks")]
    assert backend.relations == [(result.item_ids[0], result.item_ids[1], "blocks")]
    assert context.report.failures_for("relation") == []


async def test_import_into_existing_team_reuses_names(
    context: RunContext, backend, team: TeamRecord
) -> None:
    """Test that labels and projects already in the target are reused."""
    existing_label = (await context.client.create_label(team.id, "bug")).unwrap()
    existing_project = (await context.client.create_project(team.id, "Alpha")).unwrap()
    calls_before = list(backend.calls)

    result = await import_snapshot(context, _snapshot(), ImportTarget(existing_team_id=team.id))

    assert result.team_id == team.id
    assert result.label_ids["bug"] == existing_label.id
    assert result.project_ids["Alpha"] == existing_project.id
    new_calls = backend.calls[len(calls_before):]
    assert new_calls.count("create_label") == 2
    assert new_calls.count("create_project") == 1
    assert "create_team" not in new_calls


async def test_target_project_collects_every_item(context: RunContext, backend, team: TeamRecord) -> None:
    """Test restoring all items into one existing project."""
    inbox = (await context.client.create_project(team.id, "Inbox")).unwrap()
    options = ImportOptions(target_project_id=inbox.id)

    await import_snapshot(context, _snapshot(), ImportTarget(existing_team_id=team.id), options)

    contents = await _team_contents(context.client, team.id)
    assert {project for _, project in contents.values()} == {"Inbox"}
    assert backend.calls.count("create_project") == 1


async def test_import_options_can_skip_parts(context: RunContext, backend) -> None:
    """Test importing only labels."""
    options = ImportOptions(include_projects=False, include_issues=False)

    result = await import_snapshot(context, _snapshot(), ImportTarget(new_team_name="Labels only"), options)

    assert set(result.label_ids) == {"bug", "feature", "chore"}
    assert result.project_ids == {}
    assert backend.items == {}
    assert context.report.skipped["relation"] == 0


async def test_preserve_states(context: RunContext, backend) -> None:
    """Test keeping exported workflow states where the target has them."""
    snapshot = parse_snapshot(
        {
            "version": 1,
            "team": {"name": "Source"},
            "issues": [
                {"title": "Shipped", "state": "Done", "state_type": "completed"},
                {"title": "Odd", "state": "Reviewing", "state_type": "started"},
                {"title": "Unknown", "state": "Limbo"},
            ],
        }
    )
    options = ImportOptions(preserve_states=True)

    result = await SnapshotImporter(context, options).run(snapshot, ImportTarget(new_team_name="Restored"))

    records = {r.title: r for r in (await context.client.list_work_items(team_id=result.team_id)).unwrap()}
    assert records["Shipped"].state.name == "Done"
    assert records["Odd"].state.name == "In Progress"
    assert records["Unknown"].state.name == "Backlog"


async def test_team_creation_failure_is_fatal(context: RunContext, backend) -> None:
    """Test that nothing else is attempted when the team cannot be created."""
    backend.fail("create_team")

    with pytest.raises(TeamResolutionError):
        await import_snapshot(context, _snapshot(), ImportTarget(new_team_name="Restored"))

    assert backend.calls == ["create_team"]


async def test_unknown_existing_team_is_fatal(context: RunContext) -> None:
    """Test restoring into a team that does not exist."""
    with pytest.raises(TeamResolutionError):
        await import_snapshot(context, _snapshot(), ImportTarget(existing_team_id="missing"))
