"""Tests for the work item graph."""

import pytest

from linear_manager.client import RateLimitedClient
from linear_manager.graph import GraphModel, load_item_graph, load_team_graph
from linear_manager.models import RelationType, StateType, WorkItem
from linear_manager.payloads import TeamRecord


def test_add_work_item_assigns_local_indices() -> None:
    """Test that items without ids get consecutive local indices."""
    graph = GraphModel()
    assert graph.add_work_item(WorkItem(title="a")) == 0
    assert graph.add_work_item(WorkItem(title="b")) == 1
    assert len(graph) == 2
    assert [i.title for i in graph.items()] == ["a", "b"]


def test_add_work_item_rejects_duplicates() -> None:
    """Test that the same key cannot be added twice."""
    graph = GraphModel()
    graph.add_work_item(WorkItem(title="a", remote_id="r1"))
    with pytest.raises(ValueError):
        graph.add_work_item(WorkItem(title="again", remote_id="r1"))


def test_bind_remote_id_makes_item_reachable_by_both_keys() -> None:
    """Test that binding a remote id keeps local references working."""
    graph = GraphModel()
    graph.add_work_item(WorkItem(title="a"))
    graph.add_work_item(WorkItem(title="b"))
    graph.bind_remote_id(0, "remote-a")

    assert graph.get("remote-a") is graph.get(0)
    assert graph.resolve("remote-a") == 0
    graph.add_relation("remote-a", 1)
    assert graph.relations_to(1)[0].source == 0
    with pytest.raises(ValueError):
        graph.bind_remote_id(1, "remote-a")


def test_add_relation_requires_known_endpoints() -> None:
    """Test that relations between unknown items are rejected."""
    graph = GraphModel()
    graph.add_work_item(WorkItem(title="a"))
    with pytest.raises(KeyError):
        graph.add_relation(0, 5)
    with pytest.raises(ValueError):
        graph.add_relation(0, 0)


def test_add_relation_is_idempotent() -> None:
    """Test that the same relation is stored once."""
    graph = GraphModel()
    graph.add_work_item(WorkItem(title="a"))
    graph.add_work_item(WorkItem(title="b"))
    first = graph.add_relation(0, 1)
    assert graph.add_relation(0, 1) is first
    graph.add_relation(0, 1, RelationType.RELATED)
    assert len(graph.relations) == 2


def test_cycles_are_accepted() -> None:
    """Test that a blocking cycle is stored without complaint."""
    graph = GraphModel()
    for title in "abc":
        graph.add_work_item(WorkItem(title=title))
    graph.add_relation(0, 1)
    graph.add_relation(1, 2)
    graph.add_relation(2, 0)
    assert len(graph.relations) == 3
    assert [b.title for b in graph.blockers_of(0)] == ["c"]


def test_blockers_of_ignores_finished_and_non_blocking() -> None:
    """Test that only incomplete blocks-sources count as blockers."""
    graph = GraphModel()
    graph.add_work_item(WorkItem(title="target"))
    graph.add_work_item(WorkItem(title="done", state=StateType.COMPLETED))
    graph.add_work_item(WorkItem(title="dropped", state=StateType.CANCELED))
    graph.add_work_item(WorkItem(title="open", state=StateType.STARTED))
    graph.add_work_item(WorkItem(title="related"))
    graph.add_relation(1, 0)
    graph.add_relation(2, 0)
    graph.add_relation(3, 0)
    graph.add_relation(4, 0, RelationType.RELATED)

    assert [b.title for b in graph.blockers_of(0)] == ["open"]


def test_set_project_overwrites() -> None:
    """Test that an item holds at most one project."""
    graph = GraphModel()
    graph.add_work_item(WorkItem(title="a", project="Alpha"))
    graph.set_project(0, "Beta")
    assert graph.get(0).project == "Beta"
    graph.set_state(0, StateType.COMPLETED)
    assert graph.get(0).is_terminal


async def test_load_team_graph_pulls_in_neighbours(
    client: RateLimitedClient, backend, team: TeamRecord
) -> None:
    """Test loading a project's items along with blockers outside it."""
    project = (await client.create_project(team.id, "Alpha")).unwrap()
    outside = (await client.create_work_item(team_id=team.id, title="Outside")).unwrap()
    inside = (await client.create_work_item(team_id=team.id, title="Inside", project_id=project.id)).unwrap()
    (await client.create_relation(outside.id, inside.id)).unwrap()

    graph, selected = await load_team_graph(client, team.id, project.id)

    assert [item.title for item in selected] == ["Inside"]
    assert len(graph) == 2
    assert [b.title for b in graph.blockers_of(inside.id)] == ["Outside"]


async def test_load_team_graph_survives_relation_failures(
    client: RateLimitedClient, backend, team: TeamRecord
) -> None:
    """Test that an item whose relations cannot be read just has no edges."""
    a = (await client.create_work_item(team_id=team.id, title="A")).unwrap()
    b = (await client.create_work_item(team_id=team.id, title="B")).unwrap()
    (await client.create_relation(a.id, b.id)).unwrap()
    backend.fail("list_work_item_relations")

    graph, selected = await load_team_graph(client, team.id)

    assert len(selected) == 2
    assert graph.relations == []


async def test_load_item_graph(client: RateLimitedClient, team: TeamRecord) -> None:
    """Test loading one item and its direct neighbours by identifier."""
    a = (await client.create_work_item(team_id=team.id, title="A")).unwrap()
    b = (await client.create_work_item(team_id=team.id, title="B")).unwrap()
    c = (await client.create_work_item(team_id=team.id, title="C")).unwrap()
    (await client.create_relation(a.id, b.id)).unwrap()
    (await client.create_relation(b.id, c.id)).unwrap()

    graph, item = await load_item_graph(client, b.identifier)

    assert item.title == "B"
    assert {i.title for i in graph.items()} == {"A", "B", "C"}
    assert len(graph.relations) == 2
