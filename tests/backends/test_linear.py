"""Tests for the Linear GraphQL backend."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from linear_manager.backends.linear import LinearBackend
from linear_manager.exceptions import (
    ConfigurationError,
    TrackerRequestError,
    TrackerResponseError,
    TrackerTransportError,
    TrackerUnavailableError,
)
from linear_manager.models import Priority, RelationType, StateType
from linear_manager.payloads import (
    LabelCreate,
    ProjectCreate,
    RelationCreate,
    TeamCreate,
    WorkItemCreate,
    WorkItemFilter,
    WorkItemUpdate,
)

Handler = Callable[[dict[str, Any]], Any]


class Recorder:
    """Collects the GraphQL requests sent through a mock transport."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []
        self.bodies: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        self.bodies.append(body)
        result = self.handler(body)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)


def make_backend(handler: Handler) -> tuple[LinearBackend, Recorder]:
    recorder = Recorder(handler)
    backend = LinearBackend("lin_api_test", api_url="https://linear.test/graphql", transport=httpx.MockTransport(recorder))
    return backend, recorder


def issue_node(**overrides: Any) -> dict[str, Any]:
    node = {
        "id": "i1",
        "identifier": "ENG-1",
        "title": "Schema",
        "description": "",
        "priority": 2,
        "url": "https://linear.app/x/issue/ENG-1",
        "createdAt": "2024-01-01T00:00:00.000Z",
        "state": {"id": "s1", "name": "Backlog", "type": "backlog"},
        "team": {"id": "t1", "name": "Engineering"},
        "project": None,
    }
    node.update(overrides)
    return node


def test_missing_api_key() -> None:
    """Test that the backend refuses to start without a key."""
    with pytest.raises(ConfigurationError):
        LinearBackend(None)
    with pytest.raises(ConfigurationError):
        LinearBackend("")


async def test_authorization_header_and_team() -> None:
    """Test the request headers and reading a team."""
    backend, recorder = make_backend(
        lambda body: {"data": {"team": {"id": "t1", "name": "Engineering", "key": "ENG", "description": None}}}
    )

    team = await backend.get_team("t1")

    assert team.key == "ENG"
    request = recorder.requests[0]
    assert request.headers["Authorization"] == "lin_api_test"
    assert str(request.url) == "https://linear.test/graphql"
    assert recorder.bodies[0]["variables"] == {"id": "t1"}
    await backend.close()


async def test_create_team_sends_input() -> None:
    """Test the teamCreate mutation input."""
    backend, recorder = make_backend(
        lambda body: {
            "data": {"teamCreate": {"success": True, "team": {"id": "t2", "name": "Restored", "key": "REST"}}}
        }
    )

    team = await backend.create_team(TeamCreate(name="Restored", key="rest"))

    assert team.id == "t2"
    assert recorder.bodies[0]["variables"]["input"] == {"name": "Restored", "key": "REST"}


async def test_create_label_uses_camel_case() -> None:
    """Test that request payload fields go out in Linear's naming."""
    backend, recorder = make_backend(
        lambda body: {"data": {"issueLabelCreate": {"success": True, "issueLabel": {"id": "l1", "name": "bug"}}}}
    )

    await backend.create_label(LabelCreate(team_id="t1", name="bug", color="#ff0000"))

    assert recorder.bodies[0]["variables"]["input"] == {"teamId": "t1", "name": "bug", "color": "#ff0000"}


async def test_project_dates_round_trip() -> None:
    """Test that project start and target dates go out and come back in Linear's naming."""
    project = {
        "id": "p1",
        "name": "Alpha",
        "description": None,
        "state": "planned",
        "startDate": "2024-05-01",
        "targetDate": "2024-07-15",
    }
    backend, recorder = make_backend(lambda body: {"data": {"projectCreate": {"success": True, "project": project}}})

    created = await backend.create_project(
        ProjectCreate(team_id="t1", name="Alpha", start_date="2024-05-01T09:00:00Z", target_date="2024-07-15")
    )

    assert recorder.bodies[0]["variables"]["input"] == {
        "name": "Alpha",
        "teamIds": ["t1"],
        "startDate": "2024-05-01",
        "targetDate": "2024-07-15",
    }
    assert "startDate targetDate" in recorder.bodies[0]["query"]
    assert (created.start_date, created.target_date) == ("2024-05-01", "2024-07-15")


async def test_priority_is_mapped_to_linear_scale() -> None:
    """Test that canonical NONE goes out as Linear's 0."""
    backend, recorder = make_backend(
        lambda body: {
            "data": {"issueCreate": {"success": True, "issue": {"id": "i1", "identifier": "ENG-1", "title": "T"}}}
        }
    )

    await backend.create_work_item(WorkItemCreate(team_id="t1", title="T", priority=Priority.NONE))
    await backend.create_work_item(WorkItemCreate(team_id="t1", title="T", priority=Priority.URGENT, label_ids=("l1",)))

    first, second = (body["variables"]["input"] for body in recorder.bodies)
    assert first["priority"] == 0
    assert "labelIds" not in first
    assert second["priority"] == 1
    assert second["labelIds"] == ["l1"]


async def test_update_maps_priority() -> None:
    """Test the issueUpdate input."""
    backend, recorder = make_backend(lambda body: {"data": {"issueUpdate": {"success": True}}})

    await backend.update_work_item("i1", WorkItemUpdate(priority=Priority.NONE, state_id="s2"))

    assert recorder.bodies[0]["variables"] == {"id": "i1", "input": {"priority": 0, "stateId": "s2"}}


async def test_issue_priority_and_triage_are_normalised() -> None:
    """Test reading Linear's priority 0 and triage state."""
    node = issue_node(priority=0, state={"id": "s0", "name": "Triage", "type": "triage"})
    backend, _ = make_backend(lambda body: {"data": {"issue": node}})

    record = await backend.get_work_item("ENG-1")

    assert record.priority == Priority.NONE
    assert record.state.type == StateType.BACKLOG
    assert record.team.name == "Engineering"


async def test_labels_are_paginated() -> None:
    """Test following endCursor across pages."""
    pages = {
        None: {"nodes": [{"id": "l1", "name": "bug"}], "pageInfo": {"hasNextPage": True, "endCursor": "c1"}},
        "c1": {"nodes": [{"id": "l2", "name": "ui"}], "pageInfo": {"hasNextPage": False, "endCursor": None}},
    }
    backend, recorder = make_backend(
        lambda body: {"data": {"team": {"labels": pages[body["variables"]["after"]]}}}
    )

    labels = await backend.list_labels("t1")

    assert [label.name for label in labels] == ["bug", "ui"]
    assert [body["variables"]["after"] for body in recorder.bodies] == [None, "c1"]


async def test_workflow_states_sorted_by_position() -> None:
    """Test that states come back ordered with triage folded into backlog."""
    nodes = [
        {"id": "s2", "name": "Done", "type": "completed", "position": 3},
        {"id": "s0", "name": "Triage", "type": "triage", "position": 0},
        {"id": "s1", "name": "Todo", "type": "unstarted", "position": 1},
    ]
    backend, _ = make_backend(
        lambda body: {"data": {"team": {"states": {"nodes": nodes, "pageInfo": {"hasNextPage": False}}}}}
    )

    states = await backend.list_workflow_states("t1")

    assert [s.name for s in states] == ["Triage", "Todo", "Done"]
    assert states[0].type == StateType.BACKLOG


async def test_list_work_items_filter() -> None:
    """Test the issue filter for orphans that are still open."""
    backend, recorder = make_backend(
        lambda body: {"data": {"issues": {"nodes": [issue_node()], "pageInfo": {"hasNextPage": False}}}}
    )

    records = await backend.list_work_items(
        WorkItemFilter(team_id="t1", no_project=True, exclude_state_types=(StateType.COMPLETED, StateType.CANCELED))
    )

    assert [r.identifier for r in records] == ["ENG-1"]
    assert recorder.bodies[0]["variables"]["filter"] == {
        "team": {"id": {"eq": "t1"}},
        "project": {"null": True},
        "state": {"type": {"nin": ["completed", "canceled"]}},
    }


async def test_list_work_items_respects_limit() -> None:
    """Test that paging stops once enough items were read."""
    counter = iter(range(1000))

    def handler(body: dict[str, Any]) -> dict[str, Any]:
        nodes = [issue_node(id=f"i{next(counter)}") for _ in range(body["variables"]["first"])]
        return {"data": {"issues": {"nodes": nodes, "pageInfo": {"hasNextPage": True, "endCursor": "more"}}}}

    backend, recorder = make_backend(handler)

    records = await backend.list_work_items(WorkItemFilter(team_id="t1", first=3))

    assert len(records) == 3
    assert len(recorder.requests) == 1


async def test_relation_direction() -> None:
    """Test that the blocking item is sent as issueId."""
    backend, recorder = make_backend(lambda body: {"data": {"issueRelationCreate": {"success": True}}})

    await backend.create_relation(RelationCreate(source_id="blocker", target_id="blocked"))

    assert recorder.bodies[0]["variables"]["input"] == {
        "issueId": "blocker",
        "relatedIssueId": "blocked",
        "type": "blocks",
    }


async def test_relations_from_both_directions() -> None:
    """Test reading outgoing and incoming relations, skipping unknown types."""
    a = issue_node(id="a", identifier="ENG-1")
    b = issue_node(id="b", identifier="ENG-2")
    c = issue_node(id="c", identifier="ENG-3")
    issue = {
        "relations": {"nodes": [{"id": "r1", "type": "blocks", "issue": a, "relatedIssue": b}]},
        "inverseRelations": {
            "nodes": [
                {"id": "r2", "type": "related", "issue": c, "relatedIssue": a},
                {"id": "r3", "type": "similar", "issue": c, "relatedIssue": a},
            ]
        },
    }
    backend, _ = make_backend(lambda body: {"data": {"issue": issue}})

    relations = await backend.list_work_item_relations("a")

    assert [(r.type, r.source.id, r.target.id) for r in relations] == [
        (RelationType.BLOCKS, "a", "b"),
        (RelationType.RELATED, "c", "a"),
    ]


async def test_missing_assignee_and_project() -> None:
    """Test optional sub-lookups returning nothing."""
    backend, _ = make_backend(lambda body: {"data": {"issue": {"assignee": None, "project": None}}})

    assert await backend.get_work_item_assignee("i1") is None
    assert await backend.get_work_item_project("i1") is None


async def test_rejected_key_is_configuration_error() -> None:
    """Test that HTTP 401 aborts the run."""
    backend, _ = make_backend(lambda body: httpx.Response(401, json={"errors": [{"message": "Authentication required"}]}))

    with pytest.raises(ConfigurationError):
        await backend.get_team("t1")


async def test_unreachable_endpoint() -> None:
    """Test that connection failures are fatal."""

    def handler(body: dict[str, Any]) -> Any:
        raise httpx.ConnectError("connection refused")

    backend, _ = make_backend(handler)

    with pytest.raises(TrackerUnavailableError):
        await backend.get_team("t1")


async def test_lost_request_after_first_answer_is_not_fatal() -> None:
    """Test that a timeout mid-run fails only the call it interrupted."""
    answered = []

    def handler(body: dict[str, Any]) -> Any:
        answered.append(body)
        if len(answered) == 2:
            raise httpx.ReadTimeout("timed out")
        return {"data": {"team": {"id": "t1", "name": "Engineering", "key": "ENG"}}}

    backend, _ = make_backend(handler)

    await backend.get_team("t1")
    with pytest.raises(TrackerTransportError):
        await backend.get_team("t1")
    assert (await backend.get_team("t1")).key == "ENG"


async def test_graphql_errors_are_request_errors() -> None:
    """Test that GraphQL validation errors fail only the call."""
    backend, _ = make_backend(
        lambda body: {"errors": [{"message": "Duplicate label name"}, {"message": "second"}], "data": None}
    )

    with pytest.raises(TrackerRequestError, match="Duplicate label name; second"):
        await backend.create_label(LabelCreate(team_id="t1", name="bug"))


async def test_unsuccessful_mutation() -> None:
    """Test a mutation payload with success false."""
    backend, _ = make_backend(lambda body: {"data": {"issueUpdate": {"success": False}}})

    with pytest.raises(TrackerRequestError, match="unsuccessful"):
        await backend.update_work_item("i1", WorkItemUpdate(title="New"))


async def test_malformed_responses() -> None:
    """Test responses that are not the expected shape."""
    backend, _ = make_backend(lambda body: httpx.Response(200, text="<html>"))
    with pytest.raises(TrackerResponseError):
        await backend.get_team("t1")

    backend, _ = make_backend(lambda body: {"data": {"team": {"id": "t1"}}})
    with pytest.raises(TrackerResponseError):
        await backend.get_team("t1")


async def test_list_work_items_reads_all_pages() -> None:
    """Test that without a limit every page is followed."""
    pages = {None: ("c1", True), "c1": ("c2", True), "c2": (None, False)}
    counter = iter(range(1000))

    def handler(body: dict[str, Any]) -> dict[str, Any]:
        cursor, more = pages[body["variables"]["after"]]
        nodes = [issue_node(id=f"i{next(counter)}") for _ in range(body["variables"]["first"])]
        return {"data": {"issues": {"nodes": nodes, "pageInfo": {"hasNextPage": more, "endCursor": cursor}}}}

    backend, recorder = make_backend(handler)

    records = await backend.list_work_items(WorkItemFilter(team_id="t1"))

    assert len(records) == 300
    assert len(recorder.requests) == 3
