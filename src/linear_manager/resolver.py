"""Dependency questions answered over a ``GraphModel``.

Only direct ``blocks`` edges are considered. ``dependency_chain`` does not
recurse: callers that want the full ancestry must walk the returned
blockers themselves (and handle cycles, which the graph allows).
"""

from dataclasses import dataclass, field

import structlog

from linear_manager.client import RateLimitedClient
from linear_manager.graph import GraphModel, ItemRef, load_item_graph, load_team_graph
from linear_manager.models import TERMINAL_STATES, RelationType, WorkItem

logger = structlog.get_logger()


@dataclass
class BlockStatus:
    """Whether an item is blocked, and by which incomplete items."""

    blocked: bool
    blockers: list[WorkItem] = field(default_factory=list)

    @property
    def can_start(self) -> bool:
        return not self.blocked


@dataclass
class DependencyChain:
    """Direct neighbours of an item along ``blocks`` edges."""

    item: WorkItem
    blocked_by: list[WorkItem] = field(default_factory=list)
    blocks: list[WorkItem] = field(default_factory=list)
    can_start: bool = True


def is_blocked(graph: GraphModel, item: "ItemRef | WorkItem") -> BlockStatus:
    """Report whether ``item`` has a blocker that is neither completed nor canceled."""
    blockers = graph.blockers_of(item)
    return BlockStatus(blocked=bool(blockers), blockers=blockers)


def next_available(
    graph: GraphModel, items: "list[WorkItem] | None" = None, limit: int | None = None
) -> list[WorkItem]:
    """Return the unblocked items, most urgent first.

    Sorting is by canonical priority (lower is more urgent) and is stable, so
    items of equal priority keep their input order.

    Args:
        graph: Graph holding the items and their relations
        items: Candidates (defaults to every item in the graph)
        limit: Maximum number of items to return
    """
    candidates = graph.items() if items is None else items
    available = [item for item in candidates if not is_blocked(graph, item).blocked]
    available.sort(key=lambda item: item.priority)
    if limit is not None:
        available = available[: max(limit, 0)]
    return available


def dependency_chain(graph: GraphModel, item: "ItemRef | WorkItem") -> DependencyChain:
    """Return the direct blockers and dependents of ``item``."""
    blocked_by = [graph.get(r.source) for r in graph.relations_to(item, RelationType.BLOCKS)]
    blocks = [graph.get(r.target) for r in graph.relations_from(item, RelationType.BLOCKS)]
    return DependencyChain(
        item=graph.get(item),
        blocked_by=blocked_by,
        blocks=blocks,
        can_start=all(b.is_terminal for b in blocked_by),
    )


# ---------------------------------------------------------------------------
# Live queries
# ---------------------------------------------------------------------------


async def check_blockers(client: RateLimitedClient, item_id: str) -> BlockStatus:
    """Fetch an item's relations and report whether it may be started."""
    graph, item = await load_item_graph(client, item_id)
    status = is_blocked(graph, item)
    logger.info("Checked blockers", item_id=item_id, blocked=status.blocked, blockers=len(status.blockers))
    return status


async def fetch_dependency_chain(client: RateLimitedClient, item_id: str) -> DependencyChain:
    """Fetch an item's relations and return its direct dependency chain."""
    graph, item = await load_item_graph(client, item_id)
    return dependency_chain(graph, item)


async def fetch_next_available(
    client: RateLimitedClient, team_id: str, project_id: str | None = None, limit: int = 20
) -> list[WorkItem]:
    """Return open, unblocked work items of a team or project, most urgent first."""
    graph, selected = await load_team_graph(client, team_id, project_id)
    candidates = [item for item in selected if item.state not in TERMINAL_STATES]
    available = next_available(graph, candidates, limit)
    logger.info("Found available work items", team_id=team_id, project_id=project_id, count=len(available))
    return available
