"""In-memory graph of work items, labels, projects and relations.

Work items are keyed by ``local_index`` while a batch is being built and by
``remote_id`` once they exist remotely. ``bind_remote_id`` makes an item
reachable through both keys, so relations written against local indices keep
working after creation.

Cycles are accepted. Only direct edges are ever queried, so a cycle cannot
cause non-termination; anything that walks edges transitively must guard
against them itself.
"""

from collections.abc import Iterable

import structlog

from linear_manager.client import RateLimitedClient
from linear_manager.exceptions import TrackerError
from linear_manager.models import Label, Project, Relation, RelationType, StateType, WorkItem
from linear_manager.payloads import RelationRecord, WorkItemRecord

logger = structlog.get_logger()

ItemRef = int | str


class GraphModel:
    """Work items and the relations between them."""

    def __init__(self) -> None:
        self._items: dict[ItemRef, WorkItem] = {}
        self._aliases: dict[ItemRef, ItemRef] = {}
        self.relations: list[Relation] = []
        self.labels: dict[str, Label] = {}
        self.projects: dict[str, Project] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, ref: object) -> bool:
        return ref in self._items or ref in self._aliases

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_work_item(self, item: WorkItem) -> ItemRef:
        """Add a work item and return its key.

        Items without either identifier get the next free local index.
        """
        if item.local_index is None and item.remote_id is None:
            item.local_index = self._next_local_index()
        ref = item.ref
        if ref in self:
            raise ValueError(f"Work item {ref!r} is already in the graph")
        if item.remote_id is not None and item.local_index is not None:
            if item.remote_id in self:
                raise ValueError(f"Work item {item.remote_id!r} is already in the graph")
            self._aliases[item.remote_id] = ref
        self._items[ref] = item
        return ref

    def _next_local_index(self) -> int:
        indices = [k for k in self._items if isinstance(k, int)]
        return max(indices) + 1 if indices else 0

    def bind_remote_id(self, local_index: int, remote_id: str) -> None:
        """Record the remote id assigned to a locally indexed item."""
        item = self.get(local_index)
        if remote_id in self._aliases or remote_id in self._items:
            raise ValueError(f"Remote id {remote_id!r} is already bound")
        item.remote_id = remote_id
        self._aliases[remote_id] = item.ref

    def resolve(self, ref: ItemRef) -> ItemRef:
        """Return the canonical key for a local index or remote id."""
        if ref in self._items:
            return ref
        if ref in self._aliases:
            return self._aliases[ref]
        raise KeyError(f"Unknown work item: {ref!r}")

    def get(self, ref: "ItemRef | WorkItem") -> WorkItem:
        if isinstance(ref, WorkItem):
            ref = ref.ref
        return self._items[self.resolve(ref)]

    def items(self) -> list[WorkItem]:
        """All work items in insertion order."""
        return list(self._items.values())

    def set_state(self, ref: ItemRef, state: StateType) -> None:
        self.get(ref).state = state

    def set_project(self, ref: ItemRef, project: str | None) -> None:
        """Assign a project, replacing any previous one."""
        self.get(ref).project = project

    def add_label(self, label: Label) -> None:
        self.labels[label.name] = label

    def add_project(self, project: Project) -> None:
        self.projects[project.name] = project

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def add_relation(
        self, source: "ItemRef | WorkItem", target: "ItemRef | WorkItem", relation_type: RelationType = RelationType.BLOCKS
    ) -> Relation:
        """Add a relation between two items already in the graph.

        Adding the same relation twice returns the existing one. Cycles are not checked.
        """
        source_ref = self.resolve(source.ref if isinstance(source, WorkItem) else source)
        target_ref = self.resolve(target.ref if isinstance(target, WorkItem) else target)
        if source_ref == target_ref:
            raise ValueError(f"Work item {source_ref!r} cannot be related to itself")
        relation_type = RelationType(relation_type)
        for existing in self.relations:
            if (existing.source, existing.target, existing.type) == (source_ref, target_ref, relation_type):
                return existing
        relation = Relation(source=source_ref, target=target_ref, type=relation_type)
        self.relations.append(relation)
        return relation

    def relations_to(self, ref: "ItemRef | WorkItem", relation_type: RelationType | None = None) -> list[Relation]:
        key = self.resolve(ref.ref if isinstance(ref, WorkItem) else ref)
        return [r for r in self.relations if r.target == key and (relation_type is None or r.type == relation_type)]

    def relations_from(self, ref: "ItemRef | WorkItem", relation_type: RelationType | None = None) -> list[Relation]:
        key = self.resolve(ref.ref if isinstance(ref, WorkItem) else ref)
        return [r for r in self.relations if r.source == key and (relation_type is None or r.type == relation_type)]

    def blockers_of(self, ref: "ItemRef | WorkItem") -> list[WorkItem]:
        """Items with a ``blocks`` edge into ``ref`` that are not yet completed or canceled."""
        blockers = [self.get(r.source) for r in self.relations_to(ref, RelationType.BLOCKS)]
        return [b for b in blockers if not b.is_terminal]


# ---------------------------------------------------------------------------
# Loading live state
# ---------------------------------------------------------------------------


def _merge_record(graph: GraphModel, record: WorkItemRecord) -> None:
    if record.id not in graph:
        graph.add_work_item(record.to_work_item())


def _merge_relations(graph: GraphModel, relations: Iterable[RelationRecord]) -> None:
    for relation in relations:
        _merge_record(graph, relation.source)
        _merge_record(graph, relation.target)
        graph.add_relation(relation.source.id, relation.target.id, relation.type)


async def load_team_graph(
    client: RateLimitedClient, team_id: str, project_id: str | None = None
) -> tuple[GraphModel, list[WorkItem]]:
    """Build a graph from the live work items of a team (optionally one project).

    Relation endpoints outside the selection are pulled in as well so their
    state counts when deciding whether an item is blocked. A failed relation
    listing leaves that item without edges.

    Returns:
        The graph and the selected items (neighbours excluded), in listing order

    Raises:
        TrackerError: If the work items cannot be listed
    """
    filters = {"project_id": project_id} if project_id else {"team_id": team_id}
    records = (await client.list_work_items(**filters)).unwrap()

    graph = GraphModel()
    for record in records:
        _merge_record(graph, record)
    selected = [graph.get(record.id) for record in records]
    for record in records:
        relations = await client.list_work_item_relations(record.id)
        if not relations.ok:
            logger.warning("Could not load relations", item_id=record.id, error=str(relations.error))
            continue
        _merge_relations(graph, relations.value or [])
    logger.info("Loaded team graph", team_id=team_id, items=len(graph), relations=len(graph.relations))
    return graph, selected


async def load_item_graph(client: RateLimitedClient, item_id: str) -> tuple[GraphModel, WorkItem]:
    """Build a graph holding one item and its direct neighbours.

    Raises:
        TrackerError: If the item itself cannot be read
    """
    record = (await client.get_work_item(item_id)).unwrap()
    graph = GraphModel()
    _merge_record(graph, record)
    relations = await client.list_work_item_relations(record.id)
    if not relations.ok:
        raise TrackerError(f"Could not load relations of {item_id}: {relations.error}")
    _merge_relations(graph, relations.value or [])
    return graph, graph.get(record.id)
