"""Two-phase batch creation of work items and their blocking relations.

Phase one creates every work item in input order and binds each local index
to the remote id it receives. Phase two creates the ``blocks`` relations,
translating ``blocked_by`` indices through the graph. Edges are only
attempted once both endpoints exist, and no phase-two call starts before
phase one has finished.

The tracker offers no multi-entity transaction, so a batch can succeed
partially: failed items are reported and skipped, and edges touching them are
dropped without a separate report.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from linear_manager.context import Failure, RunContext, RunReport
from linear_manager.graph import GraphModel
from linear_manager.models import RelationType, WorkItem, WorkItemSpec, parse_priority


@dataclass
class CreatedItem:
    """A work item created by the batch."""

    local_index: int
    remote_id: str
    title: str
    url: str | None = None
    identifier: str | None = None


@dataclass
class BulkResult:
    """Outcome of a batch."""

    created: list[CreatedItem] = field(default_factory=list)
    failures: list[Failure] = field(default_factory=list)
    relations: list[tuple[int, int]] = field(default_factory=list)
    graph: GraphModel = field(default_factory=GraphModel)
    report: RunReport = field(default_factory=RunReport)

    @property
    def remote_ids(self) -> dict[int, str]:
        return {c.local_index: c.remote_id for c in self.created}


def parse_specs(raw_specs: Iterable[Mapping[str, Any]]) -> list[WorkItemSpec]:
    """Turn plain mappings (from YAML or JSON) into specs.

    Accepts ``labels`` as an alias of ``label_names`` and ``blockedBy`` as an
    alias of ``blocked_by``. Priority may be a number or a word.

    Raises:
        ValueError: If an entry has no title or a malformed field
    """
    specs = []
    for position, raw in enumerate(raw_specs):
        if not isinstance(raw, Mapping):
            raise ValueError(f"Entry {position} must be a mapping")
        title = str(raw.get("title") or "").strip()
        if not title:
            raise ValueError(f"Entry {position} has no title")
        blocked_by = raw.get("blocked_by", raw.get("blockedBy")) or []
        if not all(isinstance(i, int) and not isinstance(i, bool) for i in blocked_by):
            raise ValueError(f"Entry {position}: blocked_by must be a list of entry positions")
        specs.append(
            WorkItemSpec(
                title=title,
                description=str(raw.get("description") or ""),
                priority=parse_priority(raw.get("priority")),
                label_names=[str(n) for n in raw.get("label_names", raw.get("labels")) or []],
                blocked_by=list(blocked_by),
            )
        )
    return specs


class BulkCreator:
    """Creates a batch of work items and wires their blocking relations."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.client = context.client

    async def run(self, team_id: str, specs: list[WorkItemSpec], project_id: str | None = None) -> BulkResult:
        """Create ``specs`` in ``team_id`` (optionally all in ``project_id``)."""
        log = self.context.log.bind(team_id=team_id)
        log.info("Starting bulk creation", count=len(specs), project_id=project_id)

        result = BulkResult(report=self.context.report)
        for index, spec in enumerate(specs):
            result.graph.add_work_item(
                WorkItem(
                    title=spec.title,
                    description=spec.description,
                    priority=spec.priority,
                    labels=set(spec.label_names),
                    local_index=index,
                )
            )

        await self._create_nodes(team_id, specs, project_id, result)
        await self._create_edges(specs, result)

        log.info(
            "Bulk creation finished",
            created=len(result.created),
            failed=len(result.failures),
            relations=len(result.relations),
        )
        return result

    def _failed(self, result: BulkResult, category: str, index: int, name: str, reason: str) -> None:
        # The shared report may already hold failures from earlier runs.
        self.context.failed(category, index, name, reason)
        result.failures.append(Failure(category=category, key=index, reason=reason))

    async def _create_nodes(
        self, team_id: str, specs: list[WorkItemSpec], project_id: str | None, result: BulkResult
    ) -> None:
        for index, spec in enumerate(specs):
            label_ids = []
            for name in dict.fromkeys(spec.label_names):
                label_id = await self.context.resolve_label(team_id, name)
                if label_id is not None:
                    label_ids.append(label_id)
                else:
                    result.graph.get(index).labels.discard(name)

            created = await self.client.create_work_item(
                team_id=team_id,
                title=spec.title,
                description=spec.description,
                priority=spec.priority,
                label_ids=label_ids,
                project_id=project_id,
            )
            if not created.ok:
                self._failed(result, "issue", index, spec.title, str(created.error))
                continue

            record = created.value
            result.graph.bind_remote_id(index, record.id)
            item = result.graph.get(index)
            item.identifier = record.identifier
            item.url = record.url
            result.created.append(
                CreatedItem(
                    local_index=index, remote_id=record.id, title=record.title, url=record.url, identifier=record.identifier
                )
            )
            self.context.succeeded("issue", spec.title, record.identifier)

    async def _create_edges(self, specs: list[WorkItemSpec], result: BulkResult) -> None:
        graph = result.graph
        for index, spec in enumerate(specs):
            target = graph.get(index)
            for blocker_index in dict.fromkeys(spec.blocked_by):
                if blocker_index not in graph or blocker_index == index:
                    self.context.log.debug("Ignoring invalid blocker reference", index=index, blocker=blocker_index)
                    continue
                source = graph.get(blocker_index)
                if source.remote_id is None or target.remote_id is None:
                    # An endpoint failed in phase one and is already reported there.
                    self.context.log.debug("Skipping edge to missing item", source=blocker_index, target=index)
                    continue

                created = await self.client.create_relation(source.remote_id, target.remote_id, RelationType.BLOCKS)
                if not created.ok:
                    name = f"#{blocker_index} blocks #{index}"
                    self._failed(result, "relation", index, name, f"{name}: {created.error}")
                    continue
                graph.add_relation(blocker_index, index, RelationType.BLOCKS)
                result.relations.append((blocker_index, index))
                self.context.succeeded("relation", f"{source.title} blocks {target.title}")
