"""Per-run state shared by batch operations.

A ``RunContext`` replaces module-level caches: it owns the label-name cache,
the progress callback and the ``RunReport`` for exactly one run, so repeated
or concurrent runs never see each other's state.
"""

import uuid
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from linear_manager.client import RateLimitedClient

logger = structlog.get_logger()


@dataclass
class Failure:
    """An entity that could not be created or changed."""

    category: str
    key: "int | str"
    reason: str


@dataclass
class ProgressEvent:
    """Emitted once per entity as a run progresses."""

    category: str
    name: str
    ok: bool
    detail: str | None = None


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class RunReport:
    """Counts of created, failed and skipped entities per category."""

    created: Counter = field(default_factory=Counter)
    skipped: Counter = field(default_factory=Counter)
    failures: list[Failure] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def record_success(self, category: str) -> None:
        self.created[category] += 1

    def record_failure(self, category: str, key: "int | str", reason: str) -> None:
        self.failures.append(Failure(category=category, key=key, reason=reason))

    def record_skip(self, category: str, count: int = 1, note: str | None = None) -> None:
        self.skipped[category] += count
        if note:
            self.notes.append(note)

    def failures_for(self, category: str) -> list[Failure]:
        return [f for f in self.failures if f.category == category]

    def summary(self) -> dict[str, dict[str, int]]:
        """Return ``{category: {"created": n, "failed": n, "skipped": n}}``."""
        categories = set(self.created) | set(self.skipped) | {f.category for f in self.failures}
        return {
            category: {
                "created": self.created[category],
                "failed": len(self.failures_for(category)),
                "skipped": self.skipped[category],
            }
            for category in sorted(categories)
        }

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


@dataclass
class RunContext:
    """Everything one batch run needs: the client, its caches and its report."""

    client: RateLimitedClient
    report: RunReport = field(default_factory=RunReport)
    on_progress: ProgressCallback | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    label_ids: dict[tuple[str, str], str] = field(default_factory=dict)
    _listed_label_teams: set[str] = field(default_factory=set, init=False)
    _failed_labels: set[tuple[str, str]] = field(default_factory=set, init=False)

    def __post_init__(self) -> None:
        self.log = logger.bind(run_id=self.run_id)

    def succeeded(self, category: str, name: str, detail: str | None = None) -> None:
        self.report.record_success(category)
        self.log.info("Entity created", category=category, name=name, detail=detail)
        self._emit(ProgressEvent(category=category, name=name, ok=True, detail=detail))

    def failed(self, category: str, key: "int | str", name: str, reason: str) -> None:
        self.report.record_failure(category, key, reason)
        self.log.warning("Entity failed", category=category, name=name, key=key, reason=reason)
        self._emit(ProgressEvent(category=category, name=name, ok=False, detail=reason))

    def _emit(self, event: ProgressEvent) -> None:
        if self.on_progress is not None:
            self.on_progress(event)

    async def resolve_label(self, team_id: str, name: str) -> str | None:
        """Return the id of the team label called ``name``, creating it if needed.

        The team's existing labels are listed once per run. Labels created
        during the run are cached so the same name is never created twice.
        Returns None when the label can neither be found nor created; the
        failure is recorded in the report.
        """
        key = (team_id, name)
        if key in self.label_ids:
            return self.label_ids[key]
        if key in self._failed_labels:
            return None

        if team_id not in self._listed_label_teams:
            listed = await self.client.list_labels(team_id)
            if listed.ok:
                self._listed_label_teams.add(team_id)
                for label in listed.value or []:
                    self.label_ids.setdefault((team_id, label.name), label.id)
                if key in self.label_ids:
                    self.log.debug("Reusing existing label", label=name)
                    return self.label_ids[key]
            else:
                self.log.warning("Could not list labels, will try to create", team_id=team_id, error=str(listed.error))

        created = await self.client.create_label(team_id, name)
        if not created.ok:
            self._failed_labels.add(key)
            self.failed("label", name, name, str(created.error))
            return None
        self.label_ids[key] = created.value.id
        self.succeeded("label", name)
        return created.value.id
