"""Linear GraphQL API backend implementation using httpx."""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from linear_manager.backend import Backend
from linear_manager.exceptions import (
    ConfigurationError,
    TrackerRequestError,
    TrackerResponseError,
    TrackerTransportError,
    TrackerUnavailableError,
)
from linear_manager.models import RelationType, priority_from_linear, priority_to_linear
from linear_manager.payloads import (
    CreatedWorkItem,
    LabelCreate,
    LabelRecord,
    MilestoneCreate,
    MilestoneRecord,
    NamedRef,
    ProjectCreate,
    ProjectRecord,
    RelationCreate,
    RelationRecord,
    TeamCreate,
    TeamRecord,
    UserRecord,
    WorkflowStateRecord,
    WorkItemCreate,
    WorkItemFilter,
    WorkItemRecord,
    WorkItemUpdate,
)

logger = structlog.get_logger()

DEFAULT_API_URL = "https://api.linear.app/graphql"
PAGE_SIZE = 100

_STATE_FIELDS = "id name type"
_ISSUE_SUMMARY_FIELDS = f"id identifier title url priority state {{ {_STATE_FIELDS} }}"
_ISSUE_FIELDS = (
    "id identifier title description priority url createdAt "
    f"state {{ {_STATE_FIELDS} }} team {{ id name }} project {{ id name }}"
)
_PROJECT_FIELDS = "id name description state startDate targetDate"
_PAGE_INFO = "pageInfo { hasNextPage endCursor }"

# Linear has a "triage" state category that the engine folds into backlog.
_STATE_TYPE_ALIASES = {"triage": "backlog"}


class LinearBackend(Backend):
    """Linear-based backend talking to the public GraphQL API."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Linear backend.

        Args:
            api_key: Linear personal API key
            api_url: GraphQL endpoint
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not api_key:
            raise ConfigurationError("Linear API key required. Set LINEAR_API_KEY or `lm config set linear.api_key`.")

        logger.debug("Initializing Linear backend", api_url=api_url)
        self.api_url = api_url
        self.client = httpx.AsyncClient(
            headers={"Authorization": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self.reached = False

    async def close(self) -> None:
        await self.client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a GraphQL document and return its ``data`` object."""
        try:
            response = await self.client.post(self.api_url, json={"query": query, "variables": variables or {}})
        except httpx.TransportError as e:
            # Once the API has answered, a lost request only fails the entity it was for.
            if self.reached:
                logger.warning("Linear API request lost", error=str(e))
                raise TrackerTransportError(f"Request to Linear API failed: {e}") from e
            logger.error("Linear API unreachable", error=str(e))
            raise TrackerUnavailableError(f"Cannot reach Linear API at {self.api_url}: {e}") from e
        self.reached = True

        if response.status_code in (401, 403):
            raise ConfigurationError(f"Linear rejected the API key (HTTP {response.status_code})")

        try:
            body = response.json()
        except ValueError as e:
            raise TrackerResponseError(f"Linear returned non-JSON response (HTTP {response.status_code})") from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            message = "; ".join(str(err.get("message", err)) for err in errors)
            logger.debug("Linear API returned errors", errors=message)
            raise TrackerRequestError(message)
        if response.is_error:
            raise TrackerRequestError(f"Linear API request failed with HTTP {response.status_code}")

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise TrackerResponseError("Linear response has no data object")
        return data

    async def _mutate(self, query: str, variables: dict[str, Any], field: str) -> dict[str, Any]:
        """Run a mutation and return its payload, checking the ``success`` flag."""
        data = await self._execute(query, variables)
        payload = data.get(field)
        if not isinstance(payload, dict):
            raise TrackerResponseError(f"Linear response is missing {field}")
        if payload.get("success") is False:
            raise TrackerRequestError(f"Linear reported {field} as unsuccessful")
        return payload

    async def _paginate(self, query: str, variables: dict[str, Any], path: list[str]) -> list[dict[str, Any]]:
        """Collect all nodes of a connection, following ``endCursor``."""
        nodes: list[dict[str, Any]] = []
        after: str | None = None
        while True:
            data = await self._execute(query, {**variables, "after": after})
            connection: Any = data
            for key in path:
                connection = connection.get(key) if isinstance(connection, dict) else None
            if not isinstance(connection, dict):
                raise TrackerResponseError(f"Linear response is missing {'.'.join(path)}")
            nodes.extend(connection.get("nodes") or [])
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return nodes
            after = page_info.get("endCursor")

    @staticmethod
    def _parse(model: Any, raw: Any) -> Any:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise TrackerResponseError(f"Unexpected {model.__name__} payload: {e}") from e

    @staticmethod
    def _normalise_issue(node: dict[str, Any]) -> dict[str, Any]:
        """Translate Linear wire conventions (priority scale, triage state) for the record models."""
        node = dict(node)
        node["priority"] = priority_from_linear(node.get("priority"))
        state = node.get("state")
        if isinstance(state, dict) and state.get("type") in _STATE_TYPE_ALIASES:
            node["state"] = {**state, "type": _STATE_TYPE_ALIASES[state["type"]]}
        return node

    def _issue(self, node: Any) -> WorkItemRecord:
        if not isinstance(node, dict):
            raise TrackerResponseError("Linear response is missing an issue")
        return self._parse(WorkItemRecord, self._normalise_issue(node))

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def create_team(self, payload: TeamCreate) -> TeamRecord:
        logger.info("Creating Linear team", name=payload.name, key=payload.key)
        result = await self._mutate(
            """mutation($input: TeamCreateInput!) {
                teamCreate(input: $input) { success team { id name key description } }
            }""",
            {"input": payload.model_dump(exclude_none=True)},
            "teamCreate",
        )
        team = self._parse(TeamRecord, result.get("team"))
        logger.info("Linear team created", team_id=team.id)
        return team

    async def get_team(self, team_id: str) -> TeamRecord:
        logger.debug("Reading Linear team", team_id=team_id)
        data = await self._execute(
            "query($id: String!) { team(id: $id) { id name key description } }",
            {"id": team_id},
        )
        return self._parse(TeamRecord, data.get("team"))

    async def list_workflow_states(self, team_id: str) -> list[WorkflowStateRecord]:
        logger.debug("Listing workflow states", team_id=team_id)
        nodes = await self._paginate(
            f"""query($id: String!, $after: String) {{
                team(id: $id) {{ states(first: {PAGE_SIZE}, after: $after) {{
                    nodes {{ id name type position }} {_PAGE_INFO} }} }}
            }}""",
            {"id": team_id},
            ["team", "states"],
        )
        states = [
            self._parse(WorkflowStateRecord, {**n, "type": _STATE_TYPE_ALIASES.get(n.get("type"), n.get("type"))})
            for n in nodes
        ]
        return sorted(states, key=lambda s: s.position)

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    async def create_label(self, payload: LabelCreate) -> LabelRecord:
        logger.info("Creating Linear label", name=payload.name, team_id=payload.team_id)
        result = await self._mutate(
            """mutation($input: IssueLabelCreateInput!) {
                issueLabelCreate(input: $input) { success issueLabel { id name color description } }
            }""",
            {"input": payload.model_dump(by_alias=True, exclude_none=True)},
            "issueLabelCreate",
        )
        return self._parse(LabelRecord, result.get("issueLabel"))

    async def list_labels(self, team_id: str) -> list[LabelRecord]:
        logger.debug("Listing labels", team_id=team_id)
        nodes = await self._paginate(
            f"""query($id: String!, $after: String) {{
                team(id: $id) {{ labels(first: {PAGE_SIZE}, after: $after) {{
                    nodes {{ id name color description }} {_PAGE_INFO} }} }}
            }}""",
            {"id": team_id},
            ["team", "labels"],
        )
        return [self._parse(LabelRecord, n) for n in nodes]

    # ------------------------------------------------------------------
    # Projects and milestones
    # ------------------------------------------------------------------

    async def create_project(self, payload: ProjectCreate) -> ProjectRecord:
        logger.info("Creating Linear project", name=payload.name, team_id=payload.team_id)
        project_input: dict[str, Any] = {"name": payload.name, "teamIds": [payload.team_id]}
        if payload.description is not None:
            project_input["description"] = payload.description
        if payload.state is not None:
            project_input["state"] = payload.state
        if payload.start_date is not None:
            project_input["startDate"] = payload.start_date
        if payload.target_date is not None:
            project_input["targetDate"] = payload.target_date
        result = await self._mutate(
            f"""mutation($input: ProjectCreateInput!) {{
                projectCreate(input: $input) {{ success project {{ {_PROJECT_FIELDS} }} }}
            }}""",
            {"input": project_input},
            "projectCreate",
        )
        return self._parse(ProjectRecord, result.get("project"))

    async def list_projects(self, team_id: str) -> list[ProjectRecord]:
        logger.debug("Listing projects", team_id=team_id)
        nodes = await self._paginate(
            f"""query($id: String!, $after: String) {{
                team(id: $id) {{ projects(first: {PAGE_SIZE}, after: $after) {{
                    nodes {{ {_PROJECT_FIELDS} }} {_PAGE_INFO} }} }}
            }}""",
            {"id": team_id},
            ["team", "projects"],
        )
        return [self._parse(ProjectRecord, n) for n in nodes]

    async def create_milestone(self, payload: MilestoneCreate) -> MilestoneRecord:
        logger.info("Creating Linear milestone", name=payload.name, project_id=payload.project_id)
        result = await self._mutate(
            """mutation($input: ProjectMilestoneCreateInput!) {
                projectMilestoneCreate(input: $input) {
                    success projectMilestone { id name targetDate description }
                }
            }""",
            {"input": payload.model_dump(by_alias=True, exclude_none=True)},
            "projectMilestoneCreate",
        )
        return self._parse(MilestoneRecord, result.get("projectMilestone"))

    async def list_milestones(self, project_id: str) -> list[MilestoneRecord]:
        logger.debug("Listing milestones", project_id=project_id)
        nodes = await self._paginate(
            f"""query($id: String!, $after: String) {{
                project(id: $id) {{ projectMilestones(first: {PAGE_SIZE}, after: $after) {{
                    nodes {{ id name targetDate description }} {_PAGE_INFO} }} }}
            }}""",
            {"id": project_id},
            ["project", "projectMilestones"],
        )
        return [self._parse(MilestoneRecord, n) for n in nodes]

    # ------------------------------------------------------------------
    # Work items
    # ------------------------------------------------------------------

    async def create_work_item(self, payload: WorkItemCreate) -> CreatedWorkItem:
        logger.info("Creating Linear issue", title=payload.title, team_id=payload.team_id)
        issue_input: dict[str, Any] = {
            "teamId": payload.team_id,
            "title": payload.title,
            "description": payload.description,
            "priority": priority_to_linear(payload.priority),
        }
        if payload.label_ids:
            issue_input["labelIds"] = list(payload.label_ids)
        if payload.project_id:
            issue_input["projectId"] = payload.project_id
        if payload.state_id:
            issue_input["stateId"] = payload.state_id
        result = await self._mutate(
            """mutation($input: IssueCreateInput!) {
                issueCreate(input: $input) { success issue { id identifier title url } }
            }""",
            {"input": issue_input},
            "issueCreate",
        )
        created = self._parse(CreatedWorkItem, result.get("issue"))
        logger.info("Linear issue created", item_id=created.id, identifier=created.identifier)
        return created

    async def update_work_item(self, item_id: str, payload: WorkItemUpdate) -> None:
        logger.info("Updating Linear issue", item_id=item_id)
        update_input = payload.model_dump(by_alias=True, exclude_none=True)
        if payload.priority is not None:
            update_input["priority"] = priority_to_linear(payload.priority)
        if payload.label_ids is not None:
            update_input["labelIds"] = list(payload.label_ids)
        await self._mutate(
            """mutation($id: String!, $input: IssueUpdateInput!) {
                issueUpdate(id: $id, input: $input) { success }
            }""",
            {"id": item_id, "input": update_input},
            "issueUpdate",
        )

    async def get_work_item(self, item_id: str) -> WorkItemRecord:
        logger.debug("Reading Linear issue", item_id=item_id)
        data = await self._execute(f"query($id: String!) {{ issue(id: $id) {{ {_ISSUE_FIELDS} }} }}", {"id": item_id})
        return self._issue(data.get("issue"))

    async def list_work_items(self, filters: WorkItemFilter) -> list[WorkItemRecord]:
        logger.debug("Listing Linear issues", filters=filters.model_dump(exclude_defaults=True))
        issue_filter: dict[str, Any] = {}
        if filters.team_id:
            issue_filter["team"] = {"id": {"eq": filters.team_id}}
        if filters.project_id:
            issue_filter["project"] = {"id": {"eq": filters.project_id}}
        elif filters.no_project:
            issue_filter["project"] = {"null": True}
        if filters.exclude_state_types:
            issue_filter["state"] = {"type": {"nin": [t.value for t in filters.exclude_state_types]}}

        page_size = PAGE_SIZE if filters.first is None else min(filters.first, PAGE_SIZE)
        items: list[WorkItemRecord] = []
        after: str | None = None
        while filters.first is None or len(items) < filters.first:
            data = await self._execute(
                f"""query($filter: IssueFilter, $first: Int!, $after: String) {{
                    issues(filter: $filter, first: $first, after: $after) {{
                        nodes {{ {_ISSUE_FIELDS} }} {_PAGE_INFO} }}
                }}""",
                {"filter": issue_filter, "first": page_size, "after": after},
            )
            connection = data.get("issues")
            if not isinstance(connection, dict):
                raise TrackerResponseError("Linear response is missing issues")
            items.extend(self._issue(n) for n in connection.get("nodes") or [])
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            after = page_info.get("endCursor")

        logger.debug("Listed Linear issues", count=len(items))
        return items[: filters.first]

    async def get_work_item_labels(self, item_id: str) -> list[LabelRecord]:
        data = await self._execute(
            "query($id: String!) { issue(id: $id) { labels { nodes { id name color description } } } }",
            {"id": item_id},
        )
        issue = data.get("issue") or {}
        return [self._parse(LabelRecord, n) for n in (issue.get("labels") or {}).get("nodes") or []]

    async def get_work_item_assignee(self, item_id: str) -> UserRecord | None:
        data = await self._execute(
            "query($id: String!) { issue(id: $id) { assignee { id name email } } }",
            {"id": item_id},
        )
        assignee = (data.get("issue") or {}).get("assignee")
        return self._parse(UserRecord, assignee) if assignee else None

    async def get_work_item_project(self, item_id: str) -> NamedRef | None:
        data = await self._execute(
            "query($id: String!) { issue(id: $id) { project { id name } } }",
            {"id": item_id},
        )
        project = (data.get("issue") or {}).get("project")
        return self._parse(NamedRef, project) if project else None

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    async def create_relation(self, payload: RelationCreate) -> None:
        """Create a relation.

        Linear's ``IssueRelation(issue, relatedIssue, type=blocks)`` reads as
        "issue blocks relatedIssue", so the source goes into ``issueId``.
        """
        logger.info(
            "Creating Linear issue relation",
            source_id=payload.source_id,
            target_id=payload.target_id,
            relation_type=payload.type.value,
        )
        await self._mutate(
            """mutation($input: IssueRelationCreateInput!) {
                issueRelationCreate(input: $input) { success }
            }""",
            {"input": {"issueId": payload.source_id, "relatedIssueId": payload.target_id, "type": payload.type.value}},
            "issueRelationCreate",
        )

    async def list_work_item_relations(self, item_id: str) -> list[RelationRecord]:
        logger.debug("Listing issue relations", item_id=item_id)
        relation_fields = (
            f"id type issue {{ {_ISSUE_SUMMARY_FIELDS} }} relatedIssue {{ {_ISSUE_SUMMARY_FIELDS} }}"
        )
        data = await self._execute(
            f"""query($id: String!) {{ issue(id: $id) {{
                relations {{ nodes {{ {relation_fields} }} }}
                inverseRelations {{ nodes {{ {relation_fields} }} }}
            }} }}""",
            {"id": item_id},
        )
        issue = data.get("issue")
        if not isinstance(issue, dict):
            raise TrackerResponseError(f"Linear response is missing issue {item_id}")

        known_types = {t.value for t in RelationType}
        relations: list[RelationRecord] = []
        for key in ("relations", "inverseRelations"):
            for node in (issue.get(key) or {}).get("nodes") or []:
                if node.get("type") not in known_types:
                    logger.debug("Skipping unsupported relation type", relation_type=node.get("type"))
                    continue
                relations.append(
                    RelationRecord(
                        id=node.get("id"),
                        type=RelationType(node["type"]),
                        source=self._issue(node.get("issue")),
                        target=self._issue(node.get("relatedIssue")),
                    )
                )
        logger.debug("Retrieved issue relations", item_id=item_id, count=len(relations))
        return relations
