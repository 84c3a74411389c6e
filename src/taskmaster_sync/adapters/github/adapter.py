"""
GitHub Projects Adapter - Implements ProjectTrackerPort for GitHub Projects (v2).

Items are draft issues, or repository issues when a repository is
configured. Titles and bodies live on that content, field values on the
project item itself.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from taskmaster_sync.core.domain.enums import FieldDataType
from taskmaster_sync.core.exceptions import ConfigError, RemoteApplicationError
from taskmaster_sync.core.ports.project_tracker import (
    CreatedItem,
    FieldOption,
    FieldValue,
    ProjectField,
    ProjectTrackerPort,
    RemoteItem,
)

from .client import GitHubGraphQLClient


PROJECT_URL_PATTERN = re.compile(r"^https://github\.com/orgs/(?P<org>[^/]+)/projects/(?P<number>\d+)/?$")

# Field types createProjectV2Field accepts.
CREATABLE_FIELD_TYPES = frozenset(
    {FieldDataType.TEXT, FieldDataType.NUMBER, FieldDataType.DATE, FieldDataType.SINGLE_SELECT}
)

ITEMS_PAGE_SIZE = 100


def parse_project_url(url: str) -> tuple[str, int]:
    """
    Split an organization project URL into (organization, number).

    Raises:
        ConfigError: If the URL is not https://github.com/orgs/<org>/projects/<n>
    """
    match = PROJECT_URL_PATTERN.match(url.strip())
    if not match:
        raise ConfigError(f"Not a GitHub organization project URL: {url}")
    return match.group("org"), int(match.group("number"))


GET_PROJECT_QUERY = """
query($org: String!, $number: Int!) {
  organization(login: $org) {
    projectV2(number: $number) { id number title url }
  }
}
"""

LIST_ITEMS_QUERY = """
query($projectId: ID!, $cursor: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: %d, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          id
          content {
            __typename
            ... on DraftIssue { id title body }
            ... on Issue { id title body number }
            ... on PullRequest { id title body number }
          }
          fieldValues(first: 20) {
            nodes {
              ... on ProjectV2ItemFieldTextValue {
                text
                field { ... on ProjectV2FieldCommon { id name } }
              }
              ... on ProjectV2ItemFieldSingleSelectValue {
                name
                field { ... on ProjectV2FieldCommon { id name } }
              }
              ... on ProjectV2ItemFieldNumberValue {
                number
                field { ... on ProjectV2FieldCommon { id name } }
              }
              ... on ProjectV2ItemFieldDateValue {
                date
                field { ... on ProjectV2FieldCommon { id name } }
              }
            }
          }
        }
      }
    }
  }
}
""" % ITEMS_PAGE_SIZE

GET_FIELDS_QUERY = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 100) {
        nodes {
          ... on ProjectV2Field { id name dataType }
          ... on ProjectV2IterationField { id name dataType }
          ... on ProjectV2SingleSelectField { id name dataType options { id name color } }
        }
      }
    }
  }
}
"""

CREATE_FIELD_MUTATION = """
mutation($projectId: ID!, $name: String!, $dataType: ProjectV2CustomFieldType!,
         $options: [ProjectV2SingleSelectFieldOptionInput!]) {
  createProjectV2Field(input: {
    projectId: $projectId, name: $name, dataType: $dataType, singleSelectOptions: $options
  }) {
    projectV2Field { ... on ProjectV2FieldCommon { id name } }
  }
}
"""

UPDATE_FIELD_OPTIONS_MUTATION = """
mutation($fieldId: ID!, $options: [ProjectV2SingleSelectFieldOptionInput!]) {
  updateProjectV2Field(input: { fieldId: $fieldId, singleSelectOptions: $options }) {
    projectV2Field { ... on ProjectV2SingleSelectField { id options { id name } } }
  }
}
"""

ADD_DRAFT_MUTATION = """
mutation($projectId: ID!, $title: String!, $body: String!) {
  addProjectV2DraftIssue(input: { projectId: $projectId, title: $title, body: $body }) {
    projectItem { id content { ... on DraftIssue { id } } }
  }
}
"""

GET_REPOSITORY_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { id }
}
"""

GET_USER_QUERY = """
query($login: String!) {
  user(login: $login) { id }
}
"""

CREATE_ISSUE_MUTATION = """
mutation($repositoryId: ID!, $title: String!, $body: String!, $assigneeIds: [ID!]) {
  createIssue(input: { repositoryId: $repositoryId, title: $title, body: $body, assigneeIds: $assigneeIds }) {
    issue { id number }
  }
}
"""

ADD_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: { projectId: $projectId, contentId: $contentId }) {
    item { id }
  }
}
"""

UPDATE_DRAFT_MUTATION = """
mutation($draftIssueId: ID!, $title: String!, $body: String!) {
  updateProjectV2DraftIssue(input: { draftIssueId: $draftIssueId, title: $title, body: $body }) {
    draftIssue { id }
  }
}
"""

UPDATE_ISSUE_MUTATION = """
mutation($id: ID!, $title: String!, $body: String!) {
  updateIssue(input: { id: $id, title: $title, body: $body }) {
    issue { id }
  }
}
"""

UPDATE_FIELD_VALUE_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $value: ProjectV2FieldValue!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: $value
  }) {
    projectV2Item { id }
  }
}
"""

DELETE_ITEM_MUTATION = """
mutation($projectId: ID!, $itemId: ID!) {
  deleteProjectV2Item(input: { projectId: $projectId, itemId: $itemId }) {
    deletedItemId
  }
}
"""


def _dig(data: dict[str, Any], *path: str) -> Any:
    current: Any = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _parse_field_value(node: dict[str, Any]) -> FieldValue | None:
    field = node.get("field") or {}
    if not field.get("name"):
        return None
    for key in ("text", "name", "number", "date"):
        if key in node:
            return FieldValue(field_id=field.get("id", ""), field_name=field["name"], value=node[key])
    return None


def _parse_item(node: dict[str, Any]) -> RemoteItem:
    content = node.get("content") or {}
    values = [
        value
        for value in (_parse_field_value(v) for v in _dig(node, "fieldValues", "nodes") or [] if v)
        if value is not None
    ]
    return RemoteItem(
        id=node["id"],
        title=content.get("title", ""),
        body=content.get("body") or "",
        content_id=content.get("id"),
        content_type=content.get("__typename"),
        field_values=values,
    )


def _parse_field(node: dict[str, Any]) -> ProjectField:
    return ProjectField(
        id=node["id"],
        name=node["name"],
        data_type=FieldDataType.from_string(node.get("dataType") or "TEXT"),
        options=[
            FieldOption(id=opt["id"], name=opt["name"], color=opt.get("color") or "GRAY")
            for opt in node.get("options") or []
        ],
    )


def _option_input(option: FieldOption) -> dict[str, str]:
    return {"name": option.name, "color": option.color or "GRAY", "description": ""}


class GitHubProjectsAdapter(ProjectTrackerPort):
    """
    GitHub Projects (v2) implementation of the ProjectTrackerPort.

    Repository and user node ids are looked up once and cached.
    """

    def __init__(self, client: GitHubGraphQLClient):
        self._client = client
        self.logger = logging.getLogger("GitHubProjectsAdapter")
        self._repository_ids: dict[str, str] = {}
        self._user_ids: dict[str, str | None] = {}

    @property
    def name(self) -> str:
        return "GitHub Projects"

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_project_id(self, organization: str, number: int) -> str:
        data = self._client.execute(GET_PROJECT_QUERY, {"org": organization, "number": number})
        project_id = _dig(data, "organization", "projectV2", "id")
        if not project_id:
            raise RemoteApplicationError(f"Project {number} not found in organization '{organization}'")
        return project_id

    def list_items(self, project_id: str) -> list[RemoteItem]:
        items: list[RemoteItem] = []
        cursor: str | None = None
        while True:
            data = self._client.execute(LIST_ITEMS_QUERY, {"projectId": project_id, "cursor": cursor})
            page = _dig(data, "node", "items") or {}
            items.extend(_parse_item(node) for node in page.get("nodes") or [] if node)
            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
        self.logger.debug(f"Listed {len(items)} items from project {project_id}")
        return items

    def get_fields(self, project_id: str) -> list[ProjectField]:
        data = self._client.execute(GET_FIELDS_QUERY, {"projectId": project_id})
        nodes = _dig(data, "node", "fields", "nodes") or []
        return [_parse_field(node) for node in nodes if node and node.get("id")]

    # -------------------------------------------------------------------------
    # Schema Operations
    # -------------------------------------------------------------------------

    def create_field(
        self,
        project_id: str,
        name: str,
        data_type: FieldDataType,
        options: list[FieldOption] | None = None,
    ) -> str:
        if data_type not in CREATABLE_FIELD_TYPES:
            raise RemoteApplicationError(f"Fields of type {data_type.value} cannot be created through the API")
        variables: dict[str, Any] = {"projectId": project_id, "name": name, "dataType": data_type.value}
        if data_type == FieldDataType.SINGLE_SELECT:
            variables["options"] = [_option_input(o) for o in options or [FieldOption(id="", name="Default")]]
        data = self._client.execute(CREATE_FIELD_MUTATION, variables)
        return _dig(data, "createProjectV2Field", "projectV2Field", "id") or ""

    def create_field_option(
        self,
        project_id: str,
        field: ProjectField,
        name: str,
        color: str = "GRAY",
    ) -> None:
        # The mutation replaces the option list, so existing options are resent.
        options = [_option_input(o) for o in field.options]
        options.append(_option_input(FieldOption(id="", name=name, color=color)))
        self._client.execute(UPDATE_FIELD_OPTIONS_MUTATION, {"fieldId": field.id, "options": options})

    # -------------------------------------------------------------------------
    # Item Operations
    # -------------------------------------------------------------------------

    def create_draft_item(self, project_id: str, title: str, body: str) -> CreatedItem:
        data = self._client.execute(ADD_DRAFT_MUTATION, {"projectId": project_id, "title": title, "body": body})
        item = _dig(data, "addProjectV2DraftIssue", "projectItem") or {}
        if not item.get("id"):
            raise RemoteApplicationError(f"Draft issue '{title}' was not created")
        return CreatedItem(item_id=item["id"], content_id=_dig(item, "content", "id"), content_type="DraftIssue")

    def _repository_id(self, repository: str) -> str:
        if repository not in self._repository_ids:
            owner, sep, name = repository.partition("/")
            if not sep or not owner or not name or "/" in name:
                raise ConfigError(f"Invalid repository '{repository}', expected 'owner/name'")
            data = self._client.execute(GET_REPOSITORY_QUERY, {"owner": owner, "name": name})
            repo_id = _dig(data, "repository", "id")
            if not repo_id:
                raise RemoteApplicationError(f"Repository '{repository}' not found")
            self._repository_ids[repository] = repo_id
        return self._repository_ids[repository]

    def _user_id(self, login: str) -> str | None:
        if login not in self._user_ids:
            try:
                data = self._client.execute(GET_USER_QUERY, {"login": login})
                self._user_ids[login] = _dig(data, "user", "id")
            except RemoteApplicationError as e:
                self.logger.warning(f"Unknown GitHub user '{login}': {e}")
                self._user_ids[login] = None
        return self._user_ids[login]

    def create_issue_item(
        self,
        project_id: str,
        repository: str,
        title: str,
        body: str,
        assignees: list[str] | None = None,
    ) -> CreatedItem:
        repo_id = self._repository_id(repository)
        assignee_ids = [uid for uid in (self._user_id(login) for login in assignees or []) if uid]
        data = self._client.execute(
            CREATE_ISSUE_MUTATION,
            {"repositoryId": repo_id, "title": title, "body": body, "assigneeIds": assignee_ids},
        )
        issue_id = _dig(data, "createIssue", "issue", "id")
        if not issue_id:
            raise RemoteApplicationError(f"Issue '{title}' was not created in {repository}")

        data = self._client.execute(ADD_ITEM_MUTATION, {"projectId": project_id, "contentId": issue_id})
        item_id = _dig(data, "addProjectV2ItemById", "item", "id")
        if not item_id:
            raise RemoteApplicationError(f"Issue {issue_id} could not be added to the project", item_id=issue_id)
        return CreatedItem(item_id=item_id, content_id=issue_id, content_type="Issue")

    def update_item_content(self, content_id: str, content_type: str, title: str, body: str) -> None:
        if content_type == "Issue":
            self._client.execute(UPDATE_ISSUE_MUTATION, {"id": content_id, "title": title, "body": body})
        elif content_type == "DraftIssue":
            self._client.execute(
                UPDATE_DRAFT_MUTATION, {"draftIssueId": content_id, "title": title, "body": body}
            )
        else:
            raise RemoteApplicationError(f"Items of type {content_type} cannot be edited", item_id=content_id)

    def update_field_value(self, project_id: str, item_id: str, field_id: str, value: dict[str, Any]) -> None:
        self._client.execute(
            UPDATE_FIELD_VALUE_MUTATION,
            {"projectId": project_id, "itemId": item_id, "fieldId": field_id, "value": value},
        )

    def delete_item(self, project_id: str, item_id: str) -> None:
        self._client.execute(DELETE_ITEM_MUTATION, {"projectId": project_id, "itemId": item_id})
