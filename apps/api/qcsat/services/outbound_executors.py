"""Create items in external work trackers (Jira, Asana, Monday, Airtable, Wrike)."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

from qcsat.core.config import settings
from qcsat.db.enums import IntegrationType

logger = logging.getLogger(__name__)

DEFAULT_ITEM_TITLE_SUFFIX = "from Q CSAT"

MONDAY_CREATE_ITEM = """
mutation ($boardId: ID!, $itemName: String!) {
  create_item (board_id: $boardId, item_name: $itemName) {
    id
  }
}
"""


class OutboundExecutionError(Exception):
    """External API rejected the request or returned an unusable response."""


Executor = Callable[[httpx.AsyncClient, str, dict, dict], Awaitable[str]]


def _config_value(config: dict, *keys: str) -> Any:
    for key in keys:
        value = config.get(key)
        if value:
            return value
    return None


def _raise_for_status(response: httpx.Response, provider: str) -> None:
    if response.is_success:
        return
    # Response bodies can echo request data; keep only a short prefix.
    detail = response.text[:500]
    raise OutboundExecutionError(f"{provider} API error ({response.status_code}): {detail}")


async def execute_jira(client: httpx.AsyncClient, token: str, config: dict, payload: dict) -> str:
    cloud_id = _config_value(config, "cloud_id", "cloudId")
    project_key = _config_value(config, "project_key", "projectKey")
    if not cloud_id or not project_key:
        raise OutboundExecutionError("Jira cloud ID or project key not configured")

    response = await client.post(
        f"https://api.atlassian.com/ex/jira/{cloud_id}/rest/api/3/issue",
        headers={"Authorization": f"Bearer {token}"},
        json={
            "fields": {
                "project": {"key": project_key},
                "summary": payload.get("summary") or f"New issue {DEFAULT_ITEM_TITLE_SUFFIX}",
                "description": {
                    "type": "doc",
                    "version": 1,
                    "content": [
                        {
                            "type": "paragraph",
                            "content": [{"type": "text", "text": payload.get("description") or ""}],
                        }
                    ],
                },
                "issuetype": {"name": payload.get("issue_type") or payload.get("issueType") or "Task"},
                "labels": payload.get("labels") or ["csat"],
            }
        },
    )
    _raise_for_status(response, "Jira")
    return response.json()["key"]


async def execute_asana(client: httpx.AsyncClient, token: str, config: dict, payload: dict) -> str:
    project_id = _config_value(config, "project_id", "projectId")
    if not project_id:
        raise OutboundExecutionError("Asana project ID not configured")

    response = await client.post(
        "https://app.asana.com/api/1.0/tasks",
        headers={"Authorization": f"Bearer {token}"},
        json={
            "data": {
                "projects": [project_id],
                "name": payload.get("name") or f"New task {DEFAULT_ITEM_TITLE_SUFFIX}",
                "notes": payload.get("notes") or "",
            }
        },
    )
    _raise_for_status(response, "Asana")
    return response.json()["data"]["gid"]


async def execute_monday(client: httpx.AsyncClient, token: str, config: dict, payload: dict) -> str:
    board_id = _config_value(config, "board_id", "boardId")
    if not board_id:
        raise OutboundExecutionError("Monday board ID not configured")

    item_name = payload.get("item_name") or payload.get("itemName") or f"New item {DEFAULT_ITEM_TITLE_SUFFIX}"
    response = await client.post(
        "https://api.monday.com/v2",
        headers={"Authorization": token},
        json={
            "query": MONDAY_CREATE_ITEM,
            "variables": {"boardId": str(board_id), "itemName": item_name},
        },
    )
    _raise_for_status(response, "Monday")
    body = response.json()
    if body.get("errors"):
        raise OutboundExecutionError(f"Monday API error: {body['errors'][0].get('message')}")
    return str(body["data"]["create_item"]["id"])


async def execute_airtable(client: httpx.AsyncClient, token: str, config: dict, payload: dict) -> str:
    base_id = _config_value(config, "base_id", "baseId")
    table_id = _config_value(config, "table_id", "tableId")
    if not base_id or not table_id:
        raise OutboundExecutionError("Airtable base or table ID not configured")

    response = await client.post(
        f"https://api.airtable.com/v0/{base_id}/{table_id}",
        headers={"Authorization": f"Bearer {token}"},
        json={"fields": payload.get("fields") or {"Name": f"New record {DEFAULT_ITEM_TITLE_SUFFIX}"}},
    )
    _raise_for_status(response, "Airtable")
    return response.json()["id"]


async def execute_wrike(client: httpx.AsyncClient, token: str, config: dict, payload: dict) -> str:
    folder_id = _config_value(config, "folder_id", "folderId")
    if not folder_id:
        raise OutboundExecutionError("Wrike folder ID not configured")

    response = await client.post(
        f"https://www.wrike.com/api/v4/folders/{folder_id}/tasks",
        headers={"Authorization": f"Bearer {token}"},
        json={
            "title": payload.get("title") or f"New task {DEFAULT_ITEM_TITLE_SUFFIX}",
            "description": payload.get("description") or "",
        },
    )
    _raise_for_status(response, "Wrike")
    data = response.json().get("data") or []
    if not data:
        raise OutboundExecutionError("Wrike API returned no task")
    return data[0]["id"]


EXECUTORS: dict[str, Executor] = {
    IntegrationType.JIRA.value: execute_jira,
    IntegrationType.ASANA.value: execute_asana,
    IntegrationType.MONDAY.value: execute_monday,
    IntegrationType.AIRTABLE.value: execute_airtable,
    IntegrationType.WRIKE.value: execute_wrike,
}


async def execute_outbound_action(
    integration_type: str,
    access_token: str,
    config: dict,
    payload: dict,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Create the external item and return its id."""
    executor = EXECUTORS.get(integration_type)
    if executor is None:
        raise OutboundExecutionError(f"Unsupported integration type: {integration_type}")
    if not access_token:
        raise OutboundExecutionError("No access token configured")

    if client is not None:
        return await executor(client, access_token, config or {}, payload or {})
    async with httpx.AsyncClient(timeout=settings.OUTBOUND_HTTP_TIMEOUT_SECONDS) as owned:
        return await executor(owned, access_token, config or {}, payload or {})
