import json

import httpx
import pytest

from qcsat.services.outbound_executors import (
    OutboundExecutionError,
    execute_outbound_action,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_jira_creates_issue():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "10001", "key": "CSAT-7"})

    async with _client(handler) as client:
        item_id = await execute_outbound_action(
            "jira",
            "token-1",
            {"cloudId": "cloud-1", "project_key": "CSAT"},
            {"summary": "Checkout CSAT dropped", "description": "Avg 2.1"},
            client=client,
        )

    assert item_id == "CSAT-7"
    assert seen["url"] == "https://api.atlassian.com/ex/jira/cloud-1/rest/api/3/issue"
    assert seen["auth"] == "Bearer token-1"
    fields = seen["body"]["fields"]
    assert fields["project"] == {"key": "CSAT"}
    assert fields["summary"] == "Checkout CSAT dropped"
    assert fields["issuetype"] == {"name": "Task"}


@pytest.mark.asyncio
async def test_asana_airtable_and_wrike_return_external_ids():
    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "app.asana.com":
            return httpx.Response(201, json={"data": {"gid": "asana-1"}})
        if host == "api.airtable.com":
            assert request.url.path == "/v0/base-1/tbl-1"
            return httpx.Response(200, json={"id": "rec-1"})
        if host == "www.wrike.com":
            assert request.url.path == "/api/v4/folders/f-1/tasks"
            return httpx.Response(200, json={"data": [{"id": "wrike-1"}]})
        return httpx.Response(404)

    async with _client(handler) as client:
        assert await execute_outbound_action("asana", "t", {"project_id": "p"}, {}, client=client) == "asana-1"
        assert await execute_outbound_action(
            "airtable", "t", {"base_id": "base-1", "tableId": "tbl-1"}, {}, client=client
        ) == "rec-1"
        assert await execute_outbound_action("wrike", "t", {"folder_id": "f-1"}, {}, client=client) == "wrike-1"


@pytest.mark.asyncio
async def test_monday_sends_variables_and_surfaces_graphql_errors():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        if body["variables"]["itemName"] == "bad":
            return httpx.Response(200, json={"errors": [{"message": "Board not found"}]})
        return httpx.Response(200, json={"data": {"create_item": {"id": 555}}})

    async with _client(handler) as client:
        item_id = await execute_outbound_action(
            "monday", "t", {"board_id": 42}, {"item_name": 'Quote " inside'}, client=client
        )
        with pytest.raises(OutboundExecutionError, match="Board not found"):
            await execute_outbound_action("monday", "t", {"board_id": 42}, {"item_name": "bad"}, client=client)

    assert item_id == "555"
    assert seen[0]["variables"] == {"boardId": "42", "itemName": 'Quote " inside'}


@pytest.mark.asyncio
async def test_http_error_raises_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="invalid token")

    async with _client(handler) as client:
        with pytest.raises(OutboundExecutionError, match="401"):
            await execute_outbound_action("asana", "t", {"project_id": "p"}, {}, client=client)


@pytest.mark.asyncio
async def test_wrike_without_task_raises():
    async with _client(lambda request: httpx.Response(200, json={"data": []})) as client:
        with pytest.raises(OutboundExecutionError):
            await execute_outbound_action("wrike", "t", {"folder_id": "f"}, {}, client=client)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "integration_type,token,config",
    [
        ("zendesk", "t", {}),
        ("jira", "", {"cloud_id": "c", "project_key": "K"}),
        ("jira", "t", {"cloud_id": "c"}),
        ("asana", "t", {}),
        ("monday", "t", {}),
        ("airtable", "t", {"base_id": "b"}),
        ("wrike", "t", {}),
    ],
)
async def test_configuration_errors_fail_before_any_request(integration_type, token, config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        with pytest.raises(OutboundExecutionError):
            await execute_outbound_action(integration_type, token, config, {}, client=client)
