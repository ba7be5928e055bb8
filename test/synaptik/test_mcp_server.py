"""
Tests for the FastMCP server wrapper.

Tool calls go through fastmcp's in-memory Client so argument schemas and
the wrapper-to-tool plumbing are exercised end to end.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastmcp import Client

from synaptik_mcp.client import SynaptikApiClient
from synaptik_mcp.mcp_server import SynaptikMCPServer, create_mcp_server
from synaptik_mcp.tools import AVAILABLE_TOOLS
from conftest import uid

TASK_ID = uid(1)
DEP_A, DEP_B = uid(2), uid(3)


@pytest.fixture
def server(api_client, settings):
    return SynaptikMCPServer(client=api_client, settings=settings, server_version="9.9.9")


def result_text(result) -> str:
    return result.content[0].text


class TestServerCreation:

    @pytest.mark.asyncio
    async def test_all_tools_registered(self, server):
        mcp = await server._create_server()

        async with Client(mcp) as client:
            tools = await client.list_tools()

        assert {tool.name for tool in tools} == set(AVAILABLE_TOOLS)

    @pytest.mark.asyncio
    async def test_tool_schema_marks_optional_arguments(self, server):
        mcp = await server._create_server()

        async with Client(mcp) as client:
            tools = {tool.name: tool for tool in await client.list_tools()}

        unlink_schema = tools["unlink_tasks"].inputSchema
        assert unlink_schema["required"] == ["task_id"]
        assert set(tools["link_tasks"].inputSchema["required"]) == {"task_id", "depends_on_task_ids"}

    @pytest.mark.asyncio
    async def test_creation_failure_is_wrapped(self, server):
        with patch("synaptik_mcp.mcp_server.FastMCP", side_effect=TypeError("bad kwargs")):
            with pytest.raises(RuntimeError, match="MCP server creation failed"):
                await server._create_server()

    @pytest.mark.asyncio
    async def test_server_info(self, server):
        info = server.get_server_info()

        assert info["name"] == "Synaptik MCP"
        assert info["version"] == "9.9.9"
        assert info["api_url"] == "http://synaptik.test"
        assert len(info["registered_tools"]) == 27
        assert info["link_max_concurrency"] is None
        assert info["server_created"] is False
        assert "count" in info["api_calls"]


class TestToolCalls:

    @pytest.mark.asyncio
    async def test_link_tasks(self, server, mock_api):
        mock_api.add("POST", f"/api/tasks/{TASK_ID}/dependencies/{DEP_A}", 200)
        mock_api.add("POST", f"/api/tasks/{TASK_ID}/dependencies/{DEP_B}", 200)
        mcp = await server._create_server()

        async with Client(mcp) as client:
            result = await client.call_tool(
                "link_tasks", {"task_id": TASK_ID, "depends_on_task_ids": f"{DEP_A},{DEP_B}"}
            )

        text = result_text(result)
        assert text.startswith("🔗 Task linking results:")
        assert "📊 Summary: 2 succeeded, 0 failed (2 total)" in text

    @pytest.mark.asyncio
    async def test_unlink_all_without_dependency_argument(self, server, mock_api):
        mock_api.add("GET", f"/api/tasks/{TASK_ID}/dependencies", 200, [])
        mcp = await server._create_server()

        async with Client(mcp) as client:
            result = await client.call_tool("unlink_tasks", {"task_id": TASK_ID})

        assert result_text(result) == "ℹ️ Task has no dependencies to remove"

    @pytest.mark.asyncio
    async def test_validation_errors_are_returned_as_text(self, server, mock_api):
        mcp = await server._create_server()

        async with Client(mcp) as client:
            result = await client.call_tool("get_task", {"task_id": "not-a-uuid"})

        assert result_text(result) == "❌ Invalid task ID format. Please provide a valid UUID."
        assert mock_api.requests == []

    @pytest.mark.asyncio
    async def test_get_pending_tasks(self, server, mock_api):
        mock_api.add("GET", "/api/tasks/pending", 200, [{"id": TASK_ID, "title": "Write", "status": "PENDING"}])
        mcp = await server._create_server()

        async with Client(mcp) as client:
            result = await client.call_tool("get_pending_tasks", {})

        assert "⏳ Pending tasks (1 tasks):" in result_text(result)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_lifecycle_closes_client(self, settings, mock_api):
        client = SynaptikApiClient(transport=httpx.MockTransport(mock_api.handler))
        server = SynaptikMCPServer(client=client, settings=settings)

        async with server.lifecycle_manager() as mcp:
            assert mcp is server.mcp_server

        assert client.is_closed

    @pytest.mark.asyncio
    async def test_unsupported_transport(self, server):
        with pytest.raises(ValueError, match="Unsupported transport mode: websocket"):
            await server.start_server(transport="websocket")

    @pytest.mark.asyncio
    async def test_http_transport_gets_default_path(self, server):
        mcp = await server._create_server()
        server.mcp_server = mcp

        with patch.object(mcp, "run_async", new_callable=AsyncMock) as run_async:
            await server.start_server(transport="HTTP", host="0.0.0.0", port=9100)

        run_async.assert_awaited_once_with(transport="http", host="0.0.0.0", port=9100, path="/mcp")

    @pytest.mark.asyncio
    async def test_stdio_transport(self, server):
        mcp = await server._create_server()
        server.mcp_server = mcp

        with patch.object(mcp, "run_async", new_callable=AsyncMock) as run_async:
            await server.start_server()

        run_async.assert_awaited_once_with(transport="stdio")

    @pytest.mark.asyncio
    async def test_startup_failure_is_wrapped(self, server):
        mcp = await server._create_server()
        server.mcp_server = mcp

        with patch.object(mcp, "run_async", new_callable=AsyncMock, side_effect=OSError("in use")):
            with pytest.raises(RuntimeError, match="MCP server startup failed"):
                await server.start_server(transport="sse")


class TestSyncStartup:

    def test_sse_defaults_and_client_closed(self, settings, mock_api):
        client = SynaptikApiClient(transport=httpx.MockTransport(mock_api.handler))
        server = SynaptikMCPServer(client=client, settings=settings)

        with patch("fastmcp.FastMCP.run") as run:
            server.start_server_sync(transport="sse", port=9200)

        run.assert_called_once_with(transport="sse", host="127.0.0.1", port=9200, path="/sse")
        assert server.mcp_server is not None
        assert client.is_closed

    def test_unsupported_transport(self, settings, mock_api):
        client = SynaptikApiClient(transport=httpx.MockTransport(mock_api.handler))
        server = SynaptikMCPServer(client=client, settings=settings)

        with pytest.raises(ValueError):
            server.start_server_sync(transport="grpc")

        assert server.mcp_server is None


class TestFactory:

    @pytest.mark.asyncio
    async def test_builds_client_from_settings(self, settings):
        server = create_mcp_server(settings)

        assert server.client.base_url == "http://synaptik.test"
        assert server.settings is settings
        await server.client.aclose()

    @pytest.mark.asyncio
    async def test_uses_given_client(self, api_client, settings):
        server = create_mcp_server(settings, client=api_client)

        assert server.client is api_client
