"""
FastMCP Server Implementation for Synaptik MCP

Provides the FastMCP server factory with lifecycle management and tool
registration for every Synaptik tool. Supports stdio, SSE and streamable HTTP
transports. The server owns one SynaptikApiClient, shared by all tools and
closed when the lifecycle ends.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any

import anyio
from fastmcp import FastMCP

from .client import SynaptikApiClient
from .config import Settings, get_settings
from .linking import DependencyLinker
from .monitoring import get_call_monitor
from .tools import AVAILABLE_TOOLS, BaseTool, build_linker, create_tool_instance

logger = logging.getLogger(__name__)

SUPPORTED_TRANSPORTS = ("stdio", "sse", "http")
DEFAULT_PATHS = {"sse": "/sse", "http": "/mcp"}


class SynaptikMCPServer:
    """
    FastMCP server wrapper with lifecycle management and tool registration.

    Creates the API client and dependency linker once, hands them to every
    tool, and registers thin async wrappers with FastMCP so tool schemas
    are generated from the wrapper signatures.
    """

    def __init__(
        self,
        client: SynaptikApiClient,
        settings: Optional[Settings] = None,
        server_version: str = "1.0.0",
    ):
        """
        Initialize MCP server with its API client.

        Args:
            client: SynaptikApiClient shared by all tools
            settings: Server settings (process-wide settings if omitted)
            server_version: Version string for server identification
        """
        self.client = client
        self.settings = settings or get_settings()
        self.server_name = self.settings.server_name
        self.server_version = server_version
        self.linker: DependencyLinker = build_linker(client, self.settings)
        self.mcp_server: Optional[FastMCP] = None

        self._server_instructions = (
            f"{self.server_name} manages tasks and projects stored in Synaptik. "
            "Use it to create, update and transition tasks, search and list them, "
            "inspect the dependency graph, and link or unlink task dependencies. "
            "Task and project IDs are UUIDs; list arguments are comma separated."
        )

    def _tool(self, name: str) -> BaseTool:
        return create_tool_instance(name, self.client, linker=self.linker, settings=self.settings)

    async def _create_server(self) -> FastMCP:
        """
        Create and configure the FastMCP server instance with tool registration.

        Returns:
            Configured FastMCP server instance
        """
        try:
            mcp = FastMCP(
                name=self.server_name,
                instructions=self._server_instructions,
                version=self.server_version,
            )
            tools = {name: self._tool(name) for name in AVAILABLE_TOOLS}

            # ===== TASK MANAGEMENT TOOLS =====

            @mcp.tool
            async def get_all_tasks() -> str:
                """Get all tasks from Synaptik."""
                return await tools["get_all_tasks"].apply()

            @mcp.tool
            async def get_task(task_id: str) -> str:
                """
                Get a specific task by ID.

                Args:
                    task_id: Task ID (UUID)
                """
                return await tools["get_task"].apply(task_id=task_id)

            @mcp.tool
            async def create_task(
                title: str,
                description: Optional[str] = None,
                priority: Optional[str] = None,
                project: Optional[str] = None,
                assignee: Optional[str] = None,
                due_date: Optional[str] = None,
                tags: Optional[str] = None,
            ) -> str:
                """
                Create a new task.

                Args:
                    title: Task title
                    description: Task description (optional)
                    priority: Task priority: HIGH, MEDIUM, LOW, NONE
                    project: Project name (optional)
                    assignee: Assignee name (optional)
                    due_date: Due date in ISO format (optional)
                    tags: Tags comma-separated (optional)
                """
                return await tools["create_task"].apply(
                    title=title,
                    description=description,
                    priority=priority,
                    project=project,
                    assignee=assignee,
                    due_date=due_date,
                    tags=tags,
                )

            @mcp.tool
            async def link_tasks(task_id: str, depends_on_task_ids: str) -> str:
                """
                Link tasks together by creating dependencies.

                Each dependency is linked independently; the result lists every
                link with its outcome plus success/failure counts.

                Args:
                    task_id: Task ID that should depend on other tasks
                    depends_on_task_ids: Comma-separated list of task IDs that this task depends on
                """
                return await tools["link_tasks"].apply(
                    task_id=task_id, depends_on_task_ids=depends_on_task_ids
                )

            @mcp.tool
            async def update_task(
                task_id: str,
                title: Optional[str] = None,
                description: Optional[str] = None,
                priority: Optional[str] = None,
                project: Optional[str] = None,
                assignee: Optional[str] = None,
                due_date: Optional[str] = None,
            ) -> str:
                """
                Update an existing task. Only the fields given are changed.

                Args:
                    task_id: Task ID
                    title: New title (optional)
                    description: New description (optional)
                    priority: New priority: HIGH, MEDIUM, LOW, NONE (optional)
                    project: New project name (optional)
                    assignee: New assignee (optional)
                    due_date: New due date in ISO format (optional)
                """
                return await tools["update_task"].apply(
                    task_id=task_id,
                    title=title,
                    description=description,
                    priority=priority,
                    project=project,
                    assignee=assignee,
                    due_date=due_date,
                )

            @mcp.tool
            async def delete_task(task_id: str) -> str:
                """Delete a task."""
                return await tools["delete_task"].apply(task_id=task_id)

            @mcp.tool
            async def start_task(task_id: str) -> str:
                """Start working on a task."""
                return await tools["start_task"].apply(task_id=task_id)

            @mcp.tool
            async def stop_task(task_id: str) -> str:
                """Stop working on a task."""
                return await tools["stop_task"].apply(task_id=task_id)

            @mcp.tool
            async def mark_task_done(task_id: str) -> str:
                """Mark a task as done/completed."""
                return await tools["mark_task_done"].apply(task_id=task_id)

            @mcp.tool
            async def get_pending_tasks() -> str:
                """Get all pending tasks."""
                return await tools["get_pending_tasks"].apply()

            @mcp.tool
            async def get_active_tasks() -> str:
                """Get all active tasks."""
                return await tools["get_active_tasks"].apply()

            @mcp.tool
            async def get_completed_tasks() -> str:
                """Get all completed tasks."""
                return await tools["get_completed_tasks"].apply()

            @mcp.tool
            async def get_overdue_tasks() -> str:
                """Get all overdue tasks."""
                return await tools["get_overdue_tasks"].apply()

            @mcp.tool
            async def get_today_tasks() -> str:
                """Get today's tasks."""
                return await tools["get_today_tasks"].apply()

            @mcp.tool
            async def search_tasks(
                assignee: Optional[str] = None,
                date_from: Optional[str] = None,
                date_to: Optional[str] = None,
                project_id: Optional[str] = None,
                status: Optional[str] = None,
                title: Optional[str] = None,
                timezone: Optional[str] = None,
            ) -> str:
                """
                Search tasks with multiple filters.

                Args:
                    assignee: Assignee name (partial match, optional)
                    date_from: Date from (ISO format, optional): 2024-01-01T00:00:00Z
                    date_to: Date to (ISO format, optional): 2024-12-31T23:59:59Z
                    project_id: Project ID (exact UUID match, optional)
                    status: Task statuses (comma-separated, optional): PENDING,ACTIVE,COMPLETED
                    title: Task title (partial match, optional)
                    timezone: Timezone (optional, default: server timezone)
                """
                return await tools["search_tasks"].apply(
                    assignee=assignee,
                    date_from=date_from,
                    date_to=date_to,
                    project_id=project_id,
                    status=status,
                    title=title,
                    timezone=timezone,
                )

            # ===== TASK GRAPH AND DEPENDENCY TOOLS =====

            @mcp.tool
            async def get_task_graph(statuses: Optional[str] = None) -> str:
                """
                Get task dependency graph with optional status filtering.

                Args:
                    statuses: Comma-separated task statuses to filter (optional): PENDING,ACTIVE,COMPLETED
                """
                return await tools["get_task_graph"].apply(statuses=statuses)

            @mcp.tool
            async def get_task_neighbors(
                task_id: str,
                depth: Optional[str] = None,
                include_placeholders: Optional[str] = None,
            ) -> str:
                """
                Get task neighbors (dependencies and dependents) for a specific task.

                Args:
                    task_id: Task ID
                    depth: Depth of neighbors to include (default: 1)
                    include_placeholders: Include placeholder tasks (default: true)
                """
                return await tools["get_task_neighbors"].apply(
                    task_id=task_id, depth=depth, include_placeholders=include_placeholders
                )

            @mcp.tool
            async def get_task_dependencies(task_id: str) -> str:
                """Get tasks that this task depends on."""
                return await tools["get_task_dependencies"].apply(task_id=task_id)

            @mcp.tool
            async def get_task_dependents(task_id: str) -> str:
                """Get tasks that depend on this task."""
                return await tools["get_task_dependents"].apply(task_id=task_id)

            @mcp.tool
            async def unlink_tasks(task_id: str, dependency_ids_to_remove: Optional[str] = None) -> str:
                """
                Unlink tasks by removing dependencies.

                Args:
                    task_id: Task ID to remove dependencies from
                    dependency_ids_to_remove: Comma-separated list of dependency task IDs to remove
                        (leave empty to remove all dependencies)
                """
                return await tools["unlink_tasks"].apply(
                    task_id=task_id, dependency_ids_to_remove=dependency_ids_to_remove
                )

            # ===== PROJECT MANAGEMENT TOOLS =====

            @mcp.tool
            async def get_all_projects() -> str:
                """Get all projects."""
                return await tools["get_all_projects"].apply()

            @mcp.tool
            async def get_project(project_id: str) -> str:
                """Get a specific project by ID."""
                return await tools["get_project"].apply(project_id=project_id)

            @mcp.tool
            async def create_project(
                name: str,
                description: Optional[str] = None,
                owner: Optional[str] = None,
                due_date: Optional[str] = None,
            ) -> str:
                """
                Create a new project.

                Args:
                    name: Project name
                    description: Project description (optional)
                    owner: Project owner (optional)
                    due_date: Due date in ISO format (optional), e.g. 2024-12-31T23:59:59
                """
                return await tools["create_project"].apply(
                    name=name, description=description, owner=owner, due_date=due_date
                )

            @mcp.tool
            async def get_active_projects() -> str:
                """Get active projects."""
                return await tools["get_active_projects"].apply()

            @mcp.tool
            async def get_overdue_projects() -> str:
                """Get overdue projects."""
                return await tools["get_overdue_projects"].apply()

            @mcp.tool
            async def activate_project(project_id: str) -> str:
                """Start a project."""
                return await tools["activate_project"].apply(project_id=project_id)

            @mcp.tool
            async def complete_project(project_id: str) -> str:
                """Complete a project."""
                return await tools["complete_project"].apply(project_id=project_id)

            logger.info(f"FastMCP server '{self.server_name}' created with {len(tools)} registered tools")
            return mcp

        except Exception as e:
            logger.error(f"Failed to create FastMCP server: {e}")
            raise RuntimeError(f"MCP server creation failed: {e}") from e

    async def start_server(
        self,
        transport: str = "stdio",
        host: str = "127.0.0.1",
        port: int = 8000,
        **kwargs
    ) -> None:
        """
        Start the FastMCP server with specified transport configuration.

        Args:
            transport: Transport mode ('stdio', 'sse', 'http')
            host: Host address for SSE/HTTP transports
            port: Port number for SSE/HTTP transports
            **kwargs: Additional transport-specific configuration
        """
        transport = transport.lower()
        if transport not in SUPPORTED_TRANSPORTS:
            raise ValueError(f"Unsupported transport mode: {transport}. Supported: stdio, sse, http")

        try:
            if not self.mcp_server:
                self.mcp_server = await self._create_server()

            logger.info(f"Starting FastMCP server with {transport} transport")
            if transport == "stdio":
                await self.mcp_server.run_async(transport="stdio")
            else:
                kwargs.setdefault("path", DEFAULT_PATHS[transport])
                await self.mcp_server.run_async(transport=transport, host=host, port=port, **kwargs)
        except Exception as e:
            logger.error(f"Failed to start FastMCP server with {transport} transport: {e}")
            raise RuntimeError(f"MCP server startup failed: {e}") from e

    def start_server_sync(self, transport: str = "stdio", host: str = "127.0.0.1", port: int = 8000, **kwargs):
        """
        Start the server from synchronous code.

        The server is built under anyio.run() and FastMCP then runs its own
        event loop. The API client is closed when the server returns.
        """
        transport = transport.lower()
        if transport not in SUPPORTED_TRANSPORTS:
            raise ValueError(f"Unsupported transport mode: {transport}. Supported: stdio, sse, http")

        if not self.mcp_server:
            self.mcp_server = anyio.run(self._create_server)

        try:
            if transport == "stdio":
                self.mcp_server.run(transport="stdio")
            else:
                kwargs.setdefault("path", DEFAULT_PATHS[transport])
                self.mcp_server.run(transport=transport, host=host, port=port, **kwargs)
        finally:
            anyio.run(self.client.aclose)

    @asynccontextmanager
    async def lifecycle_manager(self):
        """
        Async context manager for server lifecycle.

        Creates the FastMCP server on entry and closes the shared API client
        on exit.
        """
        try:
            if not self.mcp_server:
                self.mcp_server = await self._create_server()
            logger.info(f"FastMCP server lifecycle started for '{self.server_name}'")
            yield self.mcp_server
        except Exception as e:
            logger.error(f"FastMCP server lifecycle error: {e}")
            raise
        finally:
            await self.client.aclose()
            logger.info(f"FastMCP server lifecycle ended for '{self.server_name}'")

    def get_server_info(self) -> Dict[str, Any]:
        """
        Server configuration and status for monitoring and debugging.

        Returns:
            Dictionary with name, version, API target, tools and call statistics
        """
        return {
            "name": self.server_name,
            "version": self.server_version,
            "instructions": self._server_instructions,
            "api_url": self.client.base_url,
            "registered_tools": list(AVAILABLE_TOOLS.keys()),
            "link_max_concurrency": self.settings.link_max_concurrency or None,
            "batch_timeout": self.settings.batch_timeout,
            "server_created": self.mcp_server is not None,
            "api_calls": get_call_monitor().get_summary(),
        }


def create_mcp_server(
    settings: Optional[Settings] = None,
    client: Optional[SynaptikApiClient] = None,
    server_version: str = "1.0.0",
) -> SynaptikMCPServer:
    """
    Factory function to create a configured SynaptikMCPServer.

    Args:
        settings: Server settings (process-wide settings if omitted)
        client: API client to use (built from settings if omitted)
        server_version: Version string for server identification

    Returns:
        Configured SynaptikMCPServer ready for startup
    """
    settings = settings or get_settings()
    if client is None:
        client = SynaptikApiClient(base_url=settings.api_url, timeout=settings.api_timeout)
    return SynaptikMCPServer(client=client, settings=settings, server_version=server_version)
