"""
MCP Tools Implementation for Synaptik

Provides Model Context Protocol (MCP) tools that let AI agents manage tasks,
projects and task dependencies stored in a remote Synaptik service. Each tool
validates its arguments, calls the Synaptik API and renders the result as text.

Key Features:
- BaseTool abstract class with API client, dependency linker and settings
- Task CRUD and status transitions (start/stop/done)
- Task listing, search, dependency graph and neighbor queries
- LinkTasksTool / UnlinkTasksTool: concurrent per-edge dependency batches
- Project listing, creation and lifecycle transitions
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Type

import httpx
from pydantic import ValidationError

from .client import SynaptikApiClient
from .config import Settings, get_settings
from .formatting import (
    format_batch_report,
    format_projects_response,
    format_related_tasks,
    format_search_title,
    format_single_project_response,
    format_single_task_response,
    format_task_graph,
    format_tasks_response,
)
from .linking import (
    ApiEdgeService,
    DependencyLinker,
    DependencyPrefetchError,
    EmptyBatch,
    FanOutExecutor,
    InvalidIdentifier,
)
from .models import (
    Project,
    ProjectRequest,
    Task,
    TaskGraphResponse,
    TaskPriority,
    TaskRequest,
    TaskStatus,
)
from .validation import (
    clean_optional,
    is_iso_local_datetime,
    is_valid_uuid,
    parse_enum,
    split_csv,
)

logger = logging.getLogger(__name__)

INVALID_TASK_ID = "❌ Invalid task ID format. Please provide a valid UUID."
INVALID_PROJECT_ID = "❌ Invalid project ID format. Please provide a valid UUID."
TASK_ID_REQUIRED = "❌ Task ID is required"


def build_linker(client: SynaptikApiClient, settings: Settings) -> DependencyLinker:
    """Dependency linker wired to the API client and the configured fan-out limits."""
    executor = FanOutExecutor(
        max_concurrency=settings.link_max_concurrency,
        batch_timeout=settings.batch_timeout,
    )
    return DependencyLinker(ApiEdgeService(client), executor)


class BaseTool(ABC):
    """
    Abstract base class for Synaptik MCP tools.

    Provides the shared API client, dependency linker and settings, plus
    helpers for argument parsing and error reporting. All tools return
    human-readable text; failures are reported as text starting with ❌
    rather than raised to the MCP layer.
    """

    def __init__(
        self,
        client: SynaptikApiClient,
        linker: Optional[DependencyLinker] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize tool with its collaborators.

        Args:
            client: SynaptikApiClient for remote calls
            linker: DependencyLinker for link/unlink batches (built from client if omitted)
            settings: Server settings (process-wide settings if omitted)
        """
        self.client = client
        self.settings = settings or get_settings()
        self.linker = linker or build_linker(client, self.settings)

    @abstractmethod
    async def apply(self, **kwargs) -> str:
        """
        Apply the tool operation with provided parameters.

        Returns:
            Text result for the calling agent
        """
        pass

    def _handle_error(self, action: str, error: Exception) -> str:
        logger.error(f"Failed to {action}: {error!r}")
        if isinstance(error, httpx.HTTPStatusError):
            return f"❌ Failed to {action}: HTTP {error.response.status_code}"
        if isinstance(error, httpx.HTTPError):
            return f"❌ Failed to {action}: Synaptik API unreachable ({error})"
        return f"❌ Failed to {action}: {error}"

    @staticmethod
    def _reason(response: httpx.Response) -> str:
        return response.reason_phrase or f"HTTP {response.status_code}"

    def _parse_boolean(self, value: Optional[str], default: bool = True) -> bool:
        """
        Parse string boolean value to actual boolean.

        Accepts bools as-is and the usual string spellings ("true"/"false",
        "1"/"0", "yes"/"no"). Blank or None gives the default.
        """
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            if not value.strip():
                return default
            return value.strip().lower() in ('true', '1', 'yes', 'on')
        return bool(value)


# ===== TASK TOOLS =====

class TaskListTool(BaseTool):
    """Lists a fixed task view (all, pending, active, completed)."""

    title = "All tasks"
    emoji = "📋"

    async def _fetch(self) -> List[Task]:
        return await self.client.get_all_tasks()

    async def apply(self) -> str:
        try:
            tasks = await self._fetch()
        except Exception as e:
            return self._handle_error(f"get {self.title.lower()}", e)
        logger.info(f"Retrieved {len(tasks)} tasks for '{self.title}'")
        return format_tasks_response(tasks, self.title, self.emoji)


class GetAllTasksTool(TaskListTool):
    pass


class GetPendingTasksTool(TaskListTool):
    title = "Pending tasks"
    emoji = "⏳"

    async def _fetch(self) -> List[Task]:
        return await self.client.get_pending_tasks()


class GetActiveTasksTool(TaskListTool):
    title = "Active tasks"
    emoji = "🔄"

    async def _fetch(self) -> List[Task]:
        return await self.client.get_active_tasks()


class GetCompletedTasksTool(TaskListTool):
    title = "Completed tasks"
    emoji = "✅"

    async def _fetch(self) -> List[Task]:
        return await self.client.get_completed_tasks()


class GetOverdueTasksTool(BaseTool):
    """Overdue tasks, evaluated in the configured timezone."""

    async def apply(self) -> str:
        tz = self.settings.timezone
        try:
            tasks = await self.client.get_overdue_tasks(tz)
        except Exception as e:
            return self._handle_error("get overdue tasks", e)
        return format_tasks_response(tasks, f"Overdue tasks (timezone: {tz})")


class GetTodayTasksTool(BaseTool):
    """Tasks due today, evaluated in the configured timezone."""

    async def apply(self) -> str:
        tz = self.settings.timezone
        try:
            tasks = await self.client.get_today_tasks(tz)
        except Exception as e:
            return self._handle_error("get today's tasks", e)
        return format_tasks_response(tasks, f"Today's tasks (timezone: {tz})")


class GetTaskTool(BaseTool):
    async def apply(self, task_id: str) -> str:
        if not is_valid_uuid(task_id):
            return INVALID_TASK_ID
        task_id = task_id.strip()
        try:
            response = await self.client.get_task(task_id)
            if response.status_code != 200:
                return f"❌ Task not found with ID: {task_id}"
            task = Task.model_validate(response.json())
        except Exception as e:
            return self._handle_error("get task", e)
        return format_single_task_response(task, "Task retrieved successfully")


class CreateTaskTool(BaseTool):
    """
    Create a task.

    Priority is matched case-insensitively; an unrecognised priority falls
    back to MEDIUM instead of failing. Tags are comma separated.
    """

    async def apply(
        self,
        title: str,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        project: Optional[str] = None,
        assignee: Optional[str] = None,
        due_date: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> str:
        if not clean_optional(title):
            return "❌ Task title is required"

        try:
            task_priority = parse_enum(TaskPriority, priority)
        except ValueError:
            logger.info(f"Unknown priority '{priority}', defaulting to MEDIUM")
            task_priority = TaskPriority.MEDIUM

        try:
            task_request = TaskRequest(
                title=title.strip(),
                description=clean_optional(description),
                priority=task_priority,
                project=clean_optional(project),
                assignee=clean_optional(assignee),
                due_date=clean_optional(due_date),
                tags=split_csv(tags) or None,
            )
            response = await self.client.create_task(task_request)
            if response.status_code != 201:
                return f"❌ Failed to create task: {self._reason(response)}"
            created = Task.model_validate(response.json())
        except Exception as e:
            return self._handle_error("create task", e)

        logger.info(f"Created task {created.id} '{created.title}'")
        return format_single_task_response(created, "✅ Task created successfully")


class UpdateTaskTool(BaseTool):
    """Update the given fields of a task; omitted fields are left unchanged."""

    async def apply(
        self,
        task_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        project: Optional[str] = None,
        assignee: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> str:
        if not is_valid_uuid(task_id):
            return INVALID_TASK_ID

        try:
            task_priority = parse_enum(TaskPriority, priority)
        except ValueError:
            return "❌ Invalid priority. Use: HIGH, MEDIUM, LOW, NONE"

        try:
            task_request = TaskRequest(
                title=clean_optional(title),
                description=description,
                priority=task_priority,
                project=project,
                assignee=assignee,
                due_date=due_date,
            )
            response = await self.client.update_task(task_id.strip(), task_request)
            if response.status_code != 200:
                return f"❌ Failed to update task: {self._reason(response)}"
            updated = Task.model_validate(response.json())
        except Exception as e:
            return self._handle_error("update task", e)
        return format_single_task_response(updated, "✅ Task updated successfully")


class DeleteTaskTool(BaseTool):
    async def apply(self, task_id: str) -> str:
        if not is_valid_uuid(task_id):
            return INVALID_TASK_ID
        try:
            response = await self.client.delete_task(task_id.strip())
        except Exception as e:
            return self._handle_error("delete task", e)
        if response.status_code != 204:
            return f"❌ Failed to delete task: {self._reason(response)}"
        logger.info(f"Deleted task {task_id.strip()}")
        return "✅ Task deleted successfully"


class ChangeTaskStatusTool(BaseTool):
    """Moves a task to a fixed status."""

    target_status: TaskStatus = TaskStatus.ACTIVE
    success_message = "✅ Task started"
    action = "start task"

    async def apply(self, task_id: str) -> str:
        if not is_valid_uuid(task_id):
            return INVALID_TASK_ID
        try:
            response = await self.client.update_task_status(task_id.strip(), self.target_status)
            if response.status_code != 200:
                return f"❌ Failed to {self.action}: {self._reason(response)}"
            task = Task.model_validate(response.json())
        except Exception as e:
            return self._handle_error(self.action, e)
        return format_single_task_response(task, self.success_message)


class StartTaskTool(ChangeTaskStatusTool):
    pass


class StopTaskTool(ChangeTaskStatusTool):
    target_status = TaskStatus.PENDING
    success_message = "✅ Task stopped"
    action = "stop task"


class MarkTaskDoneTool(ChangeTaskStatusTool):
    target_status = TaskStatus.COMPLETED
    success_message = "✅ Task marked as done"
    action = "mark task as done"


class SearchTasksTool(BaseTool):
    """
    Search tasks with optional filters.

    Blank filters are ignored, statuses are comma separated, and the project
    id (when given) must be a UUID. Timezone defaults to the configured one.
    """

    async def apply(
        self,
        assignee: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        title: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> str:
        tz = clean_optional(timezone) or self.settings.timezone
        project_id = clean_optional(project_id)
        if project_id and not is_valid_uuid(project_id):
            return INVALID_PROJECT_ID

        assignee = clean_optional(assignee)
        date_from = clean_optional(date_from)
        date_to = clean_optional(date_to)
        title = clean_optional(title)
        statuses = split_csv(status) or None

        try:
            tasks = await self.client.search_tasks(
                assignee=assignee,
                date_from=date_from,
                date_to=date_to,
                project_id=project_id,
                statuses=statuses,
                title=title,
                tz=tz,
            )
        except Exception as e:
            return self._handle_error("search tasks", e)

        search_title = format_search_title(
            assignee=assignee,
            title=title,
            statuses=statuses,
            project_id=project_id,
            date_from=date_from,
            date_to=date_to,
            timezone=tz,
        )
        return format_tasks_response(tasks, search_title)


# ===== GRAPH AND DEPENDENCY TOOLS =====

class GetTaskGraphTool(BaseTool):
    async def apply(self, statuses: Optional[str] = None) -> str:
        try:
            graph = await self.client.get_task_graph(clean_optional(statuses))
        except Exception as e:
            return self._handle_error("get task graph", e)
        return format_task_graph(graph)


class GetTaskNeighborsTool(BaseTool):
    """Dependencies and dependents of one task, up to the requested depth."""

    async def apply(
        self,
        task_id: str,
        depth: Optional[str] = None,
        include_placeholders: Optional[str] = None,
    ) -> str:
        if not is_valid_uuid(task_id):
            return INVALID_TASK_ID
        task_id = task_id.strip()

        depth_value = 1
        if depth is not None and str(depth).strip():
            try:
                depth_value = int(str(depth).strip())
            except ValueError:
                return "❌ Invalid depth value. Please provide a valid integer."
        placeholders = self._parse_boolean(include_placeholders, default=True)

        try:
            response = await self.client.get_task_neighbors(task_id, depth_value, placeholders)
        except Exception as e:
            return self._handle_error("get task neighbors", e)

        if response.status_code != 200:
            return f"❌ Failed to get task neighbors: {response.text}"

        try:
            body = format_task_graph(TaskGraphResponse.model_validate(response.json()))
        except (ValueError, ValidationError):
            body = response.text
        return (
            f"✅ Task neighbors retrieved successfully for task: {task_id}\n"
            f"📊 Depth: {depth_value}\n"
            f"🔗 Include placeholders: {str(placeholders).lower()}\n\n"
            f"{body}"
        )


class GetTaskDependenciesTool(BaseTool):
    dependents = False

    async def apply(self, task_id: str) -> str:
        task_id = clean_optional(task_id)
        if not task_id:
            return TASK_ID_REQUIRED
        try:
            if self.dependents:
                tasks = await self.client.get_task_dependents(task_id)
            else:
                tasks = await self.client.get_task_dependencies(task_id)
        except Exception as e:
            kind = "dependents" if self.dependents else "dependencies"
            logger.error(f"Failed to get task {kind} for {task_id}: {e!r}")
            return f"❌ Failed to get task {kind} for: {task_id}"
        return format_related_tasks(task_id, tasks, dependents=self.dependents)


class GetTaskDependentsTool(GetTaskDependenciesTool):
    dependents = True


class LinkTasksTool(BaseTool):
    """
    Make one task depend on each task in a comma separated list.

    Every link is attempted independently and concurrently; the report lists
    each one in input order with its outcome and a success/failure count.
    """

    async def apply(self, task_id: str, depends_on_task_ids: Optional[str] = None) -> str:
        if not clean_optional(task_id):
            return TASK_ID_REQUIRED
        try:
            report = await self.linker.link(task_id, depends_on_task_ids)
        except EmptyBatch as e:
            return f"❌ {e}"
        except InvalidIdentifier as e:
            return f"❌ {e}"
        except Exception as e:
            return self._handle_error("link tasks", e)
        return format_batch_report(report)


class UnlinkTasksTool(BaseTool):
    """
    Remove dependencies from a task.

    With an explicit comma separated list only those edges are removed; with
    an empty list the task's current dependencies are fetched first and every
    one of them is removed.
    """

    async def apply(self, task_id: str, dependency_ids_to_remove: Optional[str] = None) -> str:
        if not clean_optional(task_id):
            return TASK_ID_REQUIRED
        try:
            report = await self.linker.unlink(task_id, dependency_ids_to_remove)
        except EmptyBatch as e:
            return f"❌ {e}"
        except InvalidIdentifier as e:
            return f"❌ {e}"
        except DependencyPrefetchError as e:
            return f"❌ Failed to get task dependencies for: {e.task_id}"
        except Exception as e:
            return self._handle_error("unlink tasks", e)
        return format_batch_report(report)


# ===== PROJECT TOOLS =====

class ProjectListTool(BaseTool):
    title = "All projects"

    async def _fetch(self) -> List[Project]:
        return await self.client.get_all_projects()

    async def apply(self) -> str:
        try:
            projects = await self._fetch()
        except Exception as e:
            return self._handle_error(f"get {self.title.lower()}", e)
        return format_projects_response(projects, self.title)


class GetAllProjectsTool(ProjectListTool):
    pass


class GetActiveProjectsTool(ProjectListTool):
    title = "Active projects"

    async def _fetch(self) -> List[Project]:
        return await self.client.get_active_projects()


class GetOverdueProjectsTool(ProjectListTool):
    title = "Overdue projects"

    async def _fetch(self) -> List[Project]:
        return await self.client.get_overdue_projects()


class GetProjectTool(BaseTool):
    async def apply(self, project_id: str) -> str:
        if not is_valid_uuid(project_id):
            return INVALID_PROJECT_ID
        project_id = project_id.strip()
        try:
            response = await self.client.get_project(project_id)
            if response.status_code != 200:
                return f"❌ Project not found with ID: {project_id}"
            project = Project.model_validate(response.json())
        except Exception as e:
            return self._handle_error("get project", e)
        return format_single_project_response(project, "Project retrieved successfully")


class CreateProjectTool(BaseTool):
    async def apply(
        self,
        name: str,
        description: Optional[str] = None,
        owner: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> str:
        if not clean_optional(name):
            return "❌ Project name is required"

        due_date = clean_optional(due_date)
        if due_date and not is_iso_local_datetime(due_date):
            return "❌ Invalid date format. Please use ISO format like: 2024-12-31T23:59:59"

        try:
            project_request = ProjectRequest(
                name=name.strip(),
                description=clean_optional(description),
                owner=clean_optional(owner),
                due_date=due_date,
            )
            response = await self.client.create_project(project_request)
            if response.status_code != 201:
                return f"❌ Failed to create project: {self._reason(response)}"
            project = Project.model_validate(response.json())
        except Exception as e:
            return self._handle_error("create project", e)

        logger.info(f"Created project {project.id} '{project.name}'")
        return format_single_project_response(project, "✅ Project created successfully")


class ProjectTransitionTool(BaseTool):
    success_message = "✅ Project started"
    action = "start project"

    async def _send(self, project_id: str) -> httpx.Response:
        return await self.client.start_project(project_id)

    async def apply(self, project_id: str) -> str:
        if not is_valid_uuid(project_id):
            return INVALID_PROJECT_ID
        try:
            response = await self._send(project_id.strip())
            if response.status_code != 200:
                return f"❌ Failed to {self.action}: {self._reason(response)}"
            project = Project.model_validate(response.json())
        except Exception as e:
            return self._handle_error(self.action, e)
        return format_single_project_response(project, self.success_message)


class ActivateProjectTool(ProjectTransitionTool):
    pass


class CompleteProjectTool(ProjectTransitionTool):
    success_message = "✅ Project completed"
    action = "complete project"

    async def _send(self, project_id: str) -> httpx.Response:
        return await self.client.complete_project(project_id)


# Tool registry for MCP server integration
AVAILABLE_TOOLS: Dict[str, Type[BaseTool]] = {
    "get_all_tasks": GetAllTasksTool,
    "get_task": GetTaskTool,
    "create_task": CreateTaskTool,
    "link_tasks": LinkTasksTool,
    "update_task": UpdateTaskTool,
    "delete_task": DeleteTaskTool,
    "start_task": StartTaskTool,
    "stop_task": StopTaskTool,
    "mark_task_done": MarkTaskDoneTool,
    "get_pending_tasks": GetPendingTasksTool,
    "get_active_tasks": GetActiveTasksTool,
    "get_completed_tasks": GetCompletedTasksTool,
    "get_overdue_tasks": GetOverdueTasksTool,
    "get_today_tasks": GetTodayTasksTool,
    "search_tasks": SearchTasksTool,
    "get_task_graph": GetTaskGraphTool,
    "get_task_neighbors": GetTaskNeighborsTool,
    "get_task_dependencies": GetTaskDependenciesTool,
    "get_task_dependents": GetTaskDependentsTool,
    "unlink_tasks": UnlinkTasksTool,
    "get_all_projects": GetAllProjectsTool,
    "get_project": GetProjectTool,
    "create_project": CreateProjectTool,
    "get_active_projects": GetActiveProjectsTool,
    "get_overdue_projects": GetOverdueProjectsTool,
    "activate_project": ActivateProjectTool,
    "complete_project": CompleteProjectTool,
}


def create_tool_instance(
    tool_name: str,
    client: SynaptikApiClient,
    linker: Optional[DependencyLinker] = None,
    settings: Optional[Settings] = None,
) -> BaseTool:
    """
    Factory function to create tool instances with dependencies.

    Args:
        tool_name: Name of the tool to create
        client: SynaptikApiClient shared by all tools
        linker: Shared DependencyLinker (optional)
        settings: Server settings (optional)

    Returns:
        Configured tool instance ready for use

    Raises:
        KeyError: If tool_name is not found in AVAILABLE_TOOLS
    """
    if tool_name not in AVAILABLE_TOOLS:
        raise KeyError(f"Unknown tool '{tool_name}'. Available tools: {list(AVAILABLE_TOOLS.keys())}")

    tool_class = AVAILABLE_TOOLS[tool_name]
    return tool_class(client, linker=linker, settings=settings)
