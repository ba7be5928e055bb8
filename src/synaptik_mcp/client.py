"""
HTTP client for the Synaptik task service API.

Thin async wrapper over httpx. Query endpoints raise for non-2xx status and
return parsed models; mutating endpoints whose status the tools branch on
(create, update, delete, link, ...) return the raw httpx.Response.
"""

import logging
import time
from typing import Optional, List, Dict, Any

import httpx

from .models import (
    Task,
    TaskRequest,
    TaskStatus,
    Project,
    ProjectRequest,
    TaskGraphResponse,
)
from .monitoring import CallMonitor, call_monitor

logger = logging.getLogger(__name__)

READINESS_PATH = "/q/health/ready"


class SynaptikApiClient:
    """Async HTTP client for communicating with the Synaptik API."""

    def __init__(
        self,
        base_url: str = "http://localhost:9001",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        monitor: Optional[CallMonitor] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.monitor = monitor or call_monitor
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "SynaptikApiClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        """Issue one request and record its timing."""
        start = time.perf_counter()
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self.monitor.record_call(operation, (time.perf_counter() - start) * 1000, ok=False)
            logger.warning(f"Synaptik {operation} failed: {method} {path}: {e!r}")
            raise
        duration_ms = (time.perf_counter() - start) * 1000
        self.monitor.record_call(operation, duration_ms, ok=response.is_success)
        logger.debug(f"Synaptik {operation}: {method} {path} -> {response.status_code} ({duration_ms:.1f}ms)")
        return response

    async def _get_tasks(self, operation: str, path: str, params: Optional[Dict[str, Any]] = None) -> List[Task]:
        response = await self._request(operation, "GET", path, params=params)
        response.raise_for_status()
        return [Task.model_validate(item) for item in response.json() or []]

    async def _get_projects(self, operation: str, path: str) -> List[Project]:
        response = await self._request(operation, "GET", path)
        response.raise_for_status()
        return [Project.model_validate(item) for item in response.json() or []]

    # ==================== Task Endpoints ====================

    async def get_all_tasks(self) -> List[Task]:
        return await self._get_tasks("get_all_tasks", "/api/tasks")

    async def get_task(self, task_id: str) -> httpx.Response:
        return await self._request("get_task", "GET", f"/api/tasks/{task_id}")

    async def create_task(self, task_request: TaskRequest) -> httpx.Response:
        return await self._request("create_task", "POST", "/api/tasks", json=task_request.to_payload())

    async def update_task(self, task_id: str, task_request: TaskRequest) -> httpx.Response:
        return await self._request(
            "update_task", "PUT", f"/api/tasks/{task_id}", json=task_request.to_payload()
        )

    async def delete_task(self, task_id: str) -> httpx.Response:
        return await self._request("delete_task", "DELETE", f"/api/tasks/{task_id}")

    async def update_task_status(self, task_id: str, status: TaskStatus) -> httpx.Response:
        return await self._request(
            "update_task_status", "PUT", f"/api/tasks/{task_id}/status", json={"status": status.value}
        )

    async def get_pending_tasks(self) -> List[Task]:
        return await self._get_tasks("get_pending_tasks", "/api/tasks/pending")

    async def get_active_tasks(self) -> List[Task]:
        return await self._get_tasks("get_active_tasks", "/api/tasks/active")

    async def get_completed_tasks(self) -> List[Task]:
        return await self._get_tasks("get_completed_tasks", "/api/tasks/completed")

    async def get_overdue_tasks(self, tz: str) -> List[Task]:
        return await self._get_tasks("get_overdue_tasks", "/api/tasks/overdue", params={"tz": tz})

    async def get_today_tasks(self, tz: str) -> List[Task]:
        return await self._get_tasks("get_today_tasks", "/api/tasks/today", params={"tz": tz})

    async def search_tasks(
        self,
        assignee: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        project_id: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        title: Optional[str] = None,
        tz: Optional[str] = None,
    ) -> List[Task]:
        """Search tasks; only filters that are set are sent."""
        params: Dict[str, Any] = {}
        if assignee:
            params["assignee"] = assignee
        if date_from:
            params["dateFrom"] = date_from
        if date_to:
            params["dateTo"] = date_to
        if project_id:
            params["projectId"] = project_id
        if statuses:
            params["status"] = statuses
        if title:
            params["title"] = title
        if tz:
            params["tz"] = tz
        return await self._get_tasks("search_tasks", "/api/tasks/search", params=params)

    # ==================== Graph Endpoints ====================

    async def get_task_graph(self, statuses: Optional[str] = None) -> TaskGraphResponse:
        params = {"statuses": statuses} if statuses else None
        response = await self._request("get_task_graph", "GET", "/api/tasks/graph", params=params)
        response.raise_for_status()
        return TaskGraphResponse.model_validate(response.json() or {})

    async def get_task_neighbors(self, task_id: str, depth: int = 1,
                                 include_placeholders: bool = True) -> httpx.Response:
        params = {"depth": depth, "includePlaceholders": str(include_placeholders).lower()}
        return await self._request(
            "get_task_neighbors", "GET", f"/api/tasks/{task_id}/neighbors", params=params
        )

    async def get_task_dependencies(self, task_id: str) -> List[Task]:
        return await self._get_tasks("get_task_dependencies", f"/api/tasks/{task_id}/dependencies")

    async def get_task_dependents(self, task_id: str) -> List[Task]:
        return await self._get_tasks("get_task_dependents", f"/api/tasks/{task_id}/dependents")

    async def link_tasks(self, task_id: str, depends_on_id: str) -> httpx.Response:
        return await self._request(
            "link_tasks", "POST", f"/api/tasks/{task_id}/dependencies/{depends_on_id}"
        )

    async def unlink_tasks(self, task_id: str, depends_on_id: str) -> httpx.Response:
        return await self._request(
            "unlink_tasks", "DELETE", f"/api/tasks/{task_id}/dependencies/{depends_on_id}"
        )

    # ==================== Project Endpoints ====================

    async def get_all_projects(self) -> List[Project]:
        return await self._get_projects("get_all_projects", "/api/projects")

    async def get_project(self, project_id: str) -> httpx.Response:
        return await self._request("get_project", "GET", f"/api/projects/{project_id}")

    async def create_project(self, project_request: ProjectRequest) -> httpx.Response:
        return await self._request(
            "create_project", "POST", "/api/projects", json=project_request.to_payload()
        )

    async def get_active_projects(self) -> List[Project]:
        return await self._get_projects("get_active_projects", "/api/projects/active")

    async def get_overdue_projects(self) -> List[Project]:
        return await self._get_projects("get_overdue_projects", "/api/projects/overdue")

    async def start_project(self, project_id: str) -> httpx.Response:
        return await self._request("start_project", "PUT", f"/api/projects/{project_id}/start")

    async def complete_project(self, project_id: str) -> httpx.Response:
        return await self._request("complete_project", "PUT", f"/api/projects/{project_id}/complete")

    # ==================== Health ====================

    async def check_readiness(self) -> Dict[str, Any]:
        """Query the service readiness endpoint. Never raises."""
        try:
            response = await self._request("check_readiness", "GET", READINESS_PATH)
        except httpx.HTTPError as e:
            return {"status": "unhealthy", "error": f"Connection Error: {e}"}
        if response.status_code != 200:
            return {"status": "unhealthy", "error": f"HTTP {response.status_code}"}
        try:
            return {"status": "healthy", "response": response.json()}
        except ValueError:
            return {"status": "unhealthy", "error": "Invalid JSON response"}
