"""
Pydantic models for Synaptik API request/response payloads.

Mirrors the JSON shapes served by the Synaptik task service (camelCase on the
wire, snake_case in Python) for tasks, projects and the task dependency graph.
"""

from typing import Optional, List, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    """Lifecycle states a task can be in on the Synaptik side."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"


class TaskPriority(str, Enum):
    """Task priority levels accepted by the Synaptik API."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"


def _lenient_enum(enum_cls, value: Any):
    # Unknown values from newer servers render as "unknown" instead of failing the whole payload
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        return None


class SynaptikModel(BaseModel):
    """Base model accepting both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Task(SynaptikModel):
    """Task as returned by the Synaptik API."""

    id: str
    title: str = ""
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    project_id: Optional[str] = Field(None, alias="projectId")
    project_name: Optional[str] = Field(None, alias="projectName")
    assignee: Optional[str] = None
    due_date: Optional[str] = Field(None, alias="dueDate")
    tags: Optional[List[str]] = None
    urgency: Optional[float] = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return _lenient_enum(TaskStatus, v)

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, v):
        return _lenient_enum(TaskPriority, v)


class TaskRequest(SynaptikModel):
    """Request body for creating or updating a task. Unset fields are omitted."""

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    project: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = Field(None, alias="dueDate")
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        """Validate tags are non-empty strings."""
        if v is not None:
            for tag in v:
                if not isinstance(tag, str) or not tag.strip():
                    raise ValueError("All tags must be non-empty strings")
        return v

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Project(SynaptikModel):
    """Project as returned by the Synaptik API."""

    id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    owner: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[str] = Field(None, alias="dueDate")


class ProjectRequest(SynaptikModel):
    """Request body for creating a project."""

    name: str = Field(min_length=1)
    description: Optional[str] = None
    owner: Optional[str] = None
    due_date: Optional[str] = Field(None, alias="dueDate")

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TaskGraphNode(SynaptikModel):
    id: str
    title: str = ""
    status: Optional[TaskStatus] = None
    priority: Optional[str] = None
    project: Optional[str] = None
    assignee: Optional[str] = None
    urgency: Optional[float] = None
    placeholder: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return _lenient_enum(TaskStatus, v)


class TaskGraphEdge(SynaptikModel):
    source: str = Field(alias="from")
    target: str = Field(alias="to")


class TaskGraphResponse(SynaptikModel):
    """Dependency graph snapshot computed by the Synaptik service."""

    center_id: Optional[str] = Field(None, alias="centerId")
    nodes: List[TaskGraphNode] = Field(default_factory=list)
    edges: List[TaskGraphEdge] = Field(default_factory=list)
    has_cycles: bool = Field(False, alias="hasCycles")
