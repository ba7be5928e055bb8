"""
Text rendering for MCP tool responses.

Turns Synaptik models and dependency batch reports into the emoji-annotated
plain text handed back to agents. Every function here is pure.
"""

from typing import Optional, List

from .linking import BatchReport, EdgeKind, EdgeOutcome, ErrorKind
from .models import Task, Project, TaskStatus, TaskPriority, TaskGraphResponse

STATUS_ICONS = {
    TaskStatus.PENDING: "⏳",
    TaskStatus.ACTIVE: "🔄",
    TaskStatus.COMPLETED: "✅",
    TaskStatus.DELETED: "🗑️",
}

PRIORITY_ICONS = {
    TaskPriority.HIGH: "🔴",
    TaskPriority.MEDIUM: "🟡",
    TaskPriority.LOW: "🟢",
    TaskPriority.NONE: "⚪",
}


def status_icon(status: Optional[TaskStatus]) -> str:
    return STATUS_ICONS.get(status, "❓")


def priority_icon(priority: Optional[TaskPriority]) -> str:
    return PRIORITY_ICONS.get(priority, "⚪")


def _enum_text(value) -> str:
    return value.value if value is not None else "None"


# ===== Tasks =====

def format_tasks_response(tasks: Optional[List[Task]], title: str, emoji: str = "📋") -> str:
    if not tasks:
        return f"{emoji} {title}: No tasks found"

    lines = [f"{emoji} {title} ({len(tasks)} tasks):", ""]
    lines.extend(format_task_summary(task) for task in tasks)
    lines.append("")
    lines.append(f"📊 Total: {len(tasks)} tasks")
    return "\n".join(lines)


def format_task_summary(task: Task) -> str:
    """One-line task summary: icons, title, project, due date and id."""
    text = f"{status_icon(task.status)} {priority_icon(task.priority)} {task.title}"
    if task.project_name:
        text += f" [{task.project_name}]"
    elif task.project_id:
        text += f" [Project: {task.project_id}]"
    if task.due_date:
        text += f" 📅 {task.due_date}"
    return text + f" (ID: {task.id})"


def format_task_details(task: Task) -> str:
    lines = [
        "📋 Task Details:",
        f"  ID: {task.id}",
        f"  Title: {task.title}",
        f"  Status: {status_icon(task.status)} {_enum_text(task.status)}",
        f"  Priority: {priority_icon(task.priority)} {_enum_text(task.priority)}",
    ]
    if task.description:
        lines.append(f"  Description: {task.description}")
    if task.project_name:
        lines.append(f"  Project: {task.project_name}")
    elif task.project_id:
        lines.append(f"  Project ID: {task.project_id}")
    if task.assignee:
        lines.append(f"  Assignee: {task.assignee}")
    if task.due_date:
        lines.append(f"  Due Date: {task.due_date}")
    if task.tags:
        lines.append(f"  Tags: {', '.join(task.tags)}")
    return "\n".join(lines) + "\n"


def format_single_task_response(task: Task, message: str) -> str:
    return f"{message}\n\n{format_task_details(task)}"


def format_search_title(
    assignee: Optional[str] = None,
    title: Optional[str] = None,
    statuses: Optional[List[str]] = None,
    project_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    timezone: str = "UTC",
) -> str:
    criteria = []
    if assignee:
        criteria.append(f"👤 Assignee: {assignee}")
    if title:
        criteria.append(f"📝 Title: {title}")
    if statuses:
        criteria.append(f"📊 Status: {','.join(statuses)}")
    if project_id:
        criteria.append(f"📁 Project: {project_id}")
    if date_from:
        criteria.append(f"📅 From: {date_from}")
    if date_to:
        criteria.append(f"📅 To: {date_to}")
    criteria.append(f"🌍 Timezone: {timezone}")
    return f"🔍 Task search results ({' '.join(criteria)})"


# ===== Projects =====

def format_projects_response(projects: Optional[List[Project]], title: str) -> str:
    if not projects:
        return f"📁 {title}: No projects found"

    lines = [f"📁 {title} ({len(projects)} projects):", ""]
    lines.extend(format_project_summary(project) for project in projects)
    return "\n".join(lines) + "\n"


def format_project_summary(project: Project) -> str:
    text = f"📁 {project.name}"
    if project.status:
        text += f" [{project.status}]"
    if project.owner:
        text += f" 👤 {project.owner}"
    if project.due_date:
        text += f" 📅 {project.due_date}"
    return text + f" (ID: {project.id})"


def format_project_details(project: Project) -> str:
    lines = [
        "📁 Project Details:",
        f"  ID: {project.id}",
        f"  Name: {project.name}",
    ]
    if project.status:
        lines.append(f"  Status: {project.status}")
    if project.description:
        lines.append(f"  Description: {project.description}")
    if project.owner:
        lines.append(f"  Owner: {project.owner}")
    if project.due_date:
        lines.append(f"  Due Date: {project.due_date}")
    return "\n".join(lines) + "\n"


def format_single_project_response(project: Project, message: str) -> str:
    return f"{message}\n\n{format_project_details(project)}"


# ===== Graph =====

def format_task_graph(graph: Optional[TaskGraphResponse]) -> str:
    if graph is None:
        return "❌ No graph data available"

    lines = ["🕸️ Task Dependency Graph", "═══════════════════════", ""]
    if graph.center_id:
        lines.append(f"🎯 Center Task: {graph.center_id}")
    lines.append(f"📊 Nodes: {len(graph.nodes)}")
    lines.append(f"🔗 Edges: {len(graph.edges)}")
    lines.append(f"🔄 Has Cycles: {'Yes ⚠️' if graph.has_cycles else 'No ✅'}")
    lines.append("")

    if graph.nodes:
        lines.append("📋 Tasks in Graph:")
        lines.append("─────────────────")
        for node in graph.nodes:
            try:
                node_priority = TaskPriority(node.priority.strip().upper()) if node.priority else None
            except ValueError:
                node_priority = None
            text = f"{status_icon(node.status)} {priority_icon(node_priority)} {node.title}"
            if node.placeholder:
                text += " 👻 (placeholder)"
            if node.project and node.project.strip():
                text += f" 📁 {node.project}"
            if node.assignee and node.assignee.strip():
                text += f" 👤 {node.assignee}"
            if node.urgency is not None:
                text += f" ⚡ {node.urgency:.1f}"
            lines.append(text)

    if graph.edges:
        lines.append("")
        lines.append("🔗 Dependencies:")
        lines.append("───────────────")
        for edge in graph.edges:
            lines.append(f"  {edge.source} → {edge.target}")

    return "\n".join(lines) + "\n"


def format_related_tasks(task_id: str, tasks: List[Task], dependents: bool = False) -> str:
    """Render the dependencies (or dependents) of one task."""
    heading = "Dependents" if dependents else "Dependencies"
    lines = [f"📋 Task {heading}", "", f"**Task ID:** {task_id}"]

    if not tasks:
        if dependents:
            lines.append("**Dependents:** None (no other tasks depend on this one)")
        else:
            lines.append("**Dependencies:** None")
        return "\n".join(lines) + "\n"

    if dependents:
        lines.append(f"**Dependents:** {len(tasks)} task(s) depend on this one")
    else:
        lines.append(f"**Dependencies:** {len(tasks)} task(s)")
    lines.append("")
    for task in tasks:
        lines.append(f"🔗 **{task.title}**")
        lines.append(f"   ID: {task.id}")
        lines.append(f"   Status: {_enum_text(task.status)}")
        lines.append(f"   Priority: {_enum_text(task.priority)}")
        if task.description and task.description.strip():
            lines.append(f"   Description: {task.description}")
        lines.append("")
    return "\n".join(lines) + "\n"


# ===== Dependency batches =====

NOTHING_TO_UNLINK = "ℹ️ Task has no dependencies to remove"


def format_edge_outcome(outcome: EdgeOutcome) -> str:
    link = outcome.request.kind is EdgeKind.LINK
    if outcome.succeeded:
        return f"✅ {'Linked to' if link else 'Unlinked from'} {outcome.detail}"
    if outcome.error_kind is ErrorKind.REMOTE_REJECTED:
        return f"❌ Failed to {'link to' if link else 'unlink from'} {outcome.detail} ({outcome.reason})"
    return f"❌ Error {'linking to' if link else 'unlinking from'} {outcome.detail} ({outcome.reason})"


def format_batch_report(report: BatchReport) -> str:
    """Render a link/unlink report: header, one line per edge, then counts."""
    if report.is_empty and report.all_dependencies:
        return NOTHING_TO_UNLINK

    if report.kind is EdgeKind.LINK:
        header, section = "🔗 Task linking results:", "**Link Operations:**"
    elif report.all_dependencies:
        header, section = "🔓 Removed all dependencies:", "**Unlink Operations:**"
    else:
        header, section = "🔓 Task unlinking results:", "**Unlink Operations:**"

    lines = [header, "", f"**Task ID:** {report.primary_id}", section]
    lines.extend(f"  {format_edge_outcome(outcome)}" for outcome in report.outcomes)
    lines.append("")
    lines.append(
        f"📊 Summary: {report.succeeded_count} succeeded, {report.failed_count} failed "
        f"({report.total} total)"
    )
    return "\n".join(lines) + "\n"
