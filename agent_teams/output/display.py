"""
Status rendering for the main pane: worker and task tables, plus one-line
notifications for team events.
"""
from typing import Iterable, Optional

from rich.console import Group
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..coordination.message_bus import Task, TaskStatus

TASK_ICONS = {
    TaskStatus.COMPLETED: ("✓", "green"),
    TaskStatus.IN_PROGRESS: ("■", "yellow"),
    TaskStatus.FAILED: ("✗", "red"),
    TaskStatus.PENDING: ("□", "dim"),
}


def worker_table(workers: Iterable) -> Table:
    """Table of workers with busy state, turns and model."""
    table = Table(title="Active Agents")
    table.add_column("Agent ID", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("Status")
    table.add_column("Turns", justify="right")
    table.add_column("Model", style="dim")

    for w in workers:
        status = Text("BUSY", style="yellow") if w.busy else Text("IDLE", style="green")
        role = w.role.value if not w.specialty else f"{w.role.value}: {w.specialty}"
        table.add_row(w.id, role, status, str(w.turn_count), w.model or "-")

    return table


def task_table(tasks: Iterable[Task]) -> Table:
    """Checklist of tasks on the shared board."""
    table = Table(title="Shared Tasks")
    table.add_column("", width=1)
    table.add_column("ID", style="cyan")
    table.add_column("Description")
    table.add_column("Assignee", style="cyan")
    table.add_column("Status")
    table.add_column("Result", style="dim")

    for t in tasks:
        icon, style = TASK_ICONS[t.status]
        description = t.description if len(t.description) <= 50 else t.description[:47] + "..."
        result = (t.result or "")[:100]
        table.add_row(
            Text(icon, style=style),
            t.id,
            description,
            t.assignee or "unassigned",
            Text(t.status.value, style=style),
            result,
        )

    return table


def render_status(workers: list, tasks: list) -> Group:
    busy = sum(1 for w in workers if w.busy)
    done = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    summary = Text(f"{busy} busy │ {done}/{len(tasks)} tasks done", style="dim")
    return Group(worker_table(workers), task_table(tasks), summary)


def notify_agent_spawned(name: str, role: str, model: Optional[str] = None) -> str:
    model_tag = f" [dim]\\[{model}][/dim]" if model else ""
    return f"[green]+[/green] [bold]@{escape(name)}[/bold] spawned [dim]({escape(role)})[/dim]{model_tag}"


def notify_agent_shutdown(name: str) -> str:
    return f"[red]-[/red] [bold]@{escape(name)}[/bold] shut down"


def notify_task_created(task: Task) -> str:
    target = f" → [cyan]{task.assignee}[/cyan]" if task.assignee else ""
    return f"[yellow]◆[/yellow] New task {task.id}: {escape(task.description[:60])}{target}"


def notify_task_completed(task: Task) -> str:
    by = f" by [cyan]{task.assignee}[/cyan]" if task.assignee else ""
    return f"[green]✓[/green] Task done {task.id}: {escape(task.description[:60])}{by}"
