# CLI commands for inspecting a team's task graph
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from teamctl.config import get_settings
from teamctl.errors import NotFoundError
from teamctl.tasks.manager import TaskManager
from teamctl.utils.logger import create_logger

app = typer.Typer(help="Inspect tasks")
console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "in_progress": "blue",
    "completed": "green",
}

@app.command("list")
def list_tasks(ctx: typer.Context, team_name: str = typer.Argument(..., help="Team name")):
    """List all tasks ordered by id"""
    settings = ctx.obj or get_settings()
    tasks = TaskManager(team_name, settings=settings, logger=create_logger(settings.log_level)).list()
    if not tasks:
        console.print("[yellow]No tasks[/yellow]")
        return

    table = Table(title=f"Tasks for {team_name}", show_header=True)
    table.add_column("#", style="cyan")
    table.add_column("Subject")
    table.add_column("Status")
    table.add_column("Owner")
    table.add_column("Blocked by")
    for task in tasks:
        table.add_row(
            task.id,
            Text(task.subject),
            Text(task.status, style=STATUS_STYLES.get(task.status, "white")),
            task.owner or "-",
            ", ".join(task.blocked_by) or "-",
        )
    console.print(table)

@app.command()
def show(
    ctx: typer.Context,
    team_name: str = typer.Argument(..., help="Team name"),
    task_id: str = typer.Argument(..., help="Task id"),
):
    """Show a single task"""
    settings = ctx.obj or get_settings()
    try:
        task = TaskManager(team_name, settings=settings, logger=create_logger(settings.log_level)).get(task_id)
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    body = Text()
    body.append(f"Status: {task.status}\n")
    body.append(f"Owner: {task.owner or '-'}\n")
    if task.active_form:
        body.append(f"Active form: {task.active_form}\n")
    body.append(f"Blocks: {', '.join(task.blocks) or '-'}\n")
    body.append(f"Blocked by: {', '.join(task.blocked_by) or '-'}\n\n")
    body.append(task.description)
    console.print(Panel(body, title=f"#{task.id} {task.subject}", border_style="cyan"))

if __name__ == "__main__":
    app()
