# CLI commands for inspecting team registries
from datetime import datetime
import typer
from rich.console import Console
from rich.table import Table

from teamctl.config import get_settings
from teamctl.errors import NotFoundError
from teamctl.team.manager import TeamManager
from teamctl.utils.logger import create_logger

app = typer.Typer(help="Inspect teams")
console = Console()

@app.command()
def show(ctx: typer.Context, team_name: str = typer.Argument(..., help="Team name")):
    """Show a team's members"""
    settings = ctx.obj or get_settings()
    try:
        config = TeamManager(team_name, settings=settings, logger=create_logger(settings.log_level)).get_config()
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Team {config.name}", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Model")
    table.add_column("Joined")
    for member in config.members:
        joined = datetime.fromtimestamp(member.joined_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
        name = f"{member.name} (lead)" if member.agent_id == config.lead_agent_id else member.name
        table.add_row(name, member.agent_type, member.model or "-", joined)
    console.print(table)

if __name__ == "__main__":
    app()
