# CLI command for checking the agent binary
import typer
from rich.console import Console

from teamctl.config import get_settings
from teamctl.diagnostics import ToolVersionChecker

console = Console()

def doctor(ctx: typer.Context):
    """Report the installed agent version and whether it is supported"""
    settings = ctx.obj or get_settings()
    result = ToolVersionChecker(settings.agent_binary, settings.min_agent_version).verify_compatibility()
    if result["version"] is None:
        console.print(f"[red]'{settings.agent_binary}' not found on PATH[/red]")
        raise typer.Exit(1)
    console.print(f"Agent binary: {settings.agent_binary} {result['version']}")
    console.print(f"Minimum supported: {result['minimum']}")
    if result["compatible"]:
        console.print("[green]Compatible[/green]")
    else:
        console.print("[yellow]Version is older than the minimum supported[/yellow]")
        raise typer.Exit(1)

if __name__ == "__main__":
    typer.run(doctor)
