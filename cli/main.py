from pathlib import Path
import typer
from rich.console import Console
from teamctl.config import get_settings

app = typer.Typer(add_completion=False, rich_markup_mode="rich")
console = Console(highlight=False)

@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    config: Path = typer.Option(
        None, "--config", "-c", exists=True, file_okay=True, dir_okay=False,
        help="Path to .teamctl.yml (overrides env)"
    ),
):
    """
    :busts_in_silhouette: [bold cyan]teamctl[/bold cyan] - inspect agent teams, inboxes and tasks
    """
    settings = get_settings(config_path=config)
    if verbose:
        console.print(":gear: verbose mode on")
        settings = settings.model_copy(update={"log_level": "debug"})
    ctx.obj = settings
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())

# Sub-commands imported lazily to cut startup time
from importlib import import_module

for _cmd in ("team", "inbox", "tasks"):
    mod = import_module(f"cli.commands.{_cmd}")
    app.add_typer(mod.app, name=_cmd)

app.command("doctor")(import_module("cli.commands.doctor").doctor)
