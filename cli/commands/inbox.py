# CLI commands for reading and writing agent inboxes
from typing import Optional
import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from teamctl.communication.mailbox import MailboxStore
from teamctl.communication.protocol import InboxMessage, classify
from teamctl.config import get_settings
from teamctl.utils.logger import create_logger

app = typer.Typer(help="Read and write agent inboxes")
console = Console()

@app.command()
def show(
    ctx: typer.Context,
    team_name: str = typer.Argument(..., help="Team name"),
    agent_name: str = typer.Argument(..., help="Inbox owner"),
    unread: bool = typer.Option(False, "--unread", "-u", help="Only show unread entries"),
):
    """Show an agent's inbox without marking anything read"""
    settings = ctx.obj or get_settings()
    messages = MailboxStore(settings=settings, logger=create_logger(settings.log_level)).read_all(team_name, agent_name)
    if unread:
        messages = [m for m in messages if not m.read]

    if not messages:
        console.print("[yellow]Inbox is empty[/yellow]")
        return

    table = Table(title=f"Inbox {agent_name}@{team_name}", show_header=True)
    table.add_column("From", style="cyan")
    table.add_column("Type")
    table.add_column("Read")
    table.add_column("Timestamp")
    table.add_column("Text")
    for m in messages:
        parsed = classify(m)
        style = "yellow" if parsed.is_signal else "white"
        preview = m.summary or m.text
        if len(preview) > 60:
            preview = preview[:57] + "..."
        table.add_row(
            m.sender,
            Text(str(parsed.type), style=style),
            "yes" if m.read else "no",
            m.timestamp,
            Text(preview),
        )
    console.print(table)

@app.command()
def send(
    ctx: typer.Context,
    team_name: str = typer.Argument(..., help="Team name"),
    agent_name: str = typer.Argument(..., help="Recipient"),
    text: str = typer.Argument(..., help="Message text"),
    sender: Optional[str] = typer.Option(None, "--sender", "-s", help="Sender name (default: controller)"),
    summary: Optional[str] = typer.Option(None, "--summary", help="Short preview"),
):
    """Append a plain-text message to an agent's inbox"""
    settings = ctx.obj or get_settings()
    message = InboxMessage(sender=sender or settings.controller_name, text=text, summary=summary)
    MailboxStore(settings=settings, logger=create_logger(settings.log_level)).write(team_name, agent_name, message)
    console.print(f"[green]Sent to {agent_name}@{team_name}[/green]")

if __name__ == "__main__":
    app()
