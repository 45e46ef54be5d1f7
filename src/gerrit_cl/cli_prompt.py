"""
CLI-specific implementation of the prompt interface.
"""

from __future__ import annotations

from typing import List
import click
from rich.console import Console
from rich.panel import Panel

from .prompt_interface import UserPrompt


class CliPrompt(UserPrompt):
    """CLI implementation of the prompt interface using click and rich."""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def confirm_label_changes(self, branch: str, changes: List[str]) -> bool:
        """Show the label differences and ask before resubmitting."""
        body = "\n".join(f"- {change}" for change in changes)
        panel = Panel(
            f"Branch: [green]{branch}[/green]\n\nChanges:\n{body}",
            title="Review Labels Changed",
            border_style="yellow",
        )
        self.console.print(panel)
        return click.confirm("Are you sure you want to make the above changes?", default=False)

    def edit_commit_message(self, branch: str, message: str) -> str:
        """Open the user's editor on the review message."""
        self.console.print(f"✏️  Editing the review message for [green]{branch}[/green]", style="bold blue")
        edited = click.edit(message, extension=".txt", require_save=False)
        return message if edited is None else edited
