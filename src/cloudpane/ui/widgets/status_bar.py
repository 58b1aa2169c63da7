"""Bottom status bar: mode, project, message, last refresh and key hints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.markup import escape
from textual.widgets import Static

if TYPE_CHECKING:
    from cloudpane.ui.core.controller import DashboardController


class StatusBar(Static):
    DEFAULT_CSS = """
    StatusBar {
        dock: bottom;
        height: 1;
        width: 100%;
        background: $primary-darken-2;
        color: $text;
    }
    """

    def update_from(self, controller: "DashboardController") -> None:
        status = controller.status
        parts = [f"[bold] {status.mode} [/bold]"]
        parts.append(escape(controller.project_id or "no project"))

        message = escape(status.message)
        parts.append(f"[red]{message}[/red]" if status.is_error else message)

        if status.last_updated is not None:
            parts.append(f"[dim]updated {status.last_updated:%H:%M:%S}[/dim]")

        parts.append(f"[dim]{escape(controller.help_text())}[/dim]")
        self.update(" | ".join(parts))
