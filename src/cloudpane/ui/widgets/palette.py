"""Command palette overlay."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.markup import escape
from textual.widgets import Static

if TYPE_CHECKING:
    from cloudpane.ui.core.controller import DashboardController

MAX_SUGGESTIONS = 12


class PaletteOverlay(Static):
    """Query line plus ranked suggestions. Hidden while the palette is closed."""

    DEFAULT_CSS = """
    PaletteOverlay {
        layer: overlay;
        dock: top;
        width: 80;
        height: auto;
        max-height: 18;
        margin: 2 4;
        border: thick $primary;
        background: $surface;
        padding: 0 1;
        display: none;
    }
    """

    def update_from(self, controller: "DashboardController") -> None:
        nav = controller.nav
        self.display = controller.focus.palette_open
        if not controller.focus.palette_open:
            return

        lines = [f"[bold]>[/bold] {escape(nav.query)}_", ""]
        if not nav.suggestions:
            lines.append("[dim]No matching commands[/dim]")

        start = max(0, nav.selection - MAX_SUGGESTIONS + 1)
        for index in range(start, min(len(nav.suggestions), start + MAX_SUGGESTIONS)):
            command = nav.suggestions[index]
            text = f"{escape(command.name)}  [dim]{escape(command.description)}[/dim]"
            if index == nav.selection:
                text = f"[reverse]{escape(command.name)}[/reverse]  {escape(command.description)}"
            lines.append(text)
        self.update("\n".join(lines))
