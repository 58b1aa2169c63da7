"""Sidebar listing every registered module."""

from __future__ import annotations

from rich.markup import escape
from textual.widgets import Static

from cloudpane.ui.core.controller import DashboardController, FocusArea


class Sidebar(Static):
    """Module list with the cursor and active module highlighted."""

    DEFAULT_CSS = """
    Sidebar {
        width: 28;
        height: 100%;
        border-right: solid $primary-darken-2;
        padding: 0 1;
    }

    Sidebar.-focused {
        border-right: thick $accent;
    }
    """

    def update_from(self, controller: DashboardController) -> None:
        focused = controller.focus.focus_area == FocusArea.SIDEBAR
        self.set_class(focused, "-focused")

        lines = ["[bold]Services[/bold]", ""]
        for index, descriptor in enumerate(controller.registry.descriptors()):
            name = escape(descriptor.display_name)
            if index == controller.sidebar_cursor:
                style = "reverse" if focused else "bold"
                lines.append(f"[{style}]> {name}[/{style}]")
            else:
                lines.append(f"  {name}")
        self.update("\n".join(lines))
