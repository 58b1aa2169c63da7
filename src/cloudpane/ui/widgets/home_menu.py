"""Home screen: modules grouped by category."""

from __future__ import annotations

from typing import TYPE_CHECKING, List

from rich.markup import escape

if TYPE_CHECKING:
    from cloudpane.ui.core.controller import DashboardController

BANNER = "[bold cyan]cloudpane[/bold cyan]  [dim]Google Cloud in your terminal[/dim]"


def render_home_menu(controller: "DashboardController") -> str:
    """Markup for the home menu with the cursor on ``controller.home_cursor``."""
    project = controller.project_id or "no project selected"
    lines: List[str] = [BANNER, f"[dim]Project:[/dim] {escape(project)}", ""]

    category = None
    for index, descriptor in enumerate(controller.registry.descriptors()):
        if descriptor.category != category:
            category = descriptor.category
            if index:
                lines.append("")
            lines.append(f"[bold]{escape(category or 'Other')}[/bold]")

        label = f"{descriptor.display_name:<24} {descriptor.description}"
        if index == controller.home_cursor:
            lines.append(f"  [reverse]{escape(label)}[/reverse]")
        else:
            lines.append(f"  {escape(label)}")

    if not controller.registry.keys():
        lines.append("[dim]No modules enabled. Check modules.enabled in the config.[/dim]")

    lines.extend(["", "[dim]Enter to open, : for the command palette, ? for help[/dim]"])
    return "\n".join(lines)
