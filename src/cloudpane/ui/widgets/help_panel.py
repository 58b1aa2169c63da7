"""Key binding reference shown by ``?``."""

from __future__ import annotations

HELP_SECTIONS = (
    (
        "Global",
        (
            (":", "Command palette (also ctrl+p)"),
            ("?", "Toggle this help"),
            ("q", "Back to home / quit from home"),
            ("ctrl+c", "Quit"),
            ("tab", "Toggle the sidebar"),
        ),
    ),
    (
        "Sidebar",
        (
            ("up/down, k/j", "Switch module"),
            ("right, l, enter", "Focus the main pane"),
        ),
    ),
    (
        "Main pane",
        (
            ("left", "Back to the sidebar"),
            ("up/down, k/j", "Move the cursor"),
            ("enter", "Show details"),
            ("/", "Filter the list"),
            ("r", "Refresh"),
            ("esc", "Leave details or filter"),
        ),
    ),
    (
        "Confirmation",
        (
            ("y, enter", "Run the action"),
            ("n, esc", "Cancel"),
        ),
    ),
)


def render_help() -> str:
    lines = ["[bold]Key bindings[/bold]", ""]
    for title, bindings in HELP_SECTIONS:
        lines.append(f"[bold cyan]{title}[/bold cyan]")
        for key, description in bindings:
            lines.append(f"  [b]{key:<18}[/b] {description}")
        lines.append("")
    lines.append("[dim]Press q, esc or ? to close[/dim]")
    return "\n".join(lines)
