"""Routes and the command palette model.

The palette is a plain model: a list of commands, a query, the ranked
suggestions for that query and a selection index. The controller opens it,
feeds it keys and executes the selected command's route.

Usage:
    nav = NavigationModel(build_base_commands(registry.descriptors()))
    nav.open()
    nav.filter("redis")
    route = nav.execute_selection()  # Route(ViewType.SERVICE, "redis")

    # Temporary command sets (project switcher)
    nav.set_commands(build_project_commands(projects))
    nav.restore_base_commands()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from cloudpane.core.projects import Project
from cloudpane.core.registry import ModuleDescriptor

logger = logging.getLogger(__name__)


class ViewType(str, Enum):
    HOME = "home"
    SERVICE = "service"
    HELP = "help"
    PROJECT_SWITCHER = "project_switcher"
    PROJECT = "project"


@dataclass(frozen=True)
class Route:
    """A navigational destination.

    ``target`` is the module key for SERVICE routes and the project ID for
    PROJECT routes.
    """

    view: ViewType
    target: Optional[str] = None


@dataclass(frozen=True)
class PaletteCommand:
    name: str
    description: str
    route: Route


def build_base_commands(descriptors: Iterable[ModuleDescriptor]) -> List[PaletteCommand]:
    """Default palette commands: switch project, home, one per module, help."""
    commands = [
        PaletteCommand("GCP: Switch Project", "Switch active Google Cloud project", Route(ViewType.PROJECT_SWITCHER)),
        PaletteCommand("Home", "Go to the home screen", Route(ViewType.HOME)),
    ]
    for d in descriptors:
        description = d.description or f"Open {d.display_name}"
        commands.append(PaletteCommand(d.display_name, description, Route(ViewType.SERVICE, d.key)))
    commands.append(PaletteCommand("Help", "Show key bindings", Route(ViewType.HELP)))
    return commands


def build_project_commands(projects: Iterable[Project]) -> List[PaletteCommand]:
    return [PaletteCommand(p.id, p.name or p.id, Route(ViewType.PROJECT, p.id)) for p in projects]


def _is_subsequence(needle: str, haystack: str) -> bool:
    it = iter(haystack)
    return all(ch in it for ch in needle)


def score_command(query: str, command: PaletteCommand) -> float:
    """Match score for a command; 0 means no match."""
    name = command.name.lower()
    desc = command.description.lower()
    score = 0.0

    # Exact matches
    if query == name:
        score += 100
    # Prefix matches
    elif name.startswith(query):
        score += 80
    # Contains matches
    elif query in name:
        score += 50 + (len(query) / len(name)) * 20
    elif query in desc:
        score += 20
    # Characters in order, with gaps
    elif _is_subsequence(query, f"{name} {desc}"):
        score += 10

    return score


class NavigationModel:
    """Palette state: command set, query, ranked suggestions, selection."""

    def __init__(self, commands: Optional[List[PaletteCommand]] = None):
        self.base_commands: List[PaletteCommand] = list(commands or [])
        self.commands: List[PaletteCommand] = list(self.base_commands)
        self.active = False
        self.query = ""
        self.suggestions: List[PaletteCommand] = list(self.commands)
        self.selection = 0

    def open(self, query: str = "") -> None:
        self.active = True
        self.filter(query)

    def close(self) -> None:
        self.active = False
        self.query = ""
        self.selection = 0

    def filter(self, query: str) -> None:
        """Rank commands against ``query``. An empty query lists them all."""
        self.query = query
        self.selection = 0
        needle = query.strip().lower()
        if not needle:
            self.suggestions = list(self.commands)
            return

        scored = [(score_command(needle, c), i, c) for i, c in enumerate(self.commands)]
        scored = [entry for entry in scored if entry[0] > 0]
        scored.sort(key=lambda entry: (-entry[0], entry[1]))
        self.suggestions = [c for _, _, c in scored]

    def type_char(self, char: str) -> None:
        self.filter(self.query + char)

    def backspace(self) -> None:
        self.filter(self.query[:-1])

    def select_next(self) -> None:
        if self.selection < len(self.suggestions) - 1:
            self.selection += 1

    def select_prev(self) -> None:
        if self.selection > 0:
            self.selection -= 1

    def selected(self) -> Optional[PaletteCommand]:
        if 0 <= self.selection < len(self.suggestions):
            return self.suggestions[self.selection]
        return None

    def execute_selection(self) -> Optional[Route]:
        command = self.selected()
        return command.route if command else None

    def set_commands(self, commands: List[PaletteCommand]) -> None:
        """Swap in a temporary command set (e.g. the project list)."""
        self.commands = list(commands)
        self.filter("")

    def restore_base_commands(self) -> None:
        self.commands = list(self.base_commands)
        self.filter("")

    @property
    def showing_base(self) -> bool:
        return self.commands == self.base_commands
