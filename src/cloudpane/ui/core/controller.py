"""Dashboard controller: the single writer of application state.

The controller owns the focus state, the palette, the status line and the
generation counter. It handles one message at a time and returns effects
for the runtime to carry out; it never awaits or performs I/O itself, which
keeps every transition testable without a terminal.

Focus model:
    view_mode   HOME | SERVICE
    focus_area  SIDEBAR | MAIN | PALETTE
    palette     overlay; opening remembers the previous focus area

Generation:
    Incremented on every module switch, return to Home and project switch.
    Work and timers are tagged with the generation they were issued under;
    anything arriving with an older tag is dropped.

Usage:
    controller = DashboardController(registry, projects, project_id="my-proj")
    effects = controller.dispatch(KeyInput("enter"))
    for effect in effects:
        runtime.execute(effect)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from cloudpane.core.errors import ModuleError
from cloudpane.core.events import (
    Dispatch,
    Effects,
    KeyInput,
    LastUpdated,
    ModuleEffect,
    Notify,
    OpenPalette,
    Quit,
    Resize,
    SetPolling,
    Severity,
    StatusUpdate,
    SwitchModule,
    Tick,
    Toast,
    Work,
    WorkFailed,
    WorkResult,
)
from cloudpane.core.projects import Project, ProjectManager
from cloudpane.core.registry import ModuleRegistry
from cloudpane.modules.base import Module
from cloudpane.ui.core.navigation import (
    NavigationModel,
    Route,
    ViewType,
    build_base_commands,
    build_project_commands,
)

logger = logging.getLogger(__name__)


class ViewMode(str, Enum):
    HOME = "home"
    SERVICE = "service"


class FocusArea(str, Enum):
    SIDEBAR = "sidebar"
    MAIN = "main"
    PALETTE = "palette"


@dataclass
class FocusState:
    """Where input goes. Mutated only by the controller."""

    view_mode: ViewMode = ViewMode.HOME
    focus_area: FocusArea = FocusArea.SIDEBAR
    active_key: Optional[str] = None
    palette_open: bool = False
    last_focus: FocusArea = FocusArea.SIDEBAR
    sidebar_visible: bool = True


@dataclass
class StatusLine:
    message: str = "Ready"
    is_error: bool = False
    mode: str = "NORMAL"
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectsLoaded:
    projects: List[Project] = field(default_factory=list)
    session: int = 0


@dataclass(frozen=True)
class ProjectsFailed:
    error: BaseException
    session: int = 0


PALETTE_OPEN_KEYS = (":", "ctrl+p")
UP_KEYS = ("up", "k")
DOWN_KEYS = ("down", "j")


def _key_name(event: KeyInput) -> str:
    """Printable characters by character (":" rather than "colon")."""
    if event.is_printable:
        return event.character or event.key
    return event.key


class DashboardController:
    """Routes input, ticks and results between sidebar, main pane and palette."""

    def __init__(
        self,
        registry: ModuleRegistry,
        projects: Optional[ProjectManager] = None,
        project_id: Optional[str] = None,
        sidebar_visible: bool = True,
    ):
        self.registry = registry
        self.projects = projects
        self.project_id = project_id
        self.focus = FocusState(sidebar_visible=sidebar_visible)
        self.nav = NavigationModel(build_base_commands(registry.descriptors()))
        self.status = StatusLine()
        self.generation = 0
        self.palette_session = 0
        self.show_help = False
        self.home_cursor = 0
        self.sidebar_cursor = 0
        self.width = 80
        self.height = 24
        registry.set_param(project_id)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def module_keys(self) -> List[str]:
        return self.registry.keys()

    @property
    def active_module(self) -> Optional[Module]:
        if self.focus.active_key is None:
            return None
        return self.registry.instance(self.focus.active_key)

    def help_text(self) -> str:
        if self.focus.palette_open:
            return "Enter:Run  Esc:Close  Up/Down:Select"
        if self.show_help:
            return "q/Esc/?:Close help"
        if self.focus.view_mode == ViewMode.HOME:
            return "q:Quit  ?:Help  ::Palette  Enter:Select"
        module = self.active_module
        if self.focus.focus_area == FocusArea.MAIN and module is not None:
            return module.help_text()
        return "Up/Down:Switch  Right/Enter:Focus  Tab:Sidebar  q:Home"

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def start(self, default_view: str = "home") -> Effects:
        """Effects for the initial screen."""
        if default_view != "home" and self.registry.is_registered(default_view):
            return self.activate(default_view)
        return [SetPolling(None)]

    def dispatch(self, message: Any) -> Effects:
        """Process exactly one message and return the resulting effects."""
        if isinstance(message, KeyInput):
            return self._on_key(message)
        if isinstance(message, Resize):
            self.width, self.height = message.width, message.height
            module = self.active_module
            if module is not None:
                return self._apply(self.focus.active_key, module.handle(message))
            return []
        if isinstance(message, Tick):
            return self._on_tick(message)
        if isinstance(message, WorkResult):
            return self._on_result(message)
        logger.debug(f"Controller: ignoring unknown message {message!r}")
        return []

    # ------------------------------------------------------------------
    # Ticks and results
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int, module_key: Optional[str]) -> bool:
        if generation != self.generation:
            return True
        return module_key is not None and module_key != self.focus.active_key

    def _on_tick(self, tick: Tick) -> Effects:
        if self._is_stale(tick.generation, tick.module_key):
            logger.debug(f"Controller: dropping stale tick {tick.module_key}@{tick.generation}")
            return []
        module = self.active_module
        if module is None:
            return []
        return self._apply(self.focus.active_key, module.handle(tick))

    def _on_result(self, result: WorkResult) -> Effects:
        if self._is_stale(result.generation, result.module_key):
            logger.debug(
                f"Controller: dropping stale result for {result.module_key} "
                f"(generation {result.generation}, current {self.generation})"
            )
            return []

        if result.module_key is None:
            return self._on_own_result(result.payload)

        module = self.registry.instance(result.module_key)
        if module is None:
            return []
        return self._apply(result.module_key, module.handle(result.payload))

    def _on_own_result(self, payload: Any) -> Effects:
        if isinstance(payload, (ProjectsLoaded, ProjectsFailed)):
            # the palette was closed, or closed and reopened, while loading
            if not self.focus.palette_open or payload.session != self.palette_session:
                logger.debug(f"Controller: dropping project list from palette session {payload.session}")
                return []
        if isinstance(payload, ProjectsLoaded):
            self.nav.set_commands(build_project_commands(payload.projects))
            self._set_status(f"{len(payload.projects)} projects. Type to filter.")
            return []
        if isinstance(payload, (ProjectsFailed, WorkFailed)):
            message = f"Could not load projects: {payload.error}"
            self._set_status(message, is_error=True)
            return [Notify(message, Severity.ERROR)]
        return []

    def _apply(self, key: Optional[str], effects: List[ModuleEffect]) -> Effects:
        """Turn module effects into runtime effects for the current generation."""
        out: Effects = []
        for effect in effects:
            if isinstance(effect, Work):
                out.append(Dispatch(effect, key, self.generation))
            elif isinstance(effect, Toast):
                out.append(Notify(effect.message, effect.severity))
            elif isinstance(effect, StatusUpdate):
                self._set_status(effect.message, effect.is_error)
            elif isinstance(effect, LastUpdated):
                self.status.last_updated = effect.at
            elif isinstance(effect, SwitchModule):
                out.extend(self.activate(effect.key))
            elif isinstance(effect, OpenPalette):
                self._open_palette(effect.query)
            else:
                out.append(effect)
        return out

    def _set_status(self, message: str, is_error: bool = False) -> None:
        self.status.message = message
        self.status.is_error = is_error

    # ------------------------------------------------------------------
    # Focus
    # ------------------------------------------------------------------

    def _set_focus(self, area: FocusArea) -> None:
        """Move focus, notifying the active module when Main is left or entered."""
        previous = self.focus.focus_area
        module = self.active_module
        if previous == FocusArea.MAIN and area != FocusArea.MAIN and module is not None:
            module.blur()
        if area == FocusArea.MAIN and previous != FocusArea.MAIN and module is not None:
            module.focus()
        self.focus.focus_area = area

    def _open_palette(self, query: str = "") -> None:
        self.palette_session += 1
        self.focus.last_focus = self.focus.focus_area
        self._set_focus(FocusArea.PALETTE)
        self.focus.palette_open = True
        self.nav.open(query)
        self.status.mode = "COMMAND"
        self._set_status("Type a command...")

    def _close_palette(self) -> None:
        self.focus.palette_open = False
        self.nav.close()
        self.nav.restore_base_commands()
        self.status.mode = "NORMAL"
        self._set_status("Ready")
        self._set_focus(self.focus.last_focus)

    def _toggle_sidebar(self) -> None:
        self.focus.sidebar_visible = not self.focus.sidebar_visible
        if not self.focus.sidebar_visible and self.focus.focus_area == FocusArea.SIDEBAR:
            self._set_focus(FocusArea.MAIN)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def activate(self, key: str) -> Effects:
        """Switch the main pane to ``key``.

        On failure nothing about the view changes; the error goes to the
        status line and a toast.
        """
        try:
            module = self.registry.get_or_initialize(key, self.project_id)
        except ModuleError as e:
            logger.error(f"Controller: cannot open {key}: {e}")
            self._set_status(str(e), is_error=True)
            return [Notify(f"Cannot open {key}: {e}", Severity.ERROR)]

        if self.focus.focus_area == FocusArea.MAIN:
            self._set_focus(FocusArea.SIDEBAR)

        self.generation += 1
        self.focus.view_mode = ViewMode.SERVICE
        self.focus.active_key = key
        keys = self.module_keys
        if key in keys:
            self.sidebar_cursor = keys.index(key)
            self.home_cursor = self.sidebar_cursor

        module.reset()
        module.blur()
        self.status.last_updated = None
        self._set_status("Ready")

        effects = self._apply(key, module.handle(Resize(self.width, self.height)))
        effects.extend(self._apply(key, module.refresh()))
        effects.append(SetPolling(module.poll_interval, key, self.generation))

        if self.focus.focus_area != FocusArea.PALETTE:
            self._set_focus(FocusArea.SIDEBAR if self.focus.sidebar_visible else FocusArea.MAIN)
        logger.info(f"Controller: activated {key} (generation {self.generation})")
        return effects

    def go_home(self) -> Effects:
        if self.focus.focus_area == FocusArea.MAIN:
            self._set_focus(FocusArea.SIDEBAR)
        self.generation += 1
        self.focus.view_mode = ViewMode.HOME
        self.focus.active_key = None
        self._set_status("Ready")
        return [SetPolling(None)]

    def switch_project(self, project_id: str) -> Effects:
        """Rebind every constructed module to ``project_id``."""
        self.project_id = project_id
        self.generation += 1
        failures = self.registry.reinitialize_all(project_id)
        effects: Effects = [SetPolling(None), Notify(f"Switched to project {project_id}")]
        self._set_status(f"Project: {project_id}")

        if failures:
            keys = ", ".join(sorted(failures))
            effects.append(Notify(f"Failed to reinitialize: {keys}", Severity.WARNING))

        if self.focus.view_mode == ViewMode.SERVICE and self.focus.active_key is not None:
            effects.extend(self.activate(self.focus.active_key))
        return effects

    def _load_projects(self) -> Effects:
        if self.projects is None:
            self._set_status("Project listing is not available", is_error=True)
            return []
        manager = self.projects
        session = self.palette_session

        async def run() -> Any:
            try:
                return ProjectsLoaded(await manager.list_projects(), session)
            except Exception as e:
                logger.error(f"Controller: listing projects failed: {e}")
                return ProjectsFailed(e, session)

        self._set_status("Loading projects...")
        return [Dispatch(Work(run, "list projects"), None, self.generation)]

    def _execute_route(self, route: Route) -> Effects:
        if route.view == ViewType.PROJECT_SWITCHER:
            return self._load_projects()

        self._close_palette()
        if route.view == ViewType.HOME:
            return self.go_home()
        if route.view == ViewType.SERVICE and route.target:
            return self.activate(route.target)
        if route.view == ViewType.HELP:
            self.show_help = True
            return []
        if route.view == ViewType.PROJECT and route.target:
            return self.switch_project(route.target)
        return []

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _on_key(self, event: KeyInput) -> Effects:
        name = _key_name(event)

        if name == "ctrl+c":
            return [Quit()]
        if self.focus.palette_open:
            return self._palette_key(event, name)

        if self.show_help:
            if name in ("q", "escape", "?"):
                self.show_help = False
            return []

        if name in PALETTE_OPEN_KEYS:
            self._open_palette()
            return []
        if name == "?":
            self.show_help = True
            return []

        if self.focus.view_mode == ViewMode.HOME:
            return self._home_key(name)
        return self._service_key(event, name)

    def _palette_key(self, event: KeyInput, name: str) -> Effects:
        if name == "escape":
            self._close_palette()
        elif name == "up":
            self.nav.select_prev()
        elif name == "down":
            self.nav.select_next()
        elif name == "enter":
            route = self.nav.execute_selection()
            if route is not None:
                return self._execute_route(route)
        elif name == "backspace":
            self.nav.backspace()
        elif event.is_printable:
            self.nav.type_char(event.character or "")
        return []

    def _home_key(self, name: str) -> Effects:
        keys = self.module_keys
        if name == "q":
            return [Quit()]
        if name in UP_KEYS:
            self.home_cursor = max(0, self.home_cursor - 1)
        elif name in DOWN_KEYS:
            self.home_cursor = min(max(0, len(keys) - 1), self.home_cursor + 1)
        elif name == "enter" and keys:
            return self.activate(keys[self.home_cursor])
        return []

    def _service_key(self, event: KeyInput, name: str) -> Effects:
        module = self.active_module

        if name == "q" and (module is None or module.is_at_root()):
            return self.go_home()
        if name == "tab":
            self._toggle_sidebar()
            return []

        if self.focus.focus_area == FocusArea.SIDEBAR:
            return self._sidebar_key(name)

        if name == "left":
            if not self.focus.sidebar_visible:
                self.focus.sidebar_visible = True
            self._set_focus(FocusArea.SIDEBAR)
            return []

        if module is None:
            return []
        return self._apply(self.focus.active_key, module.handle(event))

    def _sidebar_key(self, name: str) -> Effects:
        if name in ("right", "l", "enter"):
            self._set_focus(FocusArea.MAIN)
            return []

        keys = self.module_keys
        previous = self.sidebar_cursor
        if name in UP_KEYS:
            target = max(0, previous - 1)
        elif name in DOWN_KEYS:
            target = min(max(0, len(keys) - 1), previous + 1)
        else:
            return []

        if target == previous or not keys:
            return []
        self.sidebar_cursor = target
        effects = self.activate(keys[target])
        if self.focus.active_key != keys[target]:
            # activation failed; snap back
            self.sidebar_cursor = previous
        return effects
