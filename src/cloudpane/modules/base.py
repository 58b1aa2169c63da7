"""Module contract and the reusable module state machine.

Every resource type the dashboard shows is a Module. The controller talks to
modules only through the members of ``Module``; ``BaseModule`` implements
the lifecycle so concrete modules only supply setup, fetch and rendering.

Lifecycle:
    UNINITIALIZED -> READY        initialize() succeeded
    UNINITIALIZED -> ERROR        initialize() raised
    READY/LOADED  -> LOADING      refresh() issued a fetch
    LOADING       -> LOADED       fetch result arrived
    LOADING       -> ERROR        fetch failed
    LOADED        -> CONFIRMING   an action is waiting for y/n
    CONFIRMING    -> LOADING      confirmed, action running
    CONFIRMING    -> LOADED       cancelled
    any           -> READY        reset() or reinitialize()

Usage:
    class Things(BaseModule):
        key = "things"
        name = "Things"

        def setup(self, param):
            self.client = make_client(param)

        async def fetch(self, force):
            return await self.client.list()

        def on_data(self, data):
            self.items = data

        def render_content(self):
            return "\\n".join(self.items)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)

from rich.markup import escape

from cloudpane.core.cache import TTLCache
from cloudpane.core.errors import InvalidTransition
from cloudpane.core.events import (
    KeyInput,
    LastUpdated,
    ModuleEffect,
    Resize,
    Severity,
    StatusUpdate,
    Tick,
    Toast,
    Work,
    WorkFailed,
)

logger = logging.getLogger(__name__)


class ModuleState(str, Enum):
    """Per-module lifecycle state."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"
    CONFIRMING = "confirming"


_ALLOWED: Dict[ModuleState, FrozenSet[ModuleState]] = {
    ModuleState.UNINITIALIZED: frozenset({ModuleState.READY, ModuleState.ERROR}),
    ModuleState.READY: frozenset({ModuleState.READY, ModuleState.LOADING, ModuleState.ERROR}),
    ModuleState.LOADING: frozenset({ModuleState.LOADED, ModuleState.ERROR, ModuleState.READY}),
    ModuleState.LOADED: frozenset(
        {ModuleState.LOADING, ModuleState.CONFIRMING, ModuleState.READY, ModuleState.ERROR}
    ),
    ModuleState.CONFIRMING: frozenset(
        {ModuleState.LOADING, ModuleState.LOADED, ModuleState.READY, ModuleState.ERROR}
    ),
    ModuleState.ERROR: frozenset({ModuleState.READY, ModuleState.LOADING, ModuleState.ERROR}),
}


# ============================================================================
# Result messages (payloads of a module's own work)
# ============================================================================


@dataclass(frozen=True)
class FetchSucceeded:
    data: Any
    from_cache: bool = False


@dataclass(frozen=True)
class FetchFailed:
    error: BaseException


@dataclass(frozen=True)
class ActionSucceeded:
    label: str
    detail: str = ""


@dataclass(frozen=True)
class ActionFailed:
    label: str
    error: BaseException


@dataclass(frozen=True)
class PendingAction:
    """A user action waiting for confirmation.

    Attributes:
        label: Human readable description ("Stop instance web-1").
        run: Coroutine function performing the action.
    """

    label: str
    run: Callable[[], Awaitable[Any]]


# ============================================================================
# Contract
# ============================================================================


@runtime_checkable
class Module(Protocol):
    """What the registry and controller require of a module."""

    key: str
    name: str

    @property
    def state(self) -> ModuleState: ...

    @property
    def error(self) -> Optional[BaseException]: ...

    @property
    def poll_interval(self) -> Optional[float]: ...

    def initialize(self, param: Optional[str]) -> None: ...

    def reinitialize(self, param: Optional[str]) -> None: ...

    def refresh(self, force: bool = True) -> List[ModuleEffect]: ...

    def handle(self, message: Any) -> List[ModuleEffect]: ...

    def render(self) -> str: ...

    def help_text(self) -> str: ...

    def reset(self) -> None: ...

    def focus(self) -> None: ...

    def blur(self) -> None: ...

    def is_at_root(self) -> bool: ...


class BaseModule(ABC):
    """Lifecycle state machine shared by every concrete module.

    Subclasses implement ``setup``, ``fetch``, ``on_data`` and
    ``render_content``, and usually ``on_key``. Everything that touches the
    network happens inside ``fetch`` or a ``PendingAction``, both of which
    run off the loop.
    """

    key: str = ""
    name: str = ""

    def __init__(self, cache: TTLCache, poll_interval: Optional[float] = 60.0):
        self.cache = cache
        self._poll_interval = poll_interval
        self._state = ModuleState.UNINITIALIZED
        self._error: Optional[BaseException] = None
        self._param: Optional[str] = None
        self._initialized = False
        self._pending: Optional[PendingAction] = None
        self.focused = False
        self.width = 80
        self.height = 24

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ModuleState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def param(self) -> Optional[str]:
        return self._param

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def poll_interval(self) -> Optional[float]:
        return self._poll_interval

    @property
    def pending_action(self) -> Optional[PendingAction]:
        return self._pending

    def _set_state(self, target: ModuleState) -> None:
        if target not in _ALLOWED[self._state]:
            raise InvalidTransition(self.key, self._state.value, target.value)
        if target != self._state:
            logger.debug(f"{self.key}: {self._state.value} -> {target.value}")
        self._state = target

    def _fail(self, error: BaseException) -> None:
        self._error = error
        self._set_state(ModuleState.ERROR)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def setup(self, param: Optional[str]) -> None:
        """Build clients for ``param``. Raise to fail initialization."""

    def teardown(self) -> None:
        """Release whatever ``setup`` built."""

    @abstractmethod
    async def fetch(self, force: bool) -> Any:
        """Load data. Runs in a worker; ``force`` bypasses the cache."""

    @abstractmethod
    def on_data(self, data: Any) -> None:
        """Store freshly fetched data."""

    @abstractmethod
    def render_content(self) -> str:
        """Render the Ready/Loaded view."""

    def on_key(self, event: KeyInput) -> List[ModuleEffect]:
        """Handle a key outside of confirmation mode."""
        if event.key == "r":
            return self.refresh()
        return []

    def on_reset(self) -> None:
        """Clear view-local state (selection, filter, detail view)."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, param: Optional[str]) -> None:
        """Bind the module to ``param``.

        Raises:
            Exception: Whatever ``setup`` raised; the module is left in ERROR.
        """
        try:
            self.setup(param)
        except Exception as e:
            self._initialized = False
            self._fail(e)
            raise
        self._param = param
        self._initialized = True
        self._error = None
        self._pending = None
        self._set_state(ModuleState.READY)

    def reinitialize(self, param: Optional[str]) -> None:
        """Rebind to a new ``param``; a no-op when nothing changed."""
        if self._initialized and param == self._param and self._state != ModuleState.ERROR:
            return
        if self._initialized:
            self.teardown()
            self._initialized = False
        self.on_reset()
        self.initialize(param)

    def refresh(self, force: bool = True) -> List[ModuleEffect]:
        """Start a fetch if the module can take one right now."""
        if not self._initialized:
            return []
        if self._state in (ModuleState.LOADING, ModuleState.CONFIRMING):
            return []
        self._set_state(ModuleState.LOADING)
        return [self._fetch_work(force)]

    def _fetch_work(self, force: bool) -> Work:
        async def run() -> Any:
            try:
                return FetchSucceeded(await self.fetch(force))
            except Exception as e:
                logger.warning(f"{self.key}: fetch failed: {e}")
                return FetchFailed(e)

        return Work(run=run, description=f"fetch {self.key}")

    def request_confirmation(self, action: PendingAction) -> List[ModuleEffect]:
        """Ask the user to confirm ``action`` before running it."""
        if self._state != ModuleState.LOADED:
            return []
        self._pending = action
        self._set_state(ModuleState.CONFIRMING)
        return [StatusUpdate(f"{action.label}? (y/n)")]

    def _confirm(self) -> List[ModuleEffect]:
        action = self._pending
        self._pending = None
        if action is None:
            self._set_state(ModuleState.LOADED)
            return []
        self._set_state(ModuleState.LOADING)

        async def run() -> Any:
            try:
                detail = await action.run()
                return ActionSucceeded(action.label, str(detail) if detail else "")
            except Exception as e:
                logger.error(f"{self.key}: action '{action.label}' failed: {e}")
                return ActionFailed(action.label, e)

        return [Work(run=run, description=action.label), StatusUpdate(f"{action.label}...")]

    def _cancel(self) -> List[ModuleEffect]:
        label = self._pending.label if self._pending else "action"
        self._pending = None
        self._set_state(ModuleState.LOADED)
        return [StatusUpdate(f"Cancelled: {label}")]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def handle(self, message: Any) -> List[ModuleEffect]:
        if isinstance(message, KeyInput):
            if self._state == ModuleState.CONFIRMING:
                if message.key in ("y", "enter"):
                    return self._confirm()
                if message.key in ("n", "escape"):
                    return self._cancel()
                return []
            return self.on_key(message)

        if isinstance(message, Tick):
            if self._state in (ModuleState.READY, ModuleState.LOADED, ModuleState.ERROR):
                return self.refresh(force=False)
            return []

        if isinstance(message, Resize):
            self.width = message.width
            self.height = message.height
            return []

        if isinstance(message, FetchSucceeded):
            if self._state != ModuleState.LOADING:
                logger.debug(f"{self.key}: ignoring fetch result in state {self._state.value}")
                return []
            self.on_data(message.data)
            self._error = None
            self._set_state(ModuleState.LOADED)
            return [LastUpdated()]

        if isinstance(message, (FetchFailed, WorkFailed)):
            if self._state != ModuleState.LOADING:
                return []
            self._fail(message.error)
            return [StatusUpdate(f"{self.name}: {message.error}", is_error=True)]

        if isinstance(message, ActionSucceeded):
            text = f"{message.label}: done"
            if message.detail:
                text = f"{message.label}: {message.detail}"
            if self._state != ModuleState.LOADING:
                return [Toast(text)]
            # still LOADING from the confirm, fetch again without passing through LOADED
            return [Toast(text), self._fetch_work(force=True)]

        if isinstance(message, ActionFailed):
            self._fail(message.error)
            return [
                Toast(f"{message.label} failed: {message.error}", Severity.ERROR),
                StatusUpdate(f"{message.label} failed: {message.error}", is_error=True),
            ]

        return []

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def render(self) -> str:
        if self._state == ModuleState.UNINITIALIZED:
            return f"[dim]{escape(self.name)} is not initialized.[/dim]"
        if self._state == ModuleState.ERROR:
            return (
                f"[bold red]Error:[/bold red] {escape(str(self._error))}\n\n"
                "[dim]Press r to retry.[/dim]"
            )
        if self._state == ModuleState.CONFIRMING and self._pending is not None:
            return (
                f"[bold yellow]{escape(self._pending.label)}?[/bold yellow]\n\n"
                "[b]y[/b]/[b]enter[/b] confirm   [b]n[/b]/[b]esc[/b] cancel"
            )
        body = self.render_content()
        if self._state == ModuleState.LOADING:
            return f"[italic]Loading {escape(self.name)}...[/italic]\n{body}"
        return body

    def help_text(self) -> str:
        if self._state == ModuleState.CONFIRMING:
            return "y:Confirm  n:Cancel"
        return "r:Refresh"

    def reset(self) -> None:
        self._pending = None
        self.on_reset()
        if self._initialized:
            self._error = None
            self._set_state(ModuleState.READY)

    def focus(self) -> None:
        self.focused = True

    def blur(self) -> None:
        self.focused = False

    def is_at_root(self) -> bool:
        return True
