"""Messages and effects exchanged between modules, controller and runtime.

Everything that enters the single-threaded loop is a message; everything a
handler wants done afterwards is an effect. Handlers never perform I/O
themselves: they return effects and the runtime carries them out.

Message Categories:
- input: KeyInput, Resize
- timer: Tick
- result: WorkResult (a tagged payload coming back from a worker)

Effect Categories:
- module -> controller: Work, Toast, StatusUpdate, SwitchModule,
  OpenPalette, LastUpdated
- controller -> runtime: Dispatch, SetPolling, Notify, Quit
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union


class Severity(str, Enum):
    """Toast/notification severity, matching Textual's names."""

    INFORMATION = "information"
    WARNING = "warning"
    ERROR = "error"


# ============================================================================
# Messages
# ============================================================================


@dataclass(frozen=True)
class KeyInput:
    """A key press, using Textual key names ("enter", "ctrl+c", "q")."""

    key: str
    character: Optional[str] = None

    @property
    def is_printable(self) -> bool:
        return self.character is not None and len(self.character) == 1 and self.character.isprintable()


@dataclass(frozen=True)
class Resize:
    """Window or layout size notice."""

    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    """Background polling tick.

    The runtime stamps the module key and generation the timer was started
    for; modules receive the same object and may ignore the tags.
    """

    module_key: Optional[str] = None
    generation: int = 0
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class WorkResult:
    """Payload returned by a finished worker, tagged with its origin."""

    module_key: Optional[str]
    generation: int
    payload: Any


@dataclass(frozen=True)
class WorkFailed:
    """A worker raised instead of returning a typed result."""

    error: BaseException
    description: str = ""


# ============================================================================
# Effects returned by modules
# ============================================================================


@dataclass(frozen=True)
class Work:
    """Asynchronous work to run off the loop.

    ``run`` is a zero-argument coroutine function whose return value is
    delivered back to the issuing module as a message.
    """

    run: Callable[[], Awaitable[Any]]
    description: str = ""


@dataclass(frozen=True)
class Toast:
    """Show a transient notification."""

    message: str
    severity: Severity = Severity.INFORMATION


@dataclass(frozen=True)
class StatusUpdate:
    """Replace the status line message."""

    message: str
    is_error: bool = False


@dataclass(frozen=True)
class LastUpdated:
    """Record when the active module last received fresh data."""

    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SwitchModule:
    """Ask the controller to activate another module."""

    key: str


@dataclass(frozen=True)
class OpenPalette:
    """Open the command palette, optionally pre-filtered."""

    query: str = ""


# ============================================================================
# Effects returned by the controller to the runtime
# ============================================================================


@dataclass(frozen=True)
class Dispatch:
    """Run ``work`` and post a WorkResult tagged with this origin."""

    work: Work
    module_key: Optional[str]
    generation: int


@dataclass(frozen=True)
class SetPolling:
    """Replace the single background timer (interval None stops it)."""

    interval: Optional[float]
    module_key: Optional[str] = None
    generation: int = 0


@dataclass(frozen=True)
class Notify:
    """Show a toast through the runtime."""

    message: str
    severity: Severity = Severity.INFORMATION


@dataclass(frozen=True)
class Quit:
    """Exit the application."""


ModuleEffect = Union[Work, Toast, StatusUpdate, LastUpdated, SwitchModule, OpenPalette]
Effect = Union[ModuleEffect, Dispatch, SetPolling, Notify, Quit]
Effects = List[Effect]
