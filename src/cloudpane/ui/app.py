"""Main cloudpane TUI application.

The App is the event loop around ``DashboardController``: it turns Textual
key presses, resizes, timer ticks and finished workers into controller
messages, carries out the effects the controller returns, and re-renders.
"""

from __future__ import annotations

import logging
from typing import Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.message import Message
from textual.timer import Timer
from textual.widgets import Static

from cloudpane.core.events import (
    Dispatch,
    Effects,
    KeyInput,
    Notify,
    Quit,
    Resize,
    SetPolling,
    Tick,
    WorkFailed,
    WorkResult,
)
from cloudpane.core.gateway import Gateway
from cloudpane.ui.core.controller import DashboardController, ViewMode
from cloudpane.ui.widgets.help_panel import render_help
from cloudpane.ui.widgets.home_menu import render_home_menu
from cloudpane.ui.widgets.palette import PaletteOverlay
from cloudpane.ui.widgets.sidebar import Sidebar
from cloudpane.ui.widgets.status_bar import StatusBar

logger = logging.getLogger(__name__)


class WorkDone(Message):
    """A worker finished; carries the tagged result back onto the loop."""

    def __init__(self, result: WorkResult) -> None:
        super().__init__()
        self.result = result


class CloudpaneApp(App):
    """cloudpane - Google Cloud resource dashboard."""

    TITLE = "cloudpane"

    # Key routing belongs to the controller; only ctrl+c is caught early so
    # Textual's own handling never swallows it.
    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
        layers: base overlay;
    }

    #body {
        height: 1fr;
    }

    #main {
        width: 1fr;
        height: 100%;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        controller: DashboardController,
        gateway: Optional[Gateway] = None,
        default_view: str = "home",
    ) -> None:
        super().__init__()
        self.controller = controller
        self.gateway = gateway
        self.default_view = default_view
        self._poll_timer: Optional[Timer] = None
        self._ui_ready = False

    def compose(self) -> ComposeResult:
        with Horizontal(id="body"):
            yield Sidebar(id="sidebar")
            with Container(id="main"):
                yield Static(id="content")
        yield PaletteOverlay(id="palette")
        yield StatusBar(id="status")

    def on_mount(self) -> None:
        self.controller.width = self.size.width
        self.controller.height = self.size.height
        self._ui_ready = True
        self._execute(self.controller.start(self.default_view))
        self._redraw()

    async def on_unmount(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.stop()
        if self.gateway is not None:
            await self.gateway.aclose()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self._feed(KeyInput(event.key, event.character))

    def on_resize(self, event: events.Resize) -> None:
        self._feed(Resize(event.size.width, event.size.height))

    def on_work_done(self, message: WorkDone) -> None:
        self._feed(message.result)

    def action_quit(self) -> None:
        self._feed(KeyInput("ctrl+c"))

    def _feed(self, message: object) -> None:
        self._execute(self.controller.dispatch(message))
        if self._ui_ready:
            self._redraw()

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _execute(self, effects: Effects) -> None:
        for effect in effects:
            if isinstance(effect, Dispatch):
                self.run_worker(self._run(effect), group="dispatch", exit_on_error=False)
            elif isinstance(effect, SetPolling):
                self._set_polling(effect)
            elif isinstance(effect, Notify):
                self.notify(effect.message, severity=effect.severity.value)
            elif isinstance(effect, Quit):
                self.exit()
            else:
                logger.debug(f"App: unhandled effect {effect!r}")

    async def _run(self, dispatch: Dispatch) -> None:
        try:
            payload = await dispatch.work.run()
        except Exception as e:
            logger.error(f"App: worker '{dispatch.work.description}' raised: {e}")
            payload = WorkFailed(e, dispatch.work.description)
        self.post_message(WorkDone(WorkResult(dispatch.module_key, dispatch.generation, payload)))

    def _set_polling(self, effect: SetPolling) -> None:
        if self._poll_timer is not None:
            self._poll_timer.stop()
            self._poll_timer = None
        if not effect.interval:
            return

        def tick() -> None:
            self._feed(Tick(module_key=effect.module_key, generation=effect.generation))

        self._poll_timer = self.set_interval(effect.interval, tick)
        logger.debug(f"App: polling {effect.module_key} every {effect.interval}s")

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def _redraw(self) -> None:
        controller = self.controller
        sidebar = self.query_one(Sidebar)
        sidebar.display = (
            controller.focus.view_mode == ViewMode.SERVICE and controller.focus.sidebar_visible
        )
        sidebar.update_from(controller)

        content = self.query_one("#content", Static)
        if controller.show_help:
            content.update(render_help())
        elif controller.focus.view_mode == ViewMode.HOME:
            content.update(render_home_menu(controller))
        else:
            module = controller.active_module
            content.update(module.render() if module is not None else "")

        self.query_one(PaletteOverlay).update_from(controller)
        self.query_one(StatusBar).update_from(controller)
