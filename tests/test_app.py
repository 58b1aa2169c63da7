from __future__ import annotations

from typing import Any, Optional

import pytest

from cloudpane.core.cache import TTLCache
from cloudpane.core.registry import ModuleRegistry
from cloudpane.modules.base import BaseModule, ModuleState
from cloudpane.ui.app import CloudpaneApp
from cloudpane.ui.core.controller import DashboardController, ViewMode


class TwoRows(BaseModule):
    key = "static"
    name = "Static"
    rows: Any = ()

    def setup(self, param: Optional[str]) -> None:
        pass

    async def fetch(self, force: bool) -> Any:
        return ["one", "two"]

    def on_data(self, data: Any) -> None:
        self.rows = data

    def render_content(self) -> str:
        return "\n".join(self.rows)


def make_app() -> CloudpaneApp:
    registry = ModuleRegistry(TTLCache())
    registry.register("static", lambda cache: TwoRows(cache, poll_interval=None), name="Static")
    controller = DashboardController(registry, project_id="demo")
    return CloudpaneApp(controller)


@pytest.mark.asyncio
async def test_enter_opens_module_and_loads_it() -> None:
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("enter")
        await app.workers.wait_for_complete()
        await pilot.pause()

        assert app.controller.focus.view_mode == ViewMode.SERVICE
        module = app.controller.active_module
        assert module.state == ModuleState.LOADED
        assert module.rows == ["one", "two"]


@pytest.mark.asyncio
async def test_q_on_home_exits() -> None:
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("q")
        await pilot.pause()
    assert app.return_code == 0
