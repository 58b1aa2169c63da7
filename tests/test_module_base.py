from __future__ import annotations

from typing import Any, Optional

import pytest

from cloudpane.core.cache import TTLCache
from cloudpane.core.errors import InvalidTransition
from cloudpane.core.events import KeyInput, LastUpdated, StatusUpdate, Tick, Toast, Work, WorkFailed
from cloudpane.modules.base import (
    ActionFailed,
    ActionSucceeded,
    BaseModule,
    FetchFailed,
    FetchSucceeded,
    Module,
    ModuleState,
    PendingAction,
)


class Things(BaseModule):
    key = "things"
    name = "Things"

    def __init__(self, cache: TTLCache, fail_setup: bool = False, fail_fetch: bool = False):
        super().__init__(cache, poll_interval=30)
        self.fail_setup = fail_setup
        self.fail_fetch = fail_fetch
        self.items: list[str] = []
        self.setups: list[Optional[str]] = []
        self.teardowns = 0

    def setup(self, param: Optional[str]) -> None:
        self.setups.append(param)
        if self.fail_setup:
            raise RuntimeError("no client")

    def teardown(self) -> None:
        self.teardowns += 1

    async def fetch(self, force: bool) -> Any:
        if self.fail_fetch:
            raise RuntimeError("list failed")
        return [f"{self.param}-a", f"{self.param}-b"]

    def on_data(self, data: Any) -> None:
        self.items = data

    def render_content(self) -> str:
        return "\n".join(self.items)


def loaded(module: Things) -> Things:
    module.initialize("demo")
    module.refresh()
    module.handle(FetchSucceeded(["a"]))
    return module


def test_satisfies_module_protocol() -> None:
    assert isinstance(Things(TTLCache()), Module)


def test_initialize_moves_to_ready() -> None:
    module = Things(TTLCache())
    assert module.state == ModuleState.UNINITIALIZED

    module.initialize("demo")
    assert module.state == ModuleState.READY
    assert module.param == "demo"


def test_initialize_failure_moves_to_error_and_raises() -> None:
    module = Things(TTLCache(), fail_setup=True)
    with pytest.raises(RuntimeError):
        module.initialize("demo")
    assert module.state == ModuleState.ERROR
    assert str(module.error) == "no client"
    assert module.refresh() == []


def test_refresh_before_initialize_does_nothing() -> None:
    module = Things(TTLCache())
    assert module.refresh() == []
    assert module.state == ModuleState.UNINITIALIZED


@pytest.mark.asyncio
async def test_fetch_round_trip() -> None:
    module = Things(TTLCache())
    module.initialize("demo")

    effects = module.refresh()
    assert module.state == ModuleState.LOADING
    assert len(effects) == 1 and isinstance(effects[0], Work)

    result = await effects[0].run()
    assert isinstance(result, FetchSucceeded)

    effects = module.handle(result)
    assert module.state == ModuleState.LOADED
    assert module.items == ["demo-a", "demo-b"]
    assert isinstance(effects[0], LastUpdated)


@pytest.mark.asyncio
async def test_fetch_error_becomes_message() -> None:
    module = Things(TTLCache(), fail_fetch=True)
    module.initialize("demo")
    result = await module.refresh()[0].run()
    assert isinstance(result, FetchFailed)

    effects = module.handle(result)
    assert module.state == ModuleState.ERROR
    assert isinstance(effects[0], StatusUpdate) and effects[0].is_error
    assert "list failed" in module.render()


def test_worker_failure_moves_loading_to_error() -> None:
    module = Things(TTLCache())
    module.initialize("demo")
    module.refresh()
    module.handle(WorkFailed(RuntimeError("worker died")))
    assert module.state == ModuleState.ERROR


def test_refresh_while_loading_is_ignored() -> None:
    module = Things(TTLCache())
    module.initialize("demo")
    module.refresh()
    assert module.refresh() == []


def test_result_outside_loading_is_ignored() -> None:
    module = Things(TTLCache())
    module.initialize("demo")
    assert module.handle(FetchSucceeded(["late"])) == []
    assert module.state == ModuleState.READY
    assert module.items == []


def test_tick_refreshes_only_when_idle() -> None:
    module = Things(TTLCache())
    module.initialize("demo")
    assert len(module.handle(Tick())) == 1
    assert module.state == ModuleState.LOADING
    assert module.handle(Tick()) == []


def test_error_state_recovers_on_refresh() -> None:
    module = Things(TTLCache())
    module.initialize("demo")
    module.refresh()
    module.handle(FetchFailed(RuntimeError("x")))

    assert module.handle(KeyInput("r", "r"))
    assert module.state == ModuleState.LOADING


def test_invalid_transition_raises() -> None:
    module = Things(TTLCache())
    with pytest.raises(InvalidTransition):
        module._set_state(ModuleState.LOADED)


@pytest.mark.asyncio
async def test_confirmed_action_runs_and_refetches() -> None:
    module = loaded(Things(TTLCache()))
    ran: list[str] = []

    async def stop() -> str:
        ran.append("stop")
        return ""

    effects = module.request_confirmation(PendingAction("Stop vm-1", stop))
    assert module.state == ModuleState.CONFIRMING
    assert effects == [StatusUpdate("Stop vm-1? (y/n)")]
    assert module.handle(KeyInput("x", "x")) == []

    effects = module.handle(KeyInput("y", "y"))
    assert module.state == ModuleState.LOADING
    result = await effects[0].run()
    assert ran == ["stop"]
    assert isinstance(result, ActionSucceeded)

    effects = module.handle(result)
    assert isinstance(effects[0], Toast)
    assert isinstance(effects[1], Work)
    assert module.state == ModuleState.LOADING


def test_cancelled_action_returns_to_loaded() -> None:
    module = loaded(Things(TTLCache()))

    async def never() -> None:
        raise AssertionError("must not run")

    module.request_confirmation(PendingAction("Delete", never))
    effects = module.handle(KeyInput("escape"))
    assert module.state == ModuleState.LOADED
    assert module.pending_action is None
    assert effects == [StatusUpdate("Cancelled: Delete")]


def test_confirmation_requires_loaded() -> None:
    module = Things(TTLCache())
    module.initialize("demo")

    async def act() -> None:
        return None

    assert module.request_confirmation(PendingAction("Act", act)) == []
    assert module.state == ModuleState.READY


def test_failed_action_moves_to_error() -> None:
    module = loaded(Things(TTLCache()))

    async def act() -> None:
        return None

    module.request_confirmation(PendingAction("Act", act))
    module.handle(KeyInput("enter"))
    module.handle(ActionFailed("Act", RuntimeError("denied")))
    assert module.state == ModuleState.ERROR


def test_reinitialize_same_param_is_noop() -> None:
    module = Things(TTLCache())
    module.initialize("demo")
    module.reinitialize("demo")
    assert module.setups == ["demo"]
    assert module.teardowns == 0


def test_reinitialize_new_param_tears_down_first() -> None:
    module = loaded(Things(TTLCache()))
    module.reinitialize("other")
    assert module.setups == ["demo", "other"]
    assert module.teardowns == 1
    assert module.state == ModuleState.READY
    assert module.param == "other"


def test_reset_returns_to_ready() -> None:
    module = Things(TTLCache())
    module.reset()
    assert module.state == ModuleState.UNINITIALIZED

    loaded(module)
    module.reset()
    assert module.state == ModuleState.READY


def test_focus_and_blur() -> None:
    module = Things(TTLCache())
    module.focus()
    assert module.focused
    module.blur()
    assert not module.focused
