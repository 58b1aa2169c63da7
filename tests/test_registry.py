from __future__ import annotations

from typing import Any, Optional

import pytest

from cloudpane.core.cache import TTLCache
from cloudpane.core.errors import (
    DuplicateModuleError,
    ModuleConstructionError,
    ModuleInitError,
    UnknownModuleError,
)
from cloudpane.core.registry import ModuleRegistry
from cloudpane.modules.base import BaseModule, ModuleState


class Counting(BaseModule):
    key = "counting"
    name = "Counting"

    def __init__(self, cache: TTLCache, bad_params: tuple[str, ...] = ()):
        super().__init__(cache)
        self.bad_params = bad_params
        self.setups: list[Optional[str]] = []

    def setup(self, param: Optional[str]) -> None:
        self.setups.append(param)
        if param in self.bad_params:
            raise RuntimeError(f"cannot use {param}")

    async def fetch(self, force: bool) -> Any:
        return []

    def on_data(self, data: Any) -> None:
        pass

    def render_content(self) -> str:
        return ""


def test_same_instance_every_time() -> None:
    cache = TTLCache()
    built: list[Counting] = []

    def factory(c: TTLCache) -> Counting:
        assert c is cache
        built.append(Counting(c))
        return built[-1]

    registry = ModuleRegistry(cache)
    registry.register("a", factory)

    first = registry.get_or_initialize("a", "p1")
    second = registry.get_or_initialize("a")
    assert first is second
    assert len(built) == 1
    assert first.setups == ["p1"]


def test_unknown_key() -> None:
    registry = ModuleRegistry(TTLCache())
    with pytest.raises(UnknownModuleError):
        registry.get_or_initialize("missing", "p1")


def test_duplicate_registration_rejected() -> None:
    registry = ModuleRegistry(TTLCache())
    registry.register("a", Counting)
    with pytest.raises(DuplicateModuleError):
        registry.register("a", Counting)


def test_registration_order_and_descriptors() -> None:
    registry = ModuleRegistry(TTLCache())
    registry.register("b", Counting, name="Bee", category="Compute")
    registry.register("a", Counting)

    assert registry.keys() == ["b", "a"]
    assert registry.descriptor("b").display_name == "Bee"
    assert registry.descriptor("a").display_name == "a"
    assert registry.constructed() == []


def test_construction_failure_is_not_cached() -> None:
    attempts = 0

    def flaky(cache: TTLCache) -> Counting:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise OSError("no network")
        return Counting(cache)

    registry = ModuleRegistry(TTLCache())
    registry.register("a", flaky)

    with pytest.raises(ModuleConstructionError):
        registry.get_or_initialize("a", "p1")
    assert registry.instance("a") is None

    module = registry.get_or_initialize("a", "p1")
    assert attempts == 2
    assert module.state == ModuleState.READY


def test_init_failure_keeps_instance_in_error() -> None:
    registry = ModuleRegistry(TTLCache())
    registry.register("a", lambda c: Counting(c, bad_params=("bad",)))

    with pytest.raises(ModuleInitError) as exc_info:
        registry.get_or_initialize("a", "bad")

    module = registry.instance("a")
    assert exc_info.value.module is module
    assert module.state == ModuleState.ERROR

    assert registry.get_or_initialize("a", "good") is module
    assert module.state == ModuleState.READY


def test_param_change_reinitializes() -> None:
    registry = ModuleRegistry(TTLCache())
    registry.register("a", Counting)

    module = registry.get_or_initialize("a", "p1")
    registry.get_or_initialize("a", "p2")
    assert module.setups == ["p1", "p2"]
    assert module.param == "p2"


def test_reinitialize_all_touches_constructed_only() -> None:
    registry = ModuleRegistry(TTLCache())
    registry.register("used", Counting)
    registry.register("unused", Counting)

    used = registry.get_or_initialize("used", "p1")
    failures = registry.reinitialize_all("p2")

    assert failures == {}
    assert used.param == "p2"
    assert registry.instance("unused") is None
    assert registry.param == "p2"

    fresh = registry.get_or_initialize("unused")
    assert fresh.setups == ["p2"]


def test_reinitialize_all_collects_failures() -> None:
    registry = ModuleRegistry(TTLCache())
    registry.register("good", Counting)
    registry.register("bad", lambda c: Counting(c, bad_params=("p2",)))
    good = registry.get_or_initialize("good", "p1")
    bad = registry.get_or_initialize("bad", "p1")

    failures = registry.reinitialize_all("p2")

    assert list(failures) == ["bad"]
    assert good.state == ModuleState.READY and good.param == "p2"
    assert bad.state == ModuleState.ERROR
