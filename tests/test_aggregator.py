from __future__ import annotations

import asyncio

import pytest

from cloudpane.core.aggregator import Aggregator, FanOutTask, aggregate
from cloudpane.core.errors import RemoteStatusError


def value(v):
    async def fetch():
        await asyncio.sleep(0)
        return v

    return fetch


def failing(error: Exception):
    async def fetch():
        raise error

    return fetch


@pytest.mark.asyncio
async def test_one_failure_does_not_hide_the_others() -> None:
    denied = RemoteStatusError(403, "denied")
    result = await aggregate(
        [
            FanOutTask("instances", value(3)),
            FanOutTask("buckets", failing(denied)),
            FanOutTask("disks", value(7)),
        ]
    )

    assert list(result) == ["instances", "buckets", "disks"]
    assert result.ok == ["instances", "disks"]
    assert result.failed == ["buckets"]
    assert result["instances"].value == 3
    assert result["buckets"].error is denied
    assert result.values_by_label() == {"instances": 3, "disks": 7}
    assert result.errors() == {"buckets": denied}


@pytest.mark.asyncio
async def test_tasks_run_concurrently() -> None:
    started: list[str] = []
    release = asyncio.Event()

    def waiter(label: str):
        async def fetch():
            started.append(label)
            await release.wait()
            return label

        return fetch

    async def open_gate():
        while len(started) < 2:
            await asyncio.sleep(0)
        release.set()
        return "gate"

    result = await aggregate(
        [FanOutTask("a", waiter("a")), FanOutTask("b", waiter("b")), FanOutTask("gate", open_gate)]
    )
    assert result.values_by_label() == {"a": "a", "b": "b", "gate": "gate"}


@pytest.mark.asyncio
async def test_duplicate_labels_rejected() -> None:
    with pytest.raises(ValueError):
        await aggregate([FanOutTask("x", value(1)), FanOutTask("x", value(2))])


@pytest.mark.asyncio
async def test_empty_fan_out_and_object_form() -> None:
    assert len(await Aggregator().aggregate([])) == 0
