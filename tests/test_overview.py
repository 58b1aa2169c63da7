from __future__ import annotations

from typing import Any, Optional

import pytest

from cloudpane.core.cache import TTLCache
from cloudpane.core.errors import RemoteStatusError
from cloudpane.modules.base import ModuleState
from cloudpane.modules.overview import (
    BILLING_URL,
    BUDGETS_URL,
    INVENTORY,
    RECOMMENDERS,
    Budget,
    OverviewModule,
    parse_budget,
    parse_recommendation,
)


IDLE_VM = {
    "name": "projects/demo/locations/global/recommenders/r/recommendations/idle-vm",
    "description": "Stop idle VM vm-1",
    "recommenderSubtype": "STOP_VM",
    "priority": "P2",
    "stateInfo": {"state": "ACTIVE"},
    "primaryImpact": {"costProjection": {"cost": {"currencyCode": "USD", "units": "-12", "nanos": -500000000}}},
}

MONTHLY = {
    "displayName": "Monthly",
    "amount": {"specifiedAmount": {"currencyCode": "USD", "units": "100", "nanos": 500000000}},
    "thresholdRules": [{"thresholdPercent": 0.5}, {"thresholdPercent": 0.9}],
}


class InventoryGateway:
    def __init__(self, failing: tuple[str, ...] = ()):
        self.failing = failing
        self.calls = 0

    async def get_json(self, url: str, params: Optional[dict] = None, **kwargs: Any) -> Any:
        self.calls += 1
        if any(part in url for part in self.failing):
            raise RemoteStatusError(403, f"denied for {url}")
        if url == BILLING_URL.format(project="demo"):
            return {"billingEnabled": True, "billingAccountName": "billingAccounts/0123-ABCD"}
        if url == BUDGETS_URL.format(account="0123-ABCD"):
            return {"budgets": [MONTHLY]}
        if "recommender.googleapis.com" in url:
            if "/locations/global/" in url and "instance.IdleResourceRecommender" in url:
                return {"recommendations": [IDLE_VM]}
            return {}
        if "aggregated/disks" in url:
            return {"items": {"zones/a": {"disks": [{"sizeGb": "10"}, {"sizeGb": "20"}]}}}
        if "aggregated/instances" in url:
            return {"items": {"zones/a": {"instances": [{"name": "vm"}]}}}
        if "storage" in url:
            return {"items": [{"name": "b1"}, {"name": "b2"}]}
        return {}


async def load(module: OverviewModule, force: bool = True) -> None:
    effects = module.refresh(force=force)
    module.handle(await effects[0].run())


@pytest.mark.asyncio
async def test_overview_counts_everything() -> None:
    module = OverviewModule(TTLCache(), InventoryGateway())
    module.initialize("demo")
    await load(module)

    assert module.state == ModuleState.LOADED
    assert module.result.failed == []
    assert module.result["disks"].value == {"count": 2, "gb": 30}
    assert module.result["buckets"].value == {"count": 2}
    assert module.result["billing"].value == {"enabled": True, "account": "0123-ABCD"}

    text = module.render()
    assert "(30 GB)" in text
    assert "0123-ABCD" in text


@pytest.mark.asyncio
async def test_partial_failure_still_renders_and_is_not_cached() -> None:
    gateway = InventoryGateway(failing=("sqladmin", "bigquery"))
    module = OverviewModule(TTLCache(), gateway)
    module.initialize("demo")
    await load(module)

    assert module.state == ModuleState.LOADED
    assert sorted(module.result.failed) == ["datasets", "sql"]
    assert module.result["instances"].value == {"count": 1}
    assert len(module.result) == len(INVENTORY) + 3

    text = module.render()
    assert "unavailable" in text
    assert "2 of 9 queries failed" in text
    assert module.cache.get(module.cache_key) == (None, False)


@pytest.mark.asyncio
async def test_complete_result_is_cached() -> None:
    gateway = InventoryGateway()
    module = OverviewModule(TTLCache(), gateway)
    module.initialize("demo")
    await load(module)
    calls = gateway.calls

    module.handle(await module.refresh(force=False)[0].run())
    assert gateway.calls == calls


def test_overview_needs_project() -> None:
    module = OverviewModule(TTLCache(), InventoryGateway())
    with pytest.raises(ValueError):
        module.initialize("")


@pytest.mark.asyncio
async def test_budgets_and_recommendations_are_rendered() -> None:
    module = OverviewModule(TTLCache(), InventoryGateway(), zone="europe-west1-b")
    module.initialize("demo")
    await load(module)

    assert module.result["budgets"].value == [Budget("Monthly", "100.50", "USD", (0.5, 0.9))]
    [rec] = module.result["recommendations"].value
    assert rec.subtype == "STOP_VM"
    assert rec.savings == pytest.approx(12.5)

    text = module.render()
    assert "Monthly" in text
    assert "alerts at 50%, 90%" in text
    assert "1 open, est. savings" in text
    assert "12.50 USD" in text
    assert "Stop idle VM vm-1" in text


@pytest.mark.asyncio
async def test_budget_and_recommendation_failures_show_unavailable() -> None:
    gateway = InventoryGateway(failing=("recommender.googleapis.com", "billingbudgets"))
    module = OverviewModule(TTLCache(), gateway)
    module.initialize("demo")
    await load(module)

    assert sorted(module.result.failed) == ["budgets", "recommendations"]
    assert module.result["billing"].ok

    text = module.render()
    assert "[bold]Budgets:[/bold] [yellow]unavailable[/yellow]" in text
    assert "[bold]Recommendations:[/bold] [yellow]unavailable[/yellow]" in text
    assert module.cache.get(module.cache_key) == (None, False)


def test_recommendations_query_every_location() -> None:
    module = OverviewModule(TTLCache(), InventoryGateway(), region="us-east1", zone="us-east1-c")
    assert module.recommendation_locations() == ["global", "us-east1-a", "us-east1-b", "us-east1-c"]
    assert len(RECOMMENDERS) == 4


def test_parse_budget_and_recommendation_edges() -> None:
    assert parse_budget({"displayName": "Rolling", "amount": {"lastPeriodAmount": {}}}) == Budget("Rolling", "Last Period")
    assert parse_budget({"displayName": "Bare"}).amount == "N/A"

    rec = parse_recommendation({"name": "r", "stateInfo": {"state": "CLAIMED"}})
    assert rec.savings == 0.0
    assert rec.state == "CLAIMED"
