"""Project overview: resource counts gathered from several APIs at once.

The overview fans out one query per resource family, plus billing, budgets
and cost recommendations, and renders whatever came back. A family that
failed (API disabled, missing permission) shows as unavailable; the rest of
the dashboard still renders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from rich.markup import escape

from cloudpane.core.aggregator import AggregateResult, Aggregator, FanOutTask
from cloudpane.core.cache import TTLCache
from cloudpane.core.gateway import Gateway
from cloudpane.modules.base import BaseModule
from cloudpane.modules.resource import list_resources, lookup

logger = logging.getLogger(__name__)

COMPUTE = "https://compute.googleapis.com/compute/v1/projects/{project}"

# (label, display name, list url, items key, aggregated key)
INVENTORY: Tuple[Tuple[str, str, str, str, Optional[str]], ...] = (
    ("instances", "VM Instances", COMPUTE + "/aggregated/instances", "items", "instances"),
    ("disks", "Persistent Disks", COMPUTE + "/aggregated/disks", "items", "disks"),
    ("addresses", "IP Addresses", COMPUTE + "/aggregated/addresses", "items", "addresses"),
    ("sql", "Cloud SQL Instances", "https://sqladmin.googleapis.com/v1/projects/{project}/instances", "items", None),
    ("buckets", "Storage Buckets", "https://storage.googleapis.com/storage/v1/b?project={project}", "items", None),
    ("datasets", "BigQuery Datasets", "https://bigquery.googleapis.com/bigquery/v2/projects/{project}/datasets", "datasets", None),
)

BILLING_URL = "https://cloudbilling.googleapis.com/v1/projects/{project}/billingInfo"
BUDGETS_URL = "https://billingbudgets.googleapis.com/v1/billingAccounts/{account}/budgets"
RECOMMENDATIONS_URL = (
    "https://recommender.googleapis.com/v1/projects/{project}/locations/{location}"
    "/recommenders/{recommender}/recommendations"
)

# cost recommenders worth surfacing on the overview
RECOMMENDERS = (
    "google.compute.instance.IdleResourceRecommender",
    "google.compute.instance.MachineTypeRecommender",
    "google.compute.address.UnusedAddressRecommender",
    "google.compute.disk.IdleResourceRecommender",
)

TOP_RECOMMENDATIONS = 5


@dataclass(frozen=True)
class Recommendation:
    name: str
    description: str
    subtype: str
    priority: str
    state: str
    savings: float = 0.0
    currency: str = ""


@dataclass(frozen=True)
class Budget:
    name: str
    amount: str
    currency: str = ""
    thresholds: Tuple[float, ...] = ()


def parse_recommendation(raw: Dict[str, Any]) -> Recommendation:
    """Recommender API item to ``Recommendation``; savings are reported positive."""
    cost = lookup(raw, "primaryImpact.costProjection.cost") or {}
    savings = abs(int(cost.get("units", 0) or 0) + int(cost.get("nanos", 0) or 0) / 1e9)
    return Recommendation(
        name=raw.get("name", ""),
        description=raw.get("description", ""),
        subtype=raw.get("recommenderSubtype", ""),
        priority=raw.get("priority", ""),
        state=lookup(raw, "stateInfo.state") or "",
        savings=savings,
        currency=cost.get("currencyCode", ""),
    )


def parse_budget(raw: Dict[str, Any]) -> Budget:
    amount, currency = "N/A", ""
    specified = lookup(raw, "amount.specifiedAmount")
    if specified:
        units = int(specified.get("units", 0) or 0)
        cents = int(specified.get("nanos", 0) or 0) // 10_000_000
        amount, currency = f"{units}.{cents:02d}", specified.get("currencyCode", "")
    elif lookup(raw, "amount.lastPeriodAmount") is not None:
        amount = "Last Period"
    thresholds = tuple(float(rule.get("thresholdPercent", 0)) for rule in raw.get("thresholdRules", []))
    return Budget(name=raw.get("displayName", ""), amount=amount, currency=currency, thresholds=thresholds)


class OverviewModule(BaseModule):
    """Global inventory for the current project."""

    key = "overview"
    name = "Overview"

    def __init__(
        self,
        cache: TTLCache,
        gateway: Gateway,
        aggregator: Optional[Aggregator] = None,
        ttl: float = 900.0,
        poll_interval: Optional[float] = 900.0,
        region: str = "us-central1",
        zone: Optional[str] = None,
    ):
        super().__init__(cache, poll_interval=poll_interval)
        self.gateway = gateway
        self.aggregator = aggregator or Aggregator()
        self.ttl = ttl
        self.region = region
        self.zone = zone
        self.result: Optional[AggregateResult] = None

    @property
    def cache_key(self) -> str:
        return f"overview:inventory:{self.param}"

    def setup(self, param: Optional[str]) -> None:
        if not param:
            raise ValueError("Overview needs a project; use Switch Project")

    def teardown(self) -> None:
        self.result = None

    def recommendation_locations(self) -> List[str]:
        locations = ["global", f"{self.region}-a", f"{self.region}-b"]
        if self.zone and self.zone not in locations:
            locations.append(self.zone)
        return locations

    def _tasks(self) -> List[FanOutTask]:
        project = self.param

        def counter(url: str, items_path: str, aggregated_key: Optional[str]) -> Callable[[], Any]:
            async def fetch() -> Any:
                items = await list_resources(self.gateway, url.format(project=project), items_path, aggregated_key)
                if aggregated_key == "disks":
                    total_gb = sum(int(d.get("sizeGb", 0) or 0) for d in items)
                    return {"count": len(items), "gb": total_gb}
                return {"count": len(items)}

            return fetch

        async def billing() -> Dict[str, Any]:
            info = await self.gateway.get_json(BILLING_URL.format(project=project))
            account = info.get("billingAccountName", "")
            return {
                "enabled": bool(info.get("billingEnabled")),
                "account": account.removeprefix("billingAccounts/"),
            }

        async def budgets() -> List[Budget]:
            # budgets hang off the billing account, so look it up here rather
            # than depend on the billing task
            info = await self.gateway.get_json(BILLING_URL.format(project=project))
            account = info.get("billingAccountName", "").removeprefix("billingAccounts/")
            if not account:
                return []
            items = await list_resources(self.gateway, BUDGETS_URL.format(account=account), "budgets")
            return [parse_budget(b) for b in items]

        async def recommendations() -> List[Recommendation]:
            def one(url: str) -> Callable[[], Any]:
                return lambda: list_resources(self.gateway, url, "recommendations")

            lookups = [
                FanOutTask(
                    f"{recommender}@{location}",
                    one(RECOMMENDATIONS_URL.format(project=project, location=location, recommender=recommender)),
                )
                for location in self.recommendation_locations()
                for recommender in RECOMMENDERS
            ]
            # a recommender missing in one location is normal; only all of them failing is an error
            found = await self.aggregator.aggregate(lookups)
            if not found.ok:
                raise next(iter(found.errors().values()))
            parsed = [parse_recommendation(r) for items in found.values_by_label().values() for r in items]
            return sorted(parsed, key=lambda r: r.savings, reverse=True)

        tasks = [FanOutTask(label, counter(url, items, agg)) for label, _, url, items, agg in INVENTORY]
        tasks.append(FanOutTask("billing", billing))
        tasks.append(FanOutTask("budgets", budgets))
        tasks.append(FanOutTask("recommendations", recommendations))
        return tasks

    async def fetch(self, force: bool) -> AggregateResult:
        key = self.cache_key
        if not force:
            cached, found = self.cache.get(key)
            if found:
                return cached

        result = await self.aggregator.aggregate(self._tasks())
        # a partial result is shown but not cached, so the next tick retries it
        if not result.failed:
            self.cache.set(key, result, self.ttl)
        return result

    def on_data(self, data: AggregateResult) -> None:
        self.result = data

    @staticmethod
    def _unavailable(title: str, error: Optional[BaseException]) -> str:
        return f"[bold]{title}:[/bold] [yellow]unavailable[/yellow] [dim]{escape(str(error))}[/dim]"

    def render_content(self) -> str:
        lines = [f"[bold]Project Overview[/bold]  [dim]{escape(self.param or '')}[/dim]", ""]
        if self.result is None:
            lines.append("[dim]No data yet. Press r to load.[/dim]")
            return "\n".join(lines)

        billing = self.result.get("billing")
        if billing is not None:
            if billing.ok:
                state = "[green]enabled[/green]" if billing.value["enabled"] else "[red]disabled[/red]"
                account = escape(billing.value["account"] or "none")
                lines.append(f"[bold]Billing:[/bold] {state}  [dim]account {account}[/dim]")
            else:
                lines.append(self._unavailable("Billing", billing.error))
            lines.append("")

        lines.append("[bold]Inventory[/bold]")
        for label, title, *_ in INVENTORY:
            outcome = self.result.get(label)
            if outcome is None:
                continue
            if outcome.ok:
                value = str(outcome.value["count"])
                if "gb" in outcome.value:
                    value += f" ({outcome.value['gb']} GB)"
                lines.append(f"  {title:<22} {value}")
            else:
                lines.append(f"  {title:<22} [yellow]unavailable[/yellow] [dim]{escape(str(outcome.error))}[/dim]")

        lines.extend(self._render_budgets())
        lines.extend(self._render_recommendations())

        if self.result.failed:
            lines.append("")
            lines.append(f"[dim]{len(self.result.failed)} of {len(self.result)} queries failed.[/dim]")
        return "\n".join(lines)

    def _render_budgets(self) -> List[str]:
        outcome = self.result.get("budgets")
        if outcome is None:
            return []
        if not outcome.ok:
            return ["", self._unavailable("Budgets", outcome.error)]

        lines = ["", "[bold]Budgets[/bold]"]
        if not outcome.value:
            lines.append("  [dim]No budgets on this billing account.[/dim]")
        for budget in outcome.value:
            amount = f"{budget.amount} {budget.currency}".strip()
            alerts = ", ".join(f"{t * 100:.0f}%" for t in budget.thresholds)
            line = f"  {escape(budget.name):<22} {escape(amount)}"
            if alerts:
                line += f"  [dim]alerts at {alerts}[/dim]"
            lines.append(line)
        return lines

    def _render_recommendations(self) -> List[str]:
        outcome = self.result.get("recommendations")
        if outcome is None:
            return []
        if not outcome.ok:
            return ["", self._unavailable("Recommendations", outcome.error)]

        recs: List[Recommendation] = outcome.value
        lines = ["", "[bold]Recommendations[/bold]"]
        if not recs:
            lines.append("  [dim]Nothing to recommend.[/dim]")
            return lines

        currency = next((r.currency for r in recs if r.currency), "")
        total = sum(r.savings for r in recs)
        lines.append(f"  {len(recs)} open, est. savings [green]{total:.2f} {escape(currency)}[/green]")
        for rec in recs[:TOP_RECOMMENDATIONS]:
            lines.append(
                f"  [cyan]{escape(rec.subtype or rec.priority):<22}[/cyan] "
                f"{rec.savings:>9.2f}  {escape(rec.description)}"
            )
        return lines


def overview_factory(
    gateway: Gateway,
    ttl: float = 900.0,
    poll_interval: Optional[float] = 900.0,
    region: str = "us-central1",
    zone: Optional[str] = None,
) -> Callable[[TTLCache], OverviewModule]:
    def factory(cache: TTLCache) -> OverviewModule:
        return OverviewModule(cache, gateway, ttl=ttl, poll_interval=poll_interval, region=region, zone=zone)

    return factory
