"""Fan-out/fan-in for cross-module summary queries.

Runs several independent read-only queries at once and merges whatever came
back. A failing task never takes the others down: its label is still present
in the result, carrying the error instead of a value.

No retries happen here. Each task is expected to go through the Gateway,
which owns retry and rate limiting.

Usage:
    result = await aggregate([
        FanOutTask("instances", lambda: count("instances")),
        FanOutTask("buckets", lambda: count("buckets")),
    ])
    result["instances"].value  # 12
    result["buckets"].error    # RemoteStatusError(403) if that one failed
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FanOutTask:
    """One labelled, independent query."""

    label: str
    fetch: Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class TaskOutcome:
    """Success value or captured error for one label."""

    label: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AggregateResult(Mapping[str, TaskOutcome]):
    """Read-only mapping of label to outcome, in submission order."""

    def __init__(self, outcomes: Sequence[TaskOutcome]):
        self._outcomes: Dict[str, TaskOutcome] = {o.label: o for o in outcomes}

    def __getitem__(self, label: str) -> TaskOutcome:
        return self._outcomes[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    @property
    def ok(self) -> List[str]:
        """Labels that succeeded."""
        return [label for label, o in self._outcomes.items() if o.ok]

    @property
    def failed(self) -> List[str]:
        """Labels that failed."""
        return [label for label, o in self._outcomes.items() if not o.ok]

    def values_by_label(self) -> Dict[str, Any]:
        """Successful values only."""
        return {label: o.value for label, o in self._outcomes.items() if o.ok}

    def errors(self) -> Dict[str, BaseException]:
        """Captured errors only."""
        return {label: o.error for label, o in self._outcomes.items() if o.error is not None}


async def _run(task: FanOutTask) -> TaskOutcome:
    try:
        return TaskOutcome(label=task.label, value=await task.fetch())
    except Exception as e:
        logger.debug(f"Aggregator: task '{task.label}' failed: {e!r}")
        return TaskOutcome(label=task.label, error=e)


async def aggregate(tasks: Sequence[FanOutTask]) -> AggregateResult:
    """Run every task concurrently and collect all outcomes.

    Args:
        tasks: Labelled fetches. Labels must be unique.

    Returns:
        AggregateResult with an entry for every submitted label.

    Raises:
        ValueError: If two tasks share a label.
    """
    labels = [t.label for t in tasks]
    if len(set(labels)) != len(labels):
        raise ValueError(f"duplicate fan-out labels: {labels}")

    outcomes = await asyncio.gather(*(_run(t) for t in tasks))
    result = AggregateResult(outcomes)
    if result.failed:
        logger.info(f"Aggregator: {len(result.ok)}/{len(result)} tasks succeeded, failed: {result.failed}")
    return result


class Aggregator:
    """Object form of ``aggregate`` for injection into modules."""

    async def aggregate(self, tasks: Sequence[FanOutTask]) -> AggregateResult:
        return await aggregate(tasks)
