"""Shared infrastructure: cache, rate limiting, gateway, registry, fan-out."""

from cloudpane.core.aggregator import AggregateResult, Aggregator, FanOutTask, aggregate
from cloudpane.core.cache import TTLCache
from cloudpane.core.gateway import Gateway, RetryPolicy
from cloudpane.core.ratelimit import TokenBucket
from cloudpane.core.registry import ModuleDescriptor, ModuleRegistry

__all__ = [
    "AggregateResult",
    "Aggregator",
    "FanOutTask",
    "Gateway",
    "ModuleDescriptor",
    "ModuleRegistry",
    "RetryPolicy",
    "TTLCache",
    "TokenBucket",
    "aggregate",
]
