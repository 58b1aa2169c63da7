from __future__ import annotations

import httpx
import pytest

from cloudpane.core.auth import StaticCredentials
from cloudpane.core.errors import RemoteStatusError, TransientRemoteError
from cloudpane.core.gateway import Gateway, RetryPolicy, is_retryable_status
from cloudpane.core.ratelimit import TokenBucket


class FrozenClock:
    def __call__(self) -> float:
        return 0.0


def make_gateway(policy: RetryPolicy | None = None, **kwargs) -> tuple[Gateway, list[float]]:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    kwargs.setdefault("limiter", TokenBucket(rate=1, capacity=20, clock=FrozenClock()))
    gateway = Gateway(policy=policy or RetryPolicy(), timeout=None, sleep=fake_sleep, **kwargs)
    return gateway, sleeps


def test_retryable_status_classification() -> None:
    assert is_retryable_status(429)
    assert is_retryable_status(503)
    assert not is_retryable_status(404)
    assert not is_retryable_status(403)


def test_backoff_is_exponential_and_capped() -> None:
    policy = RetryPolicy(base_delay=0.1, multiplier=2.0, max_delay=0.3)
    assert policy.delay(0) == pytest.approx(0.1)
    assert policy.delay(1) == pytest.approx(0.2)
    assert policy.delay(2) == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_two_transient_failures_then_success() -> None:
    gateway, sleeps = make_gateway()
    calls = 0

    async def call() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise RemoteStatusError(503)
        return "ok"

    assert await gateway.execute(call) == "ok"
    assert calls == 3
    assert sleeps == [pytest.approx(0.1), pytest.approx(0.2)]


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error() -> None:
    gateway, _ = make_gateway()
    calls = 0

    async def call() -> None:
        nonlocal calls
        calls += 1
        raise RemoteStatusError(500, f"boom {calls}")

    with pytest.raises(RemoteStatusError) as exc_info:
        await gateway.execute(call)

    assert calls == 4
    assert str(exc_info.value) == "boom 4"


@pytest.mark.asyncio
async def test_non_transient_error_is_not_retried() -> None:
    gateway, sleeps = make_gateway()
    calls = 0

    async def call() -> None:
        nonlocal calls
        calls += 1
        raise RemoteStatusError(403, "denied")

    with pytest.raises(RemoteStatusError):
        await gateway.execute(call)

    assert calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_transport_errors_wrap_after_exhaustion() -> None:
    gateway, _ = make_gateway()

    async def call() -> None:
        raise httpx.ConnectError("unreachable")

    with pytest.raises(TransientRemoteError) as exc_info:
        await gateway.execute(call)

    assert exc_info.value.attempts == 4
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_every_attempt_takes_a_token() -> None:
    bucket = TokenBucket(rate=1, capacity=10, clock=FrozenClock())
    gateway, _ = make_gateway(limiter=bucket)
    calls = 0

    async def call() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise RemoteStatusError(429)
        return "ok"

    await gateway.execute(call)
    assert bucket.tokens == pytest.approx(7.0)


@pytest.mark.asyncio
async def test_custom_classifier() -> None:
    gateway, _ = make_gateway()
    calls = 0

    async def call() -> None:
        nonlocal calls
        calls += 1
        raise RemoteStatusError(503)

    with pytest.raises(RemoteStatusError):
        await gateway.execute(call, retryable=lambda status: False)
    assert calls == 1


@pytest.mark.asyncio
async def test_request_retries_server_errors_and_sends_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if len(seen) == 1:
            return httpx.Response(503, json={"error": {"message": "try later"}})
        return httpx.Response(200, json={"items": [1, 2]})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gateway, _ = make_gateway(client=client, credentials=StaticCredentials("secret"))

    async with gateway:
        data = await gateway.get_json("https://example.test/v1/things", params={"pageSize": 2})

    assert data == {"items": [1, 2]}
    assert len(seen) == 2
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert seen[0].url.params["pageSize"] == "2"


@pytest.mark.asyncio
async def test_request_client_error_carries_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"message": "not found"}})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gateway, _ = make_gateway(client=client)

    with pytest.raises(RemoteStatusError) as exc_info:
        await gateway.request("GET", "https://example.test/v1/missing")
    assert exc_info.value.status == 404
    await gateway.aclose()


@pytest.mark.asyncio
async def test_three_attempt_policy() -> None:
    gateway, _ = make_gateway(policy=RetryPolicy(max_attempts=3))
    calls = 0

    async def flaky() -> str:
        nonlocal calls
        calls += 1
        if calls <= 2:
            raise RemoteStatusError(502)
        return "ok"

    assert await gateway.execute(flaky) == "ok"
    assert calls == 3

    calls = 0

    async def broken() -> None:
        nonlocal calls
        calls += 1
        raise RemoteStatusError(503, f"attempt {calls}")

    with pytest.raises(RemoteStatusError, match="attempt 3"):
        await gateway.execute(broken)
    assert calls == 3
