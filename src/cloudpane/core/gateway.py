"""Rate-limited, retrying gateway for every outbound call.

Every remote operation issued by a module goes through a single Gateway:

- Admission: one shared token bucket. Each *attempt* takes a token, so
  retries are rate limited too.
- Retry: transient failures (transport errors, timeouts, 429 and 5xx by
  default) are retried with exponential backoff. Anything else fails on the
  first attempt.
- Failure: after the last attempt the caller gets the last error. Nothing
  here terminates the process.

Usage:
    gateway = Gateway(limiter=TokenBucket(10, 20), policy=RetryPolicy())

    # Any zero-argument coroutine function
    result = await gateway.execute(lambda: client.list_things())

    # Or a JSON request through the shared httpx client
    data = await gateway.get_json("https://redis.googleapis.com/v1/...")
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from cloudpane.core.auth import CredentialProvider, StaticCredentials
from cloudpane.core.errors import RemoteError, RemoteStatusError, TransientRemoteError
from cloudpane.core.ratelimit import TokenBucket

logger = logging.getLogger(__name__)

T = TypeVar("T")

StatusClassifier = Callable[[int], bool]

USER_AGENT = "cloudpane/0.1"


def is_retryable_status(status: int) -> bool:
    """Default classifier: rate limiting and server errors are transient."""
    return status == 429 or status >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings applied to each logical call.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay in seconds after the first failed attempt.
        multiplier: Growth factor per further attempt.
        max_delay: Upper bound for a single delay.
        jitter: Extra random delay as a fraction of the computed delay.
    """

    max_attempts: int = 4
    base_delay: float = 0.1
    multiplier: float = 2.0
    max_delay: float = 5.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (0-based) failed attempt."""
        wait = min(self.max_delay, self.base_delay * (self.multiplier**attempt))
        if self.jitter:
            wait += random.uniform(0, self.jitter * wait)
        return wait


def _error_message(response: httpx.Response) -> str:
    """Best-effort message from a Google-style error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"HTTP {response.status_code}: {error['message']}"
    return f"HTTP {response.status_code}"


class Gateway:
    """Admission control plus retry around outbound calls.

    The limiter is the only mutable state and it synchronizes itself, so one
    Gateway is safely shared by every module and every in-flight worker.
    """

    def __init__(
        self,
        limiter: Optional[TokenBucket] = None,
        policy: Optional[RetryPolicy] = None,
        credentials: Optional[CredentialProvider] = None,
        timeout: Optional[float] = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the gateway.

        Args:
            limiter: Shared token bucket (defaults to 10/s, burst 20).
            policy: Retry policy (defaults to 4 attempts, 100ms base).
            credentials: Bearer token source for ``request``.
            timeout: Per-attempt timeout in seconds, None to disable.
            client: HTTP client; created lazily when omitted.
            sleep: Backoff sleep, replaceable in tests.
        """
        self.limiter = limiter or TokenBucket()
        self.policy = policy or RetryPolicy()
        self.credentials = credentials or StaticCredentials()
        self.timeout = timeout
        self._client = client
        self._sleep = sleep

    async def __aenter__(self) -> "Gateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client, if one was created."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _is_transient(self, error: BaseException, classify: StatusClassifier) -> bool:
        if isinstance(error, RemoteError) and error.status is not None:
            return classify(error.status)
        if isinstance(error, httpx.HTTPStatusError):
            return classify(error.response.status_code)
        return isinstance(
            error,
            (TransientRemoteError, httpx.TransportError, TimeoutError, ConnectionError),
        )

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        *,
        retryable: Optional[StatusClassifier] = None,
        timeout: Optional[float] = None,
    ) -> T:
        """Run one logical call with admission control and retry.

        Args:
            call: Zero-argument coroutine function doing one remote operation.
            retryable: Which statuses count as transient (default 429/5xx).
            timeout: Per-attempt timeout override in seconds.

        Returns:
            Whatever ``call`` returns on its first successful attempt.

        Raises:
            RemoteError: The last remote error once retries are exhausted.
            TransientRemoteError: Retries exhausted on a transport failure
                or timeout (the original error is chained as ``__cause__``).
            Exception: Any non-transient error, raised on the first attempt.
        """
        classify = retryable or is_retryable_status
        limit = self.timeout if timeout is None else timeout
        attempts = self.policy.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            await self.limiter.acquire()
            try:
                if limit:
                    return await asyncio.wait_for(call(), timeout=limit)
                return await call()
            except Exception as e:
                last_error = e
                if not self._is_transient(e, classify):
                    logger.debug(f"Gateway: non-transient failure, not retrying: {e!r}")
                    raise
                if attempt < attempts - 1:
                    wait = self.policy.delay(attempt)
                    logger.debug(
                        f"Gateway: attempt {attempt + 1}/{attempts} failed, "
                        f"retrying in {wait:.2f}s: {e!r}"
                    )
                    await self._sleep(wait)

        logger.warning(f"Gateway: giving up after {attempts} attempts: {last_error!r}")
        if isinstance(last_error, RemoteError):
            raise last_error
        raise TransientRemoteError(
            f"{type(last_error).__name__}: {last_error}", attempts=attempts
        ) from last_error

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        retryable: Optional[StatusClassifier] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Send one authenticated HTTP request through ``execute``.

        Non-2xx responses raise RemoteStatusError so the retry classifier
        sees the status.
        """
        client = self._ensure_client()
        headers: dict[str, str] = {}
        token = await self.credentials.token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        async def call() -> httpx.Response:
            response = await client.request(method, url, params=params, json=json, headers=headers)
            if response.status_code >= 400:
                raise RemoteStatusError(response.status_code, _error_message(response))
            return response

        return await self.execute(call, retryable=retryable, timeout=timeout)

    async def get_json(self, url: str, params: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        """GET a URL and decode the JSON body."""
        response = await self.request("GET", url, params=params, **kwargs)
        return response.json() if response.content else {}

    async def post_json(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        """POST a JSON body and decode the JSON reply."""
        response = await self.request("POST", url, json=body, **kwargs)
        return response.json() if response.content else {}
