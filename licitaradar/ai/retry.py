"""Retry policies for AI provider and procurement API calls.

The delay depends on what went wrong, so the policy is a table
``ErrorKind -> tenacity wait strategy``. Errors whose kind has no entry
are not retried.

Default table for the Gemini provider:
- QUOTA (429): fixed 61s, the provider's per-minute quota window
- OVERLOAD (500/502/503/504): exponential 2s, 4s, 8s...
- NETWORK (timeouts, connection errors): exponential as well
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
    wait_fixed,
)
from tenacity.wait import wait_base

from licitaradar.core.exceptions import OperationAborted
from licitaradar.core.logging import get_logger

logger = get_logger("ai.retry")

OVERLOAD_STATUS_CODES = frozenset({500, 502, 503, 504})
QUOTA_STATUS_CODE = 429


class ErrorKind(Enum):
    """Retry classification of a failed call."""

    QUOTA = "quota"
    OVERLOAD = "overload"
    NETWORK = "network"
    FATAL = "fatal"


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception to its retry classification.

    Provider errors carry ``status_code``; transport problems are
    recognised by type.
    """
    status = getattr(exc, "status_code", None)
    if status == QUOTA_STATUS_CODE:
        return ErrorKind.QUOTA
    if status in OVERLOAD_STATUS_CODES:
        return ErrorKind.OVERLOAD
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.NETWORK
    return ErrorKind.FATAL


Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """Bounded retry with a per-error-kind delay table."""

    def __init__(
        self,
        waits: Dict[ErrorKind, wait_base],
        max_attempts: int = 3,
        classify: Callable[[BaseException], ErrorKind] = classify_error,
        sleep: Optional[Sleep] = None,
        name: str = "retry",
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._waits = dict(waits)
        self._max_attempts = max_attempts
        self._classify = classify
        self._sleep = sleep
        self._logger = get_logger(f"ai.retry.{name}")

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def is_retryable(self, exc: BaseException) -> bool:
        return self._classify(exc) in self._waits

    def _wait(self, retry_state) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is None:
            return 0.0
        strategy = self._waits.get(self._classify(exc))
        return strategy(retry_state) if strategy else 0.0

    def retrying(self, stop_event: Optional[asyncio.Event] = None) -> AsyncRetrying:
        """Build a fresh tenacity controller for one logical call.

        With ``stop_event``, no further attempt is made once the event is set.
        """
        stop = stop_after_attempt(self._max_attempts)
        if stop_event is not None:
            stop = stop | stop_when_event_set(stop_event)
        kwargs: Dict[str, Any] = dict(
            stop=stop,
            wait=self._wait,
            retry=retry_if_exception(self.is_retryable),
            before_sleep=before_sleep_log(self._logger, logging.WARNING),
            reraise=True,
        )
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return AsyncRetrying(**kwargs)

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run ``fn`` under this policy; the last error is re-raised."""
        return await self.retrying()(fn, *args, **kwargs)

    async def call_cancellable(
        self,
        abort: Optional[asyncio.Event],
        fn: Callable[..., Awaitable[Any]],
        *args,
        **kwargs,
    ) -> Any:
        """Like ``call``, but give up as soon as ``abort`` is set.

        The attempt in flight (or the backoff sleep) is cancelled and no
        further attempt is made.

        Raises:
            OperationAborted: If ``abort`` is set before the call completes
        """
        if abort is None:
            return await self.call(fn, *args, **kwargs)
        if abort.is_set():
            raise OperationAborted("Operação interrompida antes da chamada")

        task = asyncio.ensure_future(self.retrying(stop_event=abort)(fn, *args, **kwargs))
        waiter = asyncio.ensure_future(abort.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if task.cancelled():
            self._logger.info("Chamada cancelada por interrupção")
            raise OperationAborted("Operação interrompida durante a chamada")
        try:
            return task.result()
        except Exception as e:
            if abort.is_set():
                raise OperationAborted("Operação interrompida durante a chamada") from e
            raise


def ai_retry_policy(
    max_attempts: int = 3,
    backoff_base: float = 2.0,
    quota_delay: float = 61.0,
    sleep: Optional[Sleep] = None,
) -> RetryPolicy:
    """Retry policy for generative-model calls."""
    exponential = wait_exponential(multiplier=backoff_base, max=60)
    return RetryPolicy(
        waits={
            ErrorKind.QUOTA: wait_fixed(quota_delay),
            ErrorKind.OVERLOAD: exponential,
            ErrorKind.NETWORK: exponential,
        },
        max_attempts=max_attempts,
        sleep=sleep,
        name="llm",
    )


def _classify_fetch_error(exc: BaseException) -> ErrorKind:
    # Any HTTP or decoding problem on the procurement API is worth another try
    if isinstance(exc, (httpx.HTTPError, ValueError, asyncio.TimeoutError)):
        return ErrorKind.NETWORK
    return ErrorKind.FATAL


def fetch_retry_policy(
    max_attempts: int = 3,
    delay: float = 5.0,
    sleep: Optional[Sleep] = None,
) -> RetryPolicy:
    """Fixed-delay retry policy for procurement API page fetches."""
    return RetryPolicy(
        waits={ErrorKind.NETWORK: wait_fixed(delay)},
        max_attempts=max_attempts,
        classify=_classify_fetch_error,
        sleep=sleep,
        name="pncp",
    )
