#!/usr/bin/env python3
"""Resilience Patterns for the Thing to SiteWise synchronizer.

This module provides the resilience building blocks shared by the aligner
and the exporter:
    - Retry policies (fixed delay with jitter, optional exponential growth)
    - Inline retry of an async call under a policy
    - Polling a resource until it reaches a terminal state
    - A bounded task pool with an explicit join barrier

Example:
    # Retry a throttled call
    series = await retry_async(
        source.fetch_series_by_thing,
        thing_id, start, end, 300,
        policy=RATE_LIMIT_RETRY,
    )

    # Wait for a model to become ACTIVE
    model = await poll_until(
        lambda: store.describe_model(model_id),
        lambda m: m.is_active,
        policy=MODEL_ACTIVE_POLL,
        description=f"model {model_id}",
    )

    # Fan out with bounded concurrency
    async with BoundedTaskPool(max_concurrent=6) as pool:
        for thing in things:
            await pool.submit(align_asset, thing, label=thing.id)
        results, errors = await pool.join()
"""
import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Retry Policies
# ============================================

@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try something and how long to wait in between.

    The delay before retry ``n`` (1-based) is
    ``initial_delay * backoff_factor ** (n - 1)`` capped at ``max_delay``,
    plus a uniformly random jitter in ``[0, jitter]`` seconds. A
    backoff_factor of 1.0 gives a fixed delay.

    Attributes:
        max_attempts: Total attempts, including the first one
        initial_delay: Base delay in seconds between attempts
        jitter: Upper bound of the random extra delay in seconds
        backoff_factor: Multiplier applied to the delay after each attempt
        max_delay: Maximum delay in seconds between attempts
    """

    max_attempts: int
    initial_delay: float = 1.0
    jitter: float = 0.0
    backoff_factor: float = 1.0
    max_delay: float = 60.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.jitter < 0:
            raise ValueError("delays must not be negative")

    def compute_delay(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        base = self.initial_delay * (self.backoff_factor ** max(attempt - 1, 0))
        base = min(base, self.max_delay)
        if self.jitter:
            base += random.uniform(0, self.jitter)
        return base

    def with_attempts(self, max_attempts: int) -> "RetryPolicy":
        """Copy of this policy with a different attempt bound."""
        return replace(self, max_attempts=max_attempts)


# Wait for a freshly created or updated model to become ACTIVE
MODEL_ACTIVE_POLL = RetryPolicy(max_attempts=5, initial_delay=1.0)

# Wait for a freshly created asset to become ACTIVE
ASSET_ACTIVE_POLL = RetryPolicy(max_attempts=10, initial_delay=1.0)

# Retry sample fetches throttled by the IoT API (fixed delay, no growth)
RATE_LIMIT_RETRY = RetryPolicy(max_attempts=5, initial_delay=1.0, jitter=0.5)

DEFAULT_RETRYABLE_EXCEPTIONS = (RateLimitError,)


# ============================================
# Retry
# ============================================

async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    policy: RetryPolicy = RATE_LIMIT_RETRY,
    retryable_exceptions: tuple = DEFAULT_RETRYABLE_EXCEPTIONS,
    **kwargs,
) -> T:
    """Retry an async function call under a retry policy.

    Only exceptions listed in ``retryable_exceptions`` are retried; anything
    else propagates immediately. When the policy is exhausted, the last
    retryable exception propagates.

    Args:
        func: Async function to call
        *args: Arguments to pass to func
        policy: Attempt bound and delay schedule
        retryable_exceptions: Exceptions to retry on
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result from func
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except retryable_exceptions as e:
            if attempt >= policy.max_attempts:
                logger.error(
                    f"All {policy.max_attempts} attempts failed. Last error: {e}"
                )
                raise

            delay = policy.compute_delay(attempt)
            logger.warning(
                f"Retry {attempt}/{policy.max_attempts}: {e}. Waiting {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    policy: RetryPolicy,
    description: str = "resource",
) -> Optional[T]:
    """Probe a resource until the predicate holds or the policy runs out.

    Errors raised by the probe propagate to the caller. Exhausting the
    policy is not an error: a warning is logged and None is returned so the
    caller can decide how to proceed.

    Args:
        probe: Async callable returning the current state of the resource
        predicate: Returns True once the resource is in the wanted state
        policy: Attempt bound and delay between probes
        description: Human readable name used in log messages

    Returns:
        The first probed value satisfying the predicate, or None
    """
    for attempt in range(1, policy.max_attempts + 1):
        value = await probe()
        if predicate(value):
            logger.debug(f"{description} ready after {attempt} probe(s)")
            return value

        if attempt < policy.max_attempts:
            await asyncio.sleep(policy.compute_delay(attempt))

    logger.warning(
        f"{description} not ready after {policy.max_attempts} probe(s), continuing"
    )
    return None


# ============================================
# Concurrent Processing Patterns
# ============================================

class BoundedTaskPool:
    """Run independent coroutines with a fixed concurrency limit.

    Admission is the back-pressure point: ``submit`` waits for a free slot
    before it creates the task, so the producer never gets more than
    ``max_concurrent`` tasks ahead. A failing task never affects its
    siblings; its exception is kept and returned by ``join``.

    If the coroutine driving the pool is cancelled while waiting in
    ``submit`` or ``join``, every spawned task is cancelled and awaited
    before the cancellation propagates.

    Attributes:
        max_concurrent: Maximum number of tasks running at the same time
        labels: Label of each submitted task, in submission order

    Example:
        async with BoundedTaskPool(max_concurrent=10) as pool:
            for asset in assets:
                await pool.submit(export_asset, asset, label=asset.id)
            results, errors = await pool.join()
    """

    def __init__(self, max_concurrent: int, name: str = "pool"):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.name = name
        self.labels: list[Optional[str]] = []

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: list[asyncio.Task] = []

    async def __aenter__(self) -> "BoundedTaskPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.pending_count:
            await self.cancel()

    @property
    def pending_count(self) -> int:
        """Number of spawned tasks that have not finished yet."""
        return sum(1 for task in self._tasks if not task.done())

    async def submit(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        label: Optional[str] = None,
        **kwargs,
    ) -> asyncio.Task:
        """Wait for a free slot, then start ``func(*args, **kwargs)``."""
        try:
            await self._semaphore.acquire()
        except asyncio.CancelledError:
            await self.cancel()
            raise

        async def run() -> Any:
            try:
                return await func(*args, **kwargs)
            finally:
                self._semaphore.release()

        task = asyncio.create_task(run())
        self._tasks.append(task)
        self.labels.append(label)
        return task

    async def join(self) -> tuple[list[Any], list[Exception]]:
        """Wait for every submitted task.

        Returns:
            Tuple of (successful_results, exceptions), each in submission order
        """
        try:
            outcomes = await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            await self.cancel()
            raise

        results = []
        errors = []
        for label, outcome in zip(self.labels, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.debug(f"{self.name}: task {label} failed: {outcome}")
                errors.append(outcome)
            else:
                results.append(outcome)

        return results, errors

    async def cancel(self) -> None:
        """Cancel every unfinished task and wait for all of them to settle."""
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.debug(f"{self.name}: drained {len(self._tasks)} task(s)")


# ============================================
# Exports
# ============================================

__all__ = [
    # Policies
    "RetryPolicy",
    "MODEL_ACTIVE_POLL",
    "ASSET_ACTIVE_POLL",
    "RATE_LIMIT_RETRY",
    "DEFAULT_RETRYABLE_EXCEPTIONS",
    # Retry / polling
    "retry_async",
    "poll_until",
    # Concurrent Processing
    "BoundedTaskPool",
]
