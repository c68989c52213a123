"""Bounded-concurrency fan-out over independent partition reads.

Nested enumeration issues one store round-trip per owner. These helpers run
those calls concurrently under a semaphore so that wall-clock latency grows
with ``ceil(owners / limit)`` rather than with the owner count, and apply one
of two explicit failure policies:

``best_effort``
    A failed or timed-out call is recorded under its key and the remaining
    calls run to completion. Callers get the successful values plus the
    failures and mark their result as partial.

``fail_fast``
    The first failure cancels every in-flight sibling and raises
    :class:`~orderhub.app.errors.PartialAggregationFailure`.

Every call is wrapped in :func:`asyncio.wait_for` with the caller-supplied
timeout. Cancelling the caller cancels all in-flight calls.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Hashable, Iterable, TypeVar

from config import FanoutPolicy

from ..errors import PartialAggregationFailure
from ..routes_metrics import partition_failures_total

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class FanoutResult(Generic[K, V]):
    values: dict[K, V] = field(default_factory=dict)
    failures: dict[K, BaseException] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


@dataclass
class FirstHit(Generic[K, V]):
    key: K | None = None
    value: V | None = None
    failures: dict[K, BaseException] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.key is not None


def _record_failure(operation: str, key: Any, exc: BaseException) -> None:
    partition_failures_total.labels(operation=operation).inc()
    logger.warning(
        "%s: partition read for %s failed: %r",
        operation,
        key,
        exc,
        extra={"operation": operation, "owner": str(key)},
    )


async def _drain(tasks: Iterable[asyncio.Future]) -> None:
    leftover = [task for task in tasks if not task.done()]
    for task in leftover:
        task.cancel()
    if leftover:
        await asyncio.gather(*leftover, return_exceptions=True)


async def fan_out(
    keys: Iterable[K],
    call: Callable[[K], Awaitable[V]],
    *,
    limit: int = 8,
    timeout: float | None = None,
    policy: FanoutPolicy = FanoutPolicy.BEST_EFFORT,
    operation: str = "fanout",
) -> FanoutResult[K, V]:
    """Run ``call(key)`` for every key with at most ``limit`` in flight."""

    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(key: K) -> V:
        async with semaphore:
            return await asyncio.wait_for(call(key), timeout)

    tasks: dict[asyncio.Future, K] = {}
    for key in dict.fromkeys(keys):
        tasks[asyncio.ensure_future(run(key))] = key

    result: FanoutResult[K, V] = FanoutResult()
    if not tasks:
        return result

    try:
        pending = set(tasks)
        while pending:
            done, pending = await asyncio.wait(
                pending,
                return_when=asyncio.FIRST_EXCEPTION
                if policy is FanoutPolicy.FAIL_FAST
                else asyncio.ALL_COMPLETED,
            )
            for task in done:
                key = tasks[task]
                exc = task.exception()
                if exc is None:
                    result.values[key] = task.result()
                elif isinstance(exc, Exception):
                    result.failures[key] = exc
                    _record_failure(operation, key, exc)
                else:
                    raise exc
            if result.failures and policy is FanoutPolicy.FAIL_FAST:
                await _drain(pending)
                raise PartialAggregationFailure(
                    {str(k): v for k, v in result.failures.items()}
                )
    finally:
        await _drain(tasks)
    return result


async def first_hit(
    keys: Iterable[K],
    probe: Callable[[K], Awaitable[V | None]],
    *,
    limit: int = 8,
    timeout: float | None = None,
    policy: FanoutPolicy = FanoutPolicy.BEST_EFFORT,
    operation: str = "probe",
) -> FirstHit[K, V]:
    """Return the first key whose ``probe`` yields a value.

    Remaining probes are cancelled as soon as one hits. A miss is a probe
    returning ``None``.
    """

    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(key: K) -> tuple[K, V | None, Exception | None]:
        async with semaphore:
            try:
                return key, await asyncio.wait_for(probe(key), timeout), None
            except Exception as exc:
                return key, None, exc

    tasks = [asyncio.ensure_future(run(key)) for key in dict.fromkeys(keys)]
    hit: FirstHit[K, V] = FirstHit()
    try:
        for next_done in asyncio.as_completed(tasks):
            key, value, exc = await next_done
            if exc is not None:
                hit.failures[key] = exc
                _record_failure(operation, key, exc)
                if policy is FanoutPolicy.FAIL_FAST:
                    raise PartialAggregationFailure({str(key): exc})
                continue
            if value is not None:
                hit.key = key
                hit.value = value
                return hit
    finally:
        await _drain(tasks)
    return hit


__all__ = ["FanoutResult", "FirstHit", "fan_out", "first_hit"]
