"""Bounded fan-out of independent units of work over a thread pool.

Each unit runs at most once. Results come back in input order regardless of
completion order, and a unit's exception is captured into its result rather
than escaping the run.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

U = TypeVar("U")
T = TypeVar("T")

# How often the coordinator looks at the cancel event while units are running.
_POLL_INTERVAL_SECONDS = 0.05


@dataclass(frozen=True, slots=True)
class UnitResult(Generic[U, T]):
    unit: U
    value: T | None = None
    error: BaseException | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and self.error is None


def _call(
    work: Callable[[U, threading.Event], T], unit: U, cancel: threading.Event
) -> UnitResult[U, T]:
    if cancel.is_set():
        return UnitResult(unit=unit, cancelled=True)
    try:
        value = work(unit, cancel)
    except Exception as e:
        logger.warning("Unit of work failed", extra={"unit": str(unit), "error": str(e)})
        return UnitResult(unit=unit, error=e)
    return UnitResult(unit=unit, value=value)


def run(
    units: Iterable[U],
    work: Callable[[U, threading.Event], T],
    *,
    concurrency_limit: int,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> list[UnitResult[U, T]]:
    """Apply `work` to every unit with at most `concurrency_limit` in flight.

    `work` receives the unit and the shared cancel event; long-running work
    should check the event between steps.

    When `timeout` elapses or `cancel` is set, the event is set for everyone,
    units that have not started are reported as cancelled and in-flight units
    are abandoned without waiting. Results that finished before that point
    are kept.
    """

    if concurrency_limit < 1:
        raise ValueError("concurrency_limit must be at least 1")

    items = list(units)
    if not items:
        return []

    cancel = cancel or threading.Event()
    results: list[UnitResult[U, T] | None] = [None] * len(items)
    deadline = None if timeout is None else time.monotonic() + timeout

    executor = ThreadPoolExecutor(
        max_workers=min(concurrency_limit, len(items)), thread_name_prefix="mure"
    )
    futures: dict[Future[UnitResult[U, T]], int] = {
        executor.submit(_call, work, unit, cancel): index for index, unit in enumerate(items)
    }
    pending = set(futures)
    try:
        while pending:
            if cancel.is_set():
                logger.info("Run cancelled", extra={"pending": len(pending)})
                break
            wait_for = _POLL_INTERVAL_SECONDS
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(
                        "Run timed out", extra={"timeout": timeout, "pending": len(pending)}
                    )
                    cancel.set()
                    break
                wait_for = min(wait_for, remaining)
            done, pending = wait(pending, timeout=wait_for, return_when=FIRST_COMPLETED)
            for future in done:
                results[futures[future]] = future.result()
    finally:
        if pending:
            cancel.set()
        executor.shutdown(wait=not pending, cancel_futures=True)

    for future in pending:
        index = futures[future]
        if future.done() and not future.cancelled():
            results[index] = future.result()
        else:
            results[index] = UnitResult(unit=items[index], cancelled=True)

    return [r for r in results if r is not None]
