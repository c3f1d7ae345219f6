"""Asyncio helpers: logged tasks plus timeout/abort/retry combinators."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .logging_utils import LoggerLike, ensure_structured_logger

T = TypeVar("T")

AbortSignal = Optional[asyncio.Event]


class OperationAborted(Exception):
    """Raised when an abort signal fires while work is still pending."""


def _task_label(task: asyncio.Task[Any], context: Optional[str]) -> str:
    if context:
        return context
    name = task.get_name()
    return name or "background task"


def add_task_exception_logger(
    task: asyncio.Task[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
) -> asyncio.Task[Any]:
    """Ensure task exceptions are retrieved and logged."""
    task_logger = ensure_structured_logger(logger, fallback_name="asyncio")

    def _done(done_task: asyncio.Task[Any]) -> None:
        if done_task.cancelled():
            return
        exc = done_task.exception()
        if exc is not None:
            task_logger.error(
                "Unhandled exception in %s",
                _task_label(done_task, context),
                exc_info=exc,
            )

    task.add_done_callback(_done)
    return task


def create_logged_task(
    coro: Awaitable[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
    pending: Optional[set[asyncio.Task[Any]]] = None,
) -> asyncio.Task[Any]:
    """Create a task that won't lose exceptions, optionally tracking it."""
    task = asyncio.ensure_future(coro)
    if context:
        task.set_name(context)

    add_task_exception_logger(task, logger=logger, context=context)

    if pending is not None:
        pending.add(task)
        task.add_done_callback(pending.discard)

    return task


def raise_if_aborted(abort: AbortSignal, what: str = "operation") -> None:
    if abort is not None and abort.is_set():
        raise OperationAborted(f"{what} aborted")


def _abandon(task: asyncio.Future, on_late_result: Optional[Callable[[Any], None]]) -> None:
    """Detach from ``task``: cancel it, or hand a late result to ``on_late_result``."""

    if on_late_result is None:
        task.cancel()

    def _settled(done: asyncio.Future) -> None:
        if done.cancelled():
            return
        if done.exception() is not None:
            return
        if on_late_result is not None:
            on_late_result(done.result())

    task.add_done_callback(_settled)


async def race_with_timeout(
    work: Awaitable[T],
    timeout: Optional[float],
    *,
    abort: AbortSignal = None,
    on_late_result: Optional[Callable[[T], None]] = None,
    timeout_error: Optional[Callable[[], BaseException]] = None,
    what: str = "operation",
) -> T:
    """Await ``work`` unless ``timeout`` seconds pass or ``abort`` fires first.

    When the race is lost the work is cancelled, unless ``on_late_result`` is
    given: then the work keeps running and its eventual result is passed to
    the hook instead of being adopted (used to release late camera grants).
    """

    task = asyncio.ensure_future(work)
    if abort is not None and abort.is_set():
        _abandon(task, on_late_result)
        raise OperationAborted(f"{what} aborted")

    waiters: set[asyncio.Future] = {task}
    abort_waiter: Optional[asyncio.Future] = None
    if abort is not None:
        abort_waiter = asyncio.ensure_future(abort.wait())
        waiters.add(abort_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        _abandon(task, on_late_result)
        raise
    finally:
        if abort_waiter is not None and not abort_waiter.done():
            abort_waiter.cancel()

    if task in done:
        return task.result()

    _abandon(task, on_late_result)
    if abort_waiter is not None and abort_waiter in done:
        raise OperationAborted(f"{what} aborted")
    if timeout_error is not None:
        raise timeout_error()
    raise asyncio.TimeoutError(f"{what} timed out after {timeout:.3f}s")


async def sleep_or_abort(delay: float, abort: AbortSignal = None) -> None:
    """Sleep for ``delay`` seconds, raising OperationAborted if aborted first."""
    if abort is None:
        await asyncio.sleep(delay)
        return
    raise_if_aborted(abort, "sleep")
    try:
        await asyncio.wait_for(abort.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise OperationAborted("sleep aborted")


async def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    *,
    interval: float = 0.1,
    abort: AbortSignal = None,
) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds elapse."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if predicate():
            return True
        remaining = deadline - loop.time()
        if remaining <= 0:
            return False
        await sleep_or_abort(min(interval, remaining), abort)


async def retry_with_backoff(
    operation: Callable[[int], Awaitable[T]],
    *,
    deadline: float,
    initial_delay: float = 0.5,
    max_delay: float = 8.0,
    abort: AbortSignal = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    deadline_error: Optional[Callable[[Optional[BaseException]], BaseException]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Run ``operation(attempt)`` until it succeeds or ``deadline`` seconds pass.

    Each attempt is bounded by the remaining budget. Delays double from
    ``initial_delay`` up to ``max_delay``. Aborts propagate immediately.
    """

    started = clock()
    attempt = 0
    last_error: Optional[BaseException] = None
    while True:
        remaining = deadline - (clock() - started)
        if remaining <= 0:
            break
        attempt += 1
        try:
            return await race_with_timeout(operation(attempt), remaining, abort=abort, what="attempt")
        except OperationAborted:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = exc

        delay = min(initial_delay * (2 ** (attempt - 1)), max_delay)
        remaining = deadline - (clock() - started)
        if remaining <= 0:
            break
        delay = min(delay, remaining)
        if on_retry is not None:
            on_retry(attempt, last_error, delay)
        await sleep_or_abort(delay, abort)

    if deadline_error is not None:
        raise deadline_error(last_error) from last_error
    raise asyncio.TimeoutError(f"retry deadline of {deadline:.1f}s exceeded") from last_error


async def cancel_and_wait(task: Optional[asyncio.Task[Any]]) -> None:
    """Cancel ``task`` and wait for it to unwind."""
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


__all__ = [
    "AbortSignal",
    "OperationAborted",
    "add_task_exception_logger",
    "cancel_and_wait",
    "create_logged_task",
    "race_with_timeout",
    "raise_if_aborted",
    "retry_with_backoff",
    "sleep_or_abort",
    "wait_until",
]
