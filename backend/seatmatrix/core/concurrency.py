"""Bounded fan-out of remote calls with cooperative cancellation.

Matrix building and availability checks both issue dozens to hundreds of
requests against the railway API. ``ConcurrencyPool`` runs them through a
fixed number of workers reading from a shared queue, so at most
``max_concurrent`` calls are ever outstanding. ``CancelToken`` is checked
before every dispatch and is handed to each unit so that in-flight calls can
be aborted as well.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Iterable
from contextlib import suppress
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from seatmatrix.core.errors import Canceled

logger = structlog.get_logger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

UnitDoneCallback = Callable[[int, int], None]


class CancelToken:
    """Shared cancellation flag for one long-running operation.

    Example:
        >>> token = CancelToken()
        >>> token.cancelled
        False
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise Canceled if the token has been cancelled."""
        if self._event.is_set():
            raise Canceled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token is cancelled first.

        If cancellation wins the race, the in-flight call is cancelled and
        ``Canceled`` is raised.

        Args:
            awaitable: The call to run (usually an httpx request)

        Returns:
            The awaitable's result

        Raises:
            Canceled: If the token was cancelled before or during the call
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        if task.cancelled():
            raise Canceled()
        return task.result()


@dataclass(frozen=True)
class PoolUnit(Generic[K, T]):
    """One unit of work, addressed by ``key`` rather than by position."""

    key: K
    call: Callable[[CancelToken], Awaitable[T]]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Settled result of a unit: either a value or the exception it raised."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrencyPool:
    """
    Run units with at most ``max_concurrent`` of them in flight.

    A failing unit never stops its siblings; its exception is recorded in its
    ``Outcome``. Two things stop dispatching new units: the cancel token
    (the run then raises ``Canceled`` and partial results are dropped), and a
    unit failing with one of the ``abort_on`` exception types (the run waits
    for in-flight units and re-raises that first exception).

    Attributes:
        max_concurrent: Worker count
        peak_in_flight: Highest number of simultaneously running units seen
            during the last run
    """

    def __init__(self, max_concurrent: int = 10) -> None:
        if max_concurrent < 1:
            msg = f"max_concurrent must be at least 1, got {max_concurrent}"
            raise ValueError(msg)
        self.max_concurrent = max_concurrent
        self.peak_in_flight = 0
        self._in_flight = 0

    async def run(
        self,
        units: Iterable[PoolUnit[K, T]],
        *,
        on_unit_done: UnitDoneCallback | None = None,
        cancel_token: CancelToken | None = None,
        abort_on: tuple[type[Exception], ...] = (),
    ) -> dict[K, Outcome[T]]:
        """
        Run every unit and return one Outcome per unit key.

        Args:
            units: Units to run; keys must be unique
            on_unit_done: Called with (done_count, total) after each unit settles
            cancel_token: Shared token checked before each dispatch
            abort_on: Exception types that stop further dispatching

        Returns:
            Mapping of unit key to Outcome

        Raises:
            Canceled: If the token was cancelled during the run
            Exception: The first ``abort_on`` failure, after in-flight units settle
        """
        token = cancel_token or CancelToken()
        queue: asyncio.Queue[PoolUnit[K, T]] = asyncio.Queue()
        for unit in units:
            queue.put_nowait(unit)

        total = queue.qsize()
        outcomes: dict[K, Outcome[T]] = {}
        done_count = 0
        abort_error: Exception | None = None
        self.peak_in_flight = 0
        self._in_flight = 0

        async def worker() -> None:
            nonlocal done_count, abort_error
            while True:
                try:
                    unit = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if token.cancelled or abort_error is not None:
                    continue  # Skipped: never dispatched

                self._in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
                try:
                    value = await unit.call(token)
                except Exception as e:  # noqa: BLE001  # Failure is recorded, siblings keep running
                    outcomes[unit.key] = Outcome(error=e)
                    if abort_on and isinstance(e, abort_on) and abort_error is None:
                        abort_error = e
                        logger.warning("pool_dispatch_aborted", key=str(unit.key), error=str(e))
                else:
                    outcomes[unit.key] = Outcome(value=value)
                finally:
                    self._in_flight -= 1

                done_count += 1
                if on_unit_done:
                    on_unit_done(done_count, total)

        workers = [asyncio.create_task(worker()) for _ in range(min(self.max_concurrent, total))]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                task.cancel()

        failed = sum(1 for outcome in outcomes.values() if not outcome.ok)
        logger.debug(
            "pool_run_complete",
            total=total,
            settled=len(outcomes),
            failed=failed,
            skipped=total - len(outcomes),
            peak_in_flight=self.peak_in_flight,
        )

        token.raise_if_cancelled()
        if abort_error is not None:
            raise abort_error
        return outcomes
