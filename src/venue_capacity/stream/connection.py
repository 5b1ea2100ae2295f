"""
Connection Manager
==================

Owns the live-update subscription lifecycle for one entity.

This module provides the ConnectionManager class which:
    - Subscribes to the LiveSource and forwards pushed samples
    - Detects failure (subscribe error, transport error callback,
      optional staleness timeout)
    - Reconnects with exponential backoff plus jitter
    - Activates the FallbackPoller whenever the push channel is not live
    - Gives up after ``max_retries`` and reports ReconnectExhausted

Backoff:
    delay(attempt) = min(base_delay * 2**attempt, max_delay) + U(0, max_jitter)

Design Rules:
    - Only one reconnect loop in flight; extra requests are no-ops
    - Every timer is an asyncio task and is cancelled by stop()
    - Exhaustion is terminal until reset() is called
"""

import asyncio
import logging
import random
import time
from typing import Any, Callable, Optional

from venue_capacity.errors import ReconnectExhausted, TransientFetchError
from venue_capacity.models.connection import ConnectionPhase, ConnectionState
from venue_capacity.models.sample import Sample
from venue_capacity.stream.poller import FallbackPoller
from venue_capacity.stream.sources import LiveSource, SampleCallback


logger = logging.getLogger(__name__)


def compute_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    max_jitter: float = 1.0,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Reconnect delay in seconds for a zero-based attempt number.

    The result lies in [min(base*2^n, max), min(base*2^n, max) + max_jitter].
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    # Cap the exponent so huge attempt numbers cannot overflow
    exponential = base_delay * (2 ** min(attempt, 32))
    jitter = (rng or random).uniform(0.0, max_jitter) if max_jitter > 0 else 0.0
    return min(exponential, max_delay) + jitter


class ConnectionManager:
    """
    Push-subscription state machine with backoff and poll fallback.

    Attributes:
        entity_id: Monitored entity
        source: Live data source
        poller: Fallback poller to activate/relax (optional)
        state: Current ConnectionState snapshot

    Example:
        manager = ConnectionManager(
            "event-42", live_source, monitor.ingest,
            poller=poller, on_exhausted=monitor.report_connection_failure,
        )
        await manager.start()
        ...
        await manager.stop()
    """

    def __init__(
        self,
        entity_id: str,
        source: LiveSource,
        on_sample: SampleCallback,
        poller: Optional[FallbackPoller] = None,
        on_exhausted: Optional[Callable[[ReconnectExhausted], None]] = None,
        on_live: Optional[Callable[[], None]] = None,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_jitter: float = 1.0,
        max_retries: int = 5,
        stale_after: Optional[float] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        errors = []
        if base_delay <= 0:
            errors.append(f"base_delay must be > 0, got {base_delay}")
        if max_delay < base_delay:
            errors.append(f"max_delay must be >= base_delay, got {max_delay}")
        if max_jitter < 0:
            errors.append(f"max_jitter must be >= 0, got {max_jitter}")
        if max_retries < 0:
            errors.append(f"max_retries must be >= 0, got {max_retries}")
        if stale_after is not None and stale_after <= 0:
            errors.append(f"stale_after must be > 0, got {stale_after}")
        if errors:
            raise ValueError("Connection parameter validation failed:\n" + "\n".join(errors))

        self.entity_id = entity_id
        self.source = source
        self.poller = poller
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_jitter = max_jitter
        self.max_retries = max_retries
        self.stale_after = stale_after

        self._on_sample = on_sample
        self._on_exhausted = on_exhausted
        self._on_live = on_live
        self._rng = rng or random.Random()
        self._clock = clock

        self._state = ConnectionState()
        self._handle: Any = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._stop_event: asyncio.Event = asyncio.Event()
        self._stopped: bool = False
        self._last_push_at: Optional[float] = None
        self.reconnect_count: int = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def phase(self) -> ConnectionPhase:
        return self._state.phase

    @property
    def reconnect_in_flight(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Open the first subscription.

        On failure the manager moves to DEGRADED and schedules a
        reconnect instead of raising.
        """
        self._stopped = False
        self._stop_event.clear()
        self._set_state(ConnectionPhase.CONNECTING)
        if self.poller is not None:
            # Until the push channel is confirmed, the poller carries the data
            self.poller.activate()

        try:
            await self._subscribe()
        except TransientFetchError as e:
            logger.warning(f"[{self.entity_id}] initial subscribe failed: {e}")
            self._degrade()
            return

        self._go_live()

    async def stop(self) -> None:
        """
        Unsubscribe and cancel every pending timer.

        Signals the reconnect loop to exit and closes the subscription.
        """
        self._stopped = True
        self._stop_event.set()

        for task in (self._reconnect_task, self._watchdog_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reconnect_task = None
        self._watchdog_task = None

        await self._unsubscribe()
        logger.info(f"[{self.entity_id}] connection manager stopped")

    def reset(self) -> bool:
        """
        Clear exhaustion and restart reconnection (external intervention).

        Returns:
            True if retries were restarted, False if the manager is
            stopped or not exhausted
        """
        if self._stopped or not self._state.exhausted:
            return False
        logger.info(f"[{self.entity_id}] connection reset requested")
        self._state = ConnectionState(phase=ConnectionPhase.DEGRADED)
        return self.request_reconnect()

    # -------------------------------------------------------------------------
    # Failure handling
    # -------------------------------------------------------------------------

    def report_failure(self, error: Exception) -> None:
        """
        Transport error or timeout on the push channel.

        Safe to call from source callbacks; repeated reports while a
        reconnect is pending are no-ops.
        """
        if self._stopped:
            return
        if self._state.phase in (ConnectionPhase.LIVE, ConnectionPhase.CONNECTING):
            logger.warning(f"[{self.entity_id}] live channel failed: {error}")
            self._degrade()
        else:
            logger.debug(f"[{self.entity_id}] failure while {self._state.phase.value}: {error}")

    def request_reconnect(self) -> bool:
        """
        Schedule the reconnect loop.

        Returns:
            True if a new loop was started, False if one is already in
            flight, the manager is stopped or retries are exhausted.
        """
        if self._stopped or self._state.exhausted or self.reconnect_in_flight:
            return False
        self._reconnect_task = asyncio.create_task(
            self._reconnect_loop(),
            name=f"reconnect:{self.entity_id}",
        )
        return True

    def next_delay(self, attempt: int) -> float:
        """Backoff delay for the given zero-based attempt."""
        return compute_backoff(
            attempt,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            max_jitter=self.max_jitter,
            rng=self._rng,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _handle_push(self, sample: Sample) -> None:
        self._last_push_at = self._clock()
        self._on_sample(sample)

    async def _subscribe(self) -> None:
        await self._unsubscribe()
        self._handle = await self.source.subscribe(
            self.entity_id,
            self._handle_push,
            self.report_failure,
        )

    async def _unsubscribe(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self.source.unsubscribe(handle)
        except TransientFetchError as e:
            logger.debug(f"[{self.entity_id}] unsubscribe failed: {e}")

    def _go_live(self) -> None:
        self._set_state(ConnectionPhase.LIVE)
        self._last_push_at = self._clock()
        logger.info(f"[{self.entity_id}] live updates connected")

        if self.poller is not None:
            self.poller.relax()
        if self.stale_after is not None:
            if self._watchdog_task is not None and not self._watchdog_task.done():
                self._watchdog_task.cancel()
            self._watchdog_task = asyncio.create_task(
                self._watchdog(),
                name=f"stale_watchdog:{self.entity_id}",
            )
        if self._on_live is not None:
            self._on_live()

    def _degrade(self) -> None:
        self._set_state(ConnectionPhase.DEGRADED, attempt=self._state.attempt)
        if self.poller is not None:
            self.poller.activate()
        self.request_reconnect()

    async def _reconnect_loop(self) -> None:
        attempt = self._state.attempt

        while attempt < self.max_retries and not self._stopped:
            delay = self.next_delay(attempt)
            self._set_state(
                ConnectionPhase.RECONNECTING,
                attempt=attempt,
                next_retry_at=self._clock() + delay,
            )
            logger.info(
                f"[{self.entity_id}] reconnecting in {delay:.1f}s "
                f"(attempt {attempt + 1}/{self.max_retries})"
            )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                return
            except asyncio.TimeoutError:
                pass

            attempt += 1
            self.reconnect_count += 1
            self._set_state(ConnectionPhase.RECONNECTING, attempt=attempt)

            try:
                await self._subscribe()
            except TransientFetchError as e:
                logger.warning(f"[{self.entity_id}] reconnect attempt {attempt} failed: {e}")
                continue

            self._go_live()
            return

        if self._stopped:
            return

        self._state = ConnectionState(
            phase=ConnectionPhase.DEGRADED,
            attempt=attempt,
            exhausted=True,
        )
        error = ReconnectExhausted(self.entity_id, attempt)
        logger.error(f"[{self.entity_id}] {error}")
        if self._on_exhausted is not None:
            self._on_exhausted(error)

    async def _watchdog(self) -> None:
        while not self._stopped and self._state.is_live:
            await asyncio.sleep(self.stale_after)
            if not self._state.is_live:
                return
            silence = self._clock() - (self._last_push_at or 0.0)
            if silence >= self.stale_after:
                self.report_failure(
                    TimeoutError(f"no live data for {silence:.0f}s")
                )
                return

    def _set_state(
        self,
        phase: ConnectionPhase,
        attempt: int = 0,
        next_retry_at: Optional[float] = None,
    ) -> None:
        previous = self._state.phase
        self._state = ConnectionState(
            phase=phase,
            attempt=attempt,
            next_retry_at=next_retry_at,
        )
        if previous != phase:
            logger.debug(f"[{self.entity_id}] connection {previous.value} -> {phase.value}")
