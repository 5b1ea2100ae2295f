"""
Fallback Poller
===============

Periodic pull of the latest sample for one entity.

The poller feeds the same SampleStore as the push subscription. It runs
at a short interval while the push channel is not live and, optionally,
at a longer safety-net interval while it is, since push delivery is
neither exactly-once nor low-latency.

Design Rules:
    - One asyncio task per entity, cancellable at any point
    - Interval changes take effect immediately (the wait is restarted)
    - TransientFetchError is swallowed and retried on the next tick
"""

import asyncio
import logging
from typing import Optional

from venue_capacity.errors import TransientFetchError
from venue_capacity.models.sample import Sample
from venue_capacity.stream.sources import PullSource, SampleCallback


logger = logging.getLogger(__name__)


class PollerMetrics:
    """Metrics for FallbackPoller observability."""

    __slots__ = ("polls", "samples", "failures")

    def __init__(self) -> None:
        self.polls: int = 0
        self.samples: int = 0
        self.failures: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {"polls": self.polls, "samples": self.samples, "failures": self.failures}


class FallbackPoller:
    """
    Timer-driven pull loop.

    Attributes:
        entity_id: Monitored entity
        fallback_interval: Seconds between polls while degraded
        safety_interval: Seconds between polls while live (None = paused)
        metrics: Operational metrics

    Example:
        poller = FallbackPoller("event-42", pull_source, monitor.ingest)
        poller.start()
        poller.activate()      # push channel down: poll now, then every 30s
        poller.relax()         # push channel live: every 120s (or paused)
        await poller.stop()
    """

    def __init__(
        self,
        entity_id: str,
        source: PullSource,
        on_sample: SampleCallback,
        fallback_interval: float = 30.0,
        safety_interval: Optional[float] = 120.0,
    ) -> None:
        if fallback_interval <= 0:
            raise ValueError("fallback_interval must be > 0")
        if safety_interval is not None and safety_interval <= 0:
            raise ValueError("safety_interval must be > 0 or None")

        self.entity_id = entity_id
        self.source = source
        self.on_sample = on_sample
        self.fallback_interval = fallback_interval
        self.safety_interval = safety_interval
        self.metrics = PollerMetrics()

        self._interval: Optional[float] = fallback_interval
        self._poll_now: bool = False
        self._wake: asyncio.Event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running: bool = False

    @property
    def interval(self) -> Optional[float]:
        """Current poll interval in seconds (None = paused)."""
        return self._interval

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the poll loop as a background task."""
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(
            self._run(),
            name=f"fallback_poller:{self.entity_id}",
        )
        logger.info(f"[{self.entity_id}] fallback poller started (every {self._interval}s)")

    async def stop(self) -> None:
        """Cancel the poll loop and wait for it to exit."""
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"[{self.entity_id}] fallback poller stopped")

    def activate(self, immediate: bool = True) -> None:
        """Switch to the fallback interval, optionally polling right away."""
        self._interval = self.fallback_interval
        self._poll_now = immediate
        self._wake.set()

    def relax(self) -> None:
        """Switch to the safety-net interval (or pause when it is None)."""
        self._interval = self.safety_interval
        self._poll_now = False
        self._wake.set()

    async def poll_once(self) -> Optional[Sample]:
        """
        Fetch the latest sample and hand it to the callback.

        Returns:
            The fetched sample, or None if nothing was fetched
        """
        self.metrics.polls += 1
        try:
            sample = await self.source.fetch_latest(self.entity_id)
        except TransientFetchError as e:
            self.metrics.failures += 1
            logger.debug(f"[{self.entity_id}] poll failed, retrying next tick: {e}")
            return None

        if sample is not None:
            self.metrics.samples += 1
            self.on_sample(sample)
        return sample

    async def _run(self) -> None:
        while self._running:
            try:
                if self._interval is None:
                    await self._wake.wait()
                    self._wake.clear()
                    continue

                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
                    self._wake.clear()
                    if not self._poll_now:
                        # Interval changed; restart the wait
                        continue
                except asyncio.TimeoutError:
                    pass

                self._poll_now = False
                await self.poll_once()

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.metrics.failures += 1
                logger.error(f"[{self.entity_id}] poller error: {e}")
