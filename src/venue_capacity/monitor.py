"""
Occupancy Monitor
=================

Per-entity pipeline and the engine-level registry.

Pipeline (once per accepted sample):
    SampleStore.record
        → FlowAnalyzer.compute        (last 10 samples)
        → DensityClassifier.classify  (latest count, RSET pass-through)
        → PredictionEngine.predict    (last 5 samples)
        → AlertCoordinator.evaluate   (current ratio + forecast)
        → OccupancySnapshot

Design Rules:
    - Derived values are always recomputed from the current window
    - No state is shared between entities
    - dispose() unsubscribes, cancels timers and clears alerts; nothing
      fires afterwards
"""

import logging
import random
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

from venue_capacity.alerts.coordinator import AlertCoordinator, AlertThresholds
from venue_capacity.alerts.sink import AlertSink
from venue_capacity.config import Settings
from venue_capacity.errors import CapacityUnavailable, ReconnectExhausted, validate_capacity
from venue_capacity.models.alert import Alert, AlertDecision, AlertSeverity
from venue_capacity.models.density import DensityState
from venue_capacity.models.flow import FlowRate
from venue_capacity.models.forecast import Forecast
from venue_capacity.models.output import (
    AlertOutput,
    ConnectionOutput,
    FlowOutput,
    ForecastOutput,
    OccupancySnapshot,
    PeakOutput,
    PredictionPointOutput,
)
from venue_capacity.models.sample import Sample
from venue_capacity.signals.density_classifier import DensityClassifier
from venue_capacity.signals.flow_analyzer import FlowAnalyzer
from venue_capacity.signals.prediction_engine import PredictionEngine
from venue_capacity.signals.rset import RsetEstimator
from venue_capacity.stream.connection import ConnectionManager
from venue_capacity.stream.poller import FallbackPoller
from venue_capacity.stream.sources import CapacitySource, LiveSource, PullSource
from venue_capacity.stream.store import SampleStore


logger = logging.getLogger(__name__)


SnapshotListener = Callable[[OccupancySnapshot], None]


class EntityMonitor:
    """
    Occupancy pipeline for one monitored entity.

    Owns the entity's SampleStore, AlertCoordinator, ConnectionManager
    and FallbackPoller. Push and poll sources both write through
    ``ingest``.

    Attributes:
        entity_id: Monitored entity
        store: Sample series
        coordinator: Capacity alert state machine
        connection: Push-subscription manager (None without a live source)
        poller: Fallback poller (None without a pull source)
    """

    def __init__(
        self,
        entity_id: str,
        settings: Settings,
        sink: AlertSink,
        live_source: Optional[LiveSource] = None,
        pull_source: Optional[PullSource] = None,
        capacity_source: Optional[CapacitySource] = None,
        rset_estimator: Optional[RsetEstimator] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.entity_id = entity_id
        self.settings = settings
        self.sink = sink
        self.capacity_source = capacity_source
        self._clock = clock

        self.store = SampleStore(max_samples=settings.store.max_samples)
        self.flow_analyzer = FlowAnalyzer(
            window=settings.flow.window,
            high_flow_threshold=settings.flow.high_flow_threshold,
        )
        self.classifier = DensityClassifier(
            estimator=rset_estimator,
            preset=settings.evacuation.preset,
            exit_count=settings.evacuation.exit_count,
        )
        self.predictor = PredictionEngine(
            window=settings.prediction.window,
            step_minutes=settings.prediction.step_minutes,
            steps=settings.prediction.steps,
            min_confidence=settings.prediction.min_confidence,
            max_confidence=settings.prediction.max_confidence,
        )
        self.coordinator = AlertCoordinator(
            entity_id,
            sink,
            thresholds=AlertThresholds(
                warning_ratio=settings.alerts.warning_ratio,
                critical_ratio=settings.alerts.critical_ratio,
                cooldown_seconds=settings.alerts.cooldown_seconds,
            ),
            clock=clock,
        )

        self.poller: Optional[FallbackPoller] = None
        if pull_source is not None:
            self.poller = FallbackPoller(
                entity_id,
                pull_source,
                self.ingest,
                fallback_interval=settings.poller.fallback_interval_seconds,
                safety_interval=settings.poller.safety_interval_seconds,
            )

        self.connection: Optional[ConnectionManager] = None
        if live_source is not None:
            self.connection = ConnectionManager(
                entity_id,
                live_source,
                self.ingest,
                poller=self.poller,
                on_exhausted=self.report_connection_failure,
                on_live=self._dismiss_connection_alert,
                base_delay=settings.connection.base_delay_seconds,
                max_delay=settings.connection.max_delay_seconds,
                max_jitter=settings.connection.max_jitter_seconds,
                max_retries=settings.connection.max_retries,
                stale_after=settings.connection.stale_after_seconds,
                rng=rng,
                clock=clock,
            )

        self._expected_max: int = settings.capacity.default_expected_max
        self._capacity_is_default: bool = True
        self._pipeline_lock = threading.Lock()
        self._snapshot: Optional[OccupancySnapshot] = None
        self._last_decision: Optional[AlertDecision] = None
        self._connection_alert_id: Optional[str] = None
        self._listeners: List[SnapshotListener] = []
        self._started: bool = False
        self._disposed: bool = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def expected_max(self) -> int:
        return self._expected_max

    @property
    def capacity_is_default(self) -> bool:
        return self._capacity_is_default

    @property
    def snapshot(self) -> Optional[OccupancySnapshot]:
        """Latest computed snapshot, None before the first sample."""
        return self._snapshot

    @property
    def disposed(self) -> bool:
        return self._disposed

    def metrics(self) -> dict:
        """Store, poller and connection counters for observability."""
        metrics = {"store": self.store.metrics()}
        if self.poller is not None:
            metrics["poller"] = self.poller.metrics.to_dict()
        if self.connection is not None:
            metrics["connection"] = {
                **self.connection.state.to_dict(),
                "reconnect_count": self.connection.reconnect_count,
            }
        return metrics

    def add_listener(self, listener: SnapshotListener) -> None:
        """Register a callback invoked with every new snapshot."""
        self._listeners.append(listener)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Load capacity, start polling and open the live subscription."""
        if self._started or self._disposed:
            return
        self._started = True

        await self.load_capacity()

        if self.poller is not None:
            self.poller.start()
        if self.connection is not None:
            await self.connection.start()

        logger.info(
            f"[{self.entity_id}] monitoring started "
            f"(expected_max={self._expected_max}, default={self._capacity_is_default})"
        )

    async def load_capacity(self) -> int:
        """
        Query the capacity source, falling back to the default capacity.

        Raises:
            InvalidCapacity: If the source returns expected_max <= 0
        """
        if self.capacity_source is None:
            logger.warning(
                f"[{self.entity_id}] no capacity source, using default "
                f"{self.settings.capacity.default_expected_max}"
            )
            return self._expected_max

        try:
            expected_max = await self.capacity_source.fetch_expected_max(self.entity_id)
        except CapacityUnavailable as e:
            logger.warning(
                f"[{self.entity_id}] {e}; using default "
                f"{self.settings.capacity.default_expected_max}"
            )
            self._expected_max = self.settings.capacity.default_expected_max
            self._capacity_is_default = True
            self.recompute()
            return self._expected_max

        self.refresh_capacity(expected_max)
        return self._expected_max

    def refresh_capacity(self, expected_max: int) -> None:
        """
        Replace the expected capacity and recompute.

        Raises:
            InvalidCapacity: If expected_max <= 0
        """
        self._expected_max = validate_capacity(expected_max)
        self._capacity_is_default = False
        self.recompute()

    async def dispose(self) -> None:
        """
        Stop everything owned by this entity.

        Unsubscribes the push source, cancels reconnect and poll timers,
        and dismisses any active alert. Safe to call more than once.
        """
        if self._disposed:
            return
        self._disposed = True

        if self.connection is not None:
            await self.connection.stop()
        if self.poller is not None:
            await self.poller.stop()

        dismissed = self.coordinator.clear()
        self._dismiss_connection_alert()
        self._listeners.clear()

        logger.info(
            f"[{self.entity_id}] disposed"
            + (f", dismissed alert {dismissed}" if dismissed else "")
        )

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def ingest(self, sample: Sample) -> Optional[OccupancySnapshot]:
        """
        Record a sample and, if it was new, recompute derived values.

        Returns:
            New snapshot, or None if the sample was a duplicate or the
            monitor is disposed
        """
        if self._disposed:
            logger.debug(f"[{self.entity_id}] sample ignored after disposal")
            return None
        if not self.store.record(sample):
            return None
        return self.recompute()

    def recompute(self) -> Optional[OccupancySnapshot]:
        """Run the full derivation pipeline over the current window."""
        with self._pipeline_lock:
            latest = self.store.latest()
            if latest is None or self._disposed:
                return None

            expected_max = self._expected_max
            flow = self.flow_analyzer.compute(self.store.tail(self.flow_analyzer.window))
            density = self.classifier.classify(latest.count, expected_max)
            forecast = self.predictor.predict(
                self.store.tail(self.predictor.window),
                expected_max,
                low_confidence=self._capacity_is_default,
            )
            decision = self.coordinator.evaluate(
                density.ratio,
                forecast=forecast,
                expected_max=expected_max,
            )
            self._last_decision = decision

            snapshot = self._build_snapshot(latest, flow, density, forecast, decision)
            self._snapshot = snapshot

        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    # -------------------------------------------------------------------------
    # Connection failure surfacing
    # -------------------------------------------------------------------------

    def report_connection_failure(self, error: ReconnectExhausted) -> None:
        """Present a persistent failure alert, distinct from capacity alerts."""
        if self._disposed or self._connection_alert_id is not None:
            return
        alert = Alert(
            id=uuid.uuid4().hex,
            entity_id=self.entity_id,
            severity=AlertSeverity.ERROR,
            title="Live Updates Unavailable",
            message=(
                f"Connection failed after {error.attempts} attempts. "
                "Occupancy is refreshed by polling until the connection is reset."
            ),
            persistent=True,
            percentage=self._snapshot.percentage if self._snapshot else 0.0,
        )
        self.sink.present(alert)
        self._connection_alert_id = alert.id

    def reset_connection(self) -> bool:
        """Retry the live subscription after exhaustion."""
        if self.connection is None:
            return False
        return self.connection.reset()

    def _dismiss_connection_alert(self) -> None:
        alert_id, self._connection_alert_id = self._connection_alert_id, None
        if alert_id is not None:
            self.sink.dismiss(alert_id)

    # -------------------------------------------------------------------------
    # Snapshot assembly
    # -------------------------------------------------------------------------

    def _build_snapshot(
        self,
        latest: Sample,
        flow: FlowRate,
        density: DensityState,
        forecast: Forecast,
        decision: AlertDecision,
    ) -> OccupancySnapshot:
        peak = None
        if forecast.peak is not None:
            peak = PeakOutput(
                count=forecast.peak.count,
                minutes_ahead=forecast.peak.minutes_ahead,
                time=forecast.peak.time,
            )

        alert = decision.alert
        connection = None
        if self.connection is not None:
            state = self.connection.state
            connection = ConnectionOutput(
                phase=state.phase,
                attempt=state.attempt,
                next_retry_at=state.next_retry_at,
                exhausted=state.exhausted,
            )

        return OccupancySnapshot(
            entity_id=self.entity_id,
            computed_at=self._clock(),
            current_occupancy=latest.count,
            expected_max=self._expected_max,
            capacity_is_default=self._capacity_is_default,
            percentage=round(density.percentage, 1),
            density_tier=density.tier,
            evacuation_minutes=density.evacuation_minutes,
            flow=FlowOutput(**flow.to_dict()),
            high_flow=self.flow_analyzer.is_high_flow(flow),
            forecast=ForecastOutput(
                confidence=forecast.confidence,
                low_confidence=forecast.low_confidence,
                trend_per_sample=round(forecast.slope, 1),
                points=[
                    PredictionPointOutput(
                        minutes_ahead=p.minutes_ahead,
                        predicted_count=round(p.predicted_count, 1),
                        risk_level=p.risk_level,
                        time=p.time,
                    )
                    for p in forecast.points
                ],
                peak=peak,
            ),
            alert=AlertOutput(
                action=decision.action,
                severity=alert.severity if alert else self.coordinator.state.active_severity,
                alert_id=alert.id if alert else self.coordinator.active_alert_id,
                message=alert.message if alert else None,
            ),
            connection=connection,
            sample_count=len(self.store),
        )


class OccupancyEngine:
    """
    Registry of monitored entities.

    Each entity gets its own EntityMonitor; nothing mutable is shared
    between them apart from the injected collaborators.

    Example:
        engine = OccupancyEngine(settings, sink, pull_source=HttpPullSource(url))
        await engine.load("event-42")
        engine.ingest("event-42", Sample(timestamp=time.time(), count=950))
        print(engine.snapshot("event-42"))
        await engine.dispose("event-42")
    """

    def __init__(
        self,
        settings: Settings,
        sink: AlertSink,
        live_source: Optional[LiveSource] = None,
        pull_source: Optional[PullSource] = None,
        capacity_source: Optional[CapacitySource] = None,
        rset_estimator: Optional[RsetEstimator] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.sink = sink
        self.live_source = live_source
        self.pull_source = pull_source
        self.capacity_source = capacity_source
        self.rset_estimator = rset_estimator
        self._clock = clock
        self._rng = rng
        self._monitors: Dict[str, EntityMonitor] = {}

    @property
    def entity_ids(self) -> List[str]:
        return list(self._monitors)

    def get(self, entity_id: str) -> Optional[EntityMonitor]:
        return self._monitors.get(entity_id)

    async def load(self, entity_id: str) -> EntityMonitor:
        """Start monitoring an entity (no-op if already monitored)."""
        monitor = self._monitors.get(entity_id)
        if monitor is not None:
            return monitor

        monitor = EntityMonitor(
            entity_id,
            self.settings,
            self.sink,
            live_source=self.live_source,
            pull_source=self.pull_source,
            capacity_source=self.capacity_source,
            rset_estimator=self.rset_estimator,
            clock=self._clock,
            rng=self._rng,
        )
        self._monitors[entity_id] = monitor
        try:
            await monitor.start()
        except Exception:
            del self._monitors[entity_id]
            await monitor.dispose()
            raise
        return monitor

    def ingest(self, entity_id: str, sample: Sample) -> Optional[OccupancySnapshot]:
        """
        Feed a sample to a monitored entity.

        Raises:
            KeyError: If the entity is not monitored
        """
        return self._monitors[entity_id].ingest(sample)

    def snapshot(self, entity_id: str) -> Optional[OccupancySnapshot]:
        """
        Latest snapshot of a monitored entity.

        Raises:
            KeyError: If the entity is not monitored
        """
        return self._monitors[entity_id].snapshot

    async def dispose(self, entity_id: str) -> bool:
        """
        Stop monitoring an entity.

        Returns:
            True if the entity was monitored
        """
        monitor = self._monitors.pop(entity_id, None)
        if monitor is None:
            return False
        await monitor.dispose()
        return True

    async def shutdown(self) -> None:
        """Dispose every monitored entity."""
        for entity_id in list(self._monitors):
            await self.dispose(entity_id)
