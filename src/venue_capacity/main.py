"""
Venue Capacity Service
======================

FastAPI entry point for the occupancy engine.

Endpoints:
    GET    /                          - Service information
    GET    /health                    - Liveness probe
    POST   /entities/{id}             - Start monitoring an entity
    GET    /entities/{id}             - Latest occupancy snapshot
    DELETE /entities/{id}             - Stop monitoring (dispose)
    POST   /entities/{id}/samples     - Ingest a sample directly
    POST   /entities/{id}/reconnect   - Reset an exhausted live connection
    GET    /metrics                   - Source, store and poller counters
    GET    /alerts                    - Currently visible alerts
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from venue_capacity import __version__
from venue_capacity.alerts import InMemoryAlertSink
from venue_capacity.config import Settings, settings
from venue_capacity.errors import InvalidCapacity
from venue_capacity.models.sample import Sample
from venue_capacity.monitor import OccupancyEngine
from venue_capacity.stream import HttpCapacitySource, HttpPullSource, WebSocketLiveSource


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_engine: Optional[OccupancyEngine] = None
_alert_sink: Optional[InMemoryAlertSink] = None
_startup_time: float = 0.0


def get_engine() -> Optional[OccupancyEngine]:
    return _engine

def get_alert_sink() -> Optional[InMemoryAlertSink]:
    return _alert_sink


# =============================================================================
# Engine Factory
# =============================================================================

def create_engine(config: Settings, sink: InMemoryAlertSink) -> OccupancyEngine:
    """
    Build an OccupancyEngine with the sources configured in settings.

    Sources without a URL are left out: no live URL means polling only,
    no pull URL means samples arrive through the HTTP API, no capacity
    URL means the default capacity is used.
    """
    live_source = None
    if config.connection.live_url:
        logger.info(f"Live source: {config.connection.live_url}")
        live_source = WebSocketLiveSource(config.connection.live_url)

    pull_source = None
    if config.poller.pull_url:
        logger.info(f"Pull source: {config.poller.pull_url}")
        pull_source = HttpPullSource(
            config.poller.pull_url,
            timeout=config.poller.request_timeout_seconds,
        )

    capacity_source = None
    if config.capacity.capacity_url:
        logger.info(f"Capacity source: {config.capacity.capacity_url}")
        capacity_source = HttpCapacitySource(
            config.capacity.capacity_url,
            timeout=config.poller.request_timeout_seconds,
        )

    return OccupancyEngine(
        config,
        sink,
        live_source=live_source,
        pull_source=pull_source,
        capacity_source=capacity_source,
    )


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _engine, _alert_sink, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting venue-capacity {__version__}")

    _alert_sink = InMemoryAlertSink()
    _engine = create_engine(settings, _alert_sink)

    yield

    logger.info("Shutting down gracefully...")
    await _engine.shutdown()
    for source in (_engine.pull_source, _engine.capacity_source):
        if source is not None:
            source.close()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="venue-capacity",
    description="Real-time venue occupancy monitoring and capacity alerting",
    version=__version__,
    lifespan=lifespan,
)


class SampleIn(BaseModel):
    """Sample submitted over HTTP."""

    timestamp: float = Field(..., description="UNIX timestamp (seconds)")
    count: int = Field(..., ge=0, description="Observed occupancy")


def _not_monitored(entity_id: str) -> JSONResponse:
    return JSONResponse(
        {"error": f"Entity {entity_id} is not monitored"},
        status_code=404,
    )


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    engine = get_engine()
    return JSONResponse({
        "service": "venue-capacity",
        "version": __version__,
        "status": "running",
        "entities": engine.entity_ids if engine else [],
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always returns 200 if the service is running."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.post("/entities/{entity_id}")
async def load_entity(entity_id: str) -> JSONResponse:
    """Start monitoring an entity."""
    try:
        monitor = await _engine.load(entity_id)
    except InvalidCapacity as e:
        return JSONResponse({"error": str(e)}, status_code=422)
    return JSONResponse({
        "entity_id": entity_id,
        "expected_max": monitor.expected_max,
        "capacity_is_default": monitor.capacity_is_default,
    })


@app.get("/entities/{entity_id}")
async def entity_snapshot(entity_id: str) -> JSONResponse:
    """Latest occupancy snapshot for an entity."""
    monitor = _engine.get(entity_id)
    if monitor is None:
        return _not_monitored(entity_id)

    snapshot = monitor.snapshot
    if snapshot is None:
        return JSONResponse(
            {"error": "No samples received yet"},
            status_code=503,
        )
    return JSONResponse(snapshot.model_dump(mode="json"))


@app.delete("/entities/{entity_id}")
async def dispose_entity(entity_id: str) -> JSONResponse:
    """Stop monitoring an entity and dismiss its alerts."""
    if not await _engine.dispose(entity_id):
        return _not_monitored(entity_id)
    return JSONResponse({"entity_id": entity_id, "disposed": True})


@app.post("/entities/{entity_id}/samples")
async def ingest_sample(entity_id: str, body: SampleIn) -> JSONResponse:
    """Feed a sample to a monitored entity."""
    monitor = _engine.get(entity_id)
    if monitor is None:
        return _not_monitored(entity_id)

    snapshot = monitor.ingest(Sample(timestamp=body.timestamp, count=body.count))
    if snapshot is None:
        return JSONResponse({"accepted": False})
    return JSONResponse({"accepted": True, "snapshot": snapshot.model_dump(mode="json")})


@app.post("/entities/{entity_id}/reconnect")
async def reconnect_entity(entity_id: str) -> JSONResponse:
    """Clear reconnect exhaustion and retry the live subscription."""
    monitor = _engine.get(entity_id)
    if monitor is None:
        return _not_monitored(entity_id)
    if monitor.connection is None:
        return JSONResponse(
            {"error": "No live source configured"},
            status_code=409,
        )

    if not monitor.reset_connection():
        return JSONResponse(
            {
                "error": "Live connection is not exhausted",
                "connection": monitor.connection.state.to_dict(),
            },
            status_code=409,
        )
    return JSONResponse({
        "entity_id": entity_id,
        "connection": monitor.connection.state.to_dict(),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    engine = get_engine()

    live_metrics = {}
    if engine and isinstance(engine.live_source, WebSocketLiveSource):
        live_metrics = engine.live_source.metrics.to_dict()

    entity_metrics = {}
    if engine:
        entity_metrics = {
            entity_id: engine.get(entity_id).metrics()
            for entity_id in engine.entity_ids
        }

    sink = get_alert_sink()
    return JSONResponse({
        "live_source": live_metrics,
        "entities": entity_metrics,
        "alerts_active": len(sink.active()) if sink else 0,
    })


@app.get("/alerts")
async def alerts() -> JSONResponse:
    """Alerts currently visible."""
    sink = get_alert_sink()
    active = sink.active() if sink else []
    return JSONResponse({"alerts": [alert.to_dict() for alert in active]})


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "venue_capacity.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
