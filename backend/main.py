import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from broadcaster import Broadcaster
from errors import CapacityInvariantViolation
from event_source import SyntheticEventSource, seed_store
from ingestion import IngestionLoop
from logging_config import configure_logging
from models import DayBucket, HourBucket, Machine, ProductPerformance, Summary, VendEvent
from repo_events import EventStore
from service_events import EventService
from settings import Settings, resolve_timezone, settings

logger = logging.getLogger(__name__)


def create_app(cfg: Settings = settings) -> FastAPI:
    """Build the engine once and wire it to the HTTP/WebSocket routes.

    The store, service, broadcaster and loop are created here and kept on
    `app.state`, so the routes stay thin and tests can build an app with
    their own `Settings`.
    """

    configure_logging(cfg.log_level)

    store = EventStore(capacity=cfg.store_capacity)
    svc = EventService(
        store,
        bucket_tz=resolve_timezone(cfg.bucket_timezone),
        max_batch_size=cfg.max_batch_size,
    )
    source = SyntheticEventSource(
        campaign_id=cfg.campaign_id,
        machine_id=cfg.machine_id,
        success_bias=cfg.success_bias,
    )
    broadcaster = Broadcaster()
    ingestion = IngestionLoop(source, svc, broadcaster, interval=cfg.tick_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        seeded = seed_store(store, source, cfg.seed_count, timedelta(days=cfg.seed_lookback_days))
        logger.info("Seeded event store with %d synthetic event(s)", seeded)
        ingestion.start()
        try:
            yield
        finally:
            try:
                await ingestion.stop()
            finally:
                broadcaster.close(wait=False)

    app = FastAPI(title="VendPulse Backend", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.state.store = store
    app.state.svc = svc
    app.state.broadcaster = broadcaster
    app.state.ingestion = ingestion

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health(request: Request):
        try:
            return request.app.state.svc.health()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Health check failed: {e}")

    @app.get("/api/dashboard/summary", response_model=Summary)
    def summary(request: Request):
        try:
            return request.app.state.svc.get_summary()
        except Exception as e:
            logger.exception("Summary query failed")
            raise HTTPException(status_code=500, detail=f"Summary failed: {e}")

    @app.get("/api/dashboard/vens-by-hour", response_model=List[HourBucket])
    def vens_by_hour(request: Request):
        try:
            return request.app.state.svc.get_by_hour()
        except Exception as e:
            logger.exception("Hourly query failed")
            raise HTTPException(status_code=500, detail=f"Hourly breakdown failed: {e}")

    @app.get("/api/dashboard/vens-by-day", response_model=List[DayBucket])
    def vens_by_day(request: Request):
        try:
            return request.app.state.svc.get_by_day()
        except Exception as e:
            logger.exception("Daily query failed")
            raise HTTPException(status_code=500, detail=f"Daily breakdown failed: {e}")

    @app.get("/api/dashboard/product-performance", response_model=List[ProductPerformance])
    def product_performance(request: Request):
        try:
            return request.app.state.svc.get_by_product()
        except Exception as e:
            logger.exception("Product query failed")
            raise HTTPException(status_code=500, detail=f"Product performance failed: {e}")

    @app.get("/api/dashboard/machine-status", response_model=List[Machine])
    def machine_status(request: Request):
        try:
            return request.app.state.svc.get_machines()
        except Exception as e:
            logger.exception("Machine query failed")
            raise HTTPException(status_code=500, detail=f"Machine status failed: {e}")

    @app.post("/api/events/ingest")
    def ingest(request: Request, events: List[VendEvent]):
        try:
            inserted = request.app.state.ingestion.ingest(events)
            return {"inserted": inserted}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except CapacityInvariantViolation:
            logger.critical("Event store exceeded its capacity during batch ingest")
            raise
        except Exception as e:
            logger.exception("Ingest failed")
            raise HTTPException(status_code=500, detail=f"Insert failed: {e}")

    @app.websocket("/ws")
    async def realtime_updates(websocket: WebSocket):
        """Push a `real-time-update` message for every published summary."""

        await websocket.accept()
        broadcaster: Broadcaster = websocket.app.state.broadcaster
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=100)

        def offer(summary: Summary) -> None:
            try:
                queue.put_nowait(summary)
            except asyncio.QueueFull:
                logger.warning("WebSocket client is falling behind; dropping update")

        # The listener runs on the broadcaster's worker thread.
        handle = broadcaster.subscribe(lambda s: loop.call_soon_threadsafe(offer, s))

        async def push_updates() -> None:
            while True:
                summary = await queue.get()
                await websocket.send_json({"type": "real-time-update", "data": summary.model_dump(mode="json")})

        async def drain_inbound() -> None:
            # Inbound messages are ignored; receiving is how a disconnect is noticed.
            while True:
                await websocket.receive_text()

        sender = asyncio.create_task(push_updates())
        receiver = asyncio.create_task(drain_inbound())
        done = set()
        try:
            done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if isinstance(exc, WebSocketDisconnect):
                    logger.info("WebSocket client disconnected (%s)", handle)
                elif exc is not None:
                    logger.error(f"WebSocket error ({handle}): {exc!r}")
        finally:
            broadcaster.unsubscribe(handle)
            for task in (sender, receiver):
                task.cancel()
            if sender in done and receiver not in done:
                # pushes have stopped; close so the client can reconnect
                with contextlib.suppress(Exception):
                    await websocket.close(code=1011)


app = create_app()
