import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripwise.core.config import settings
from tripwise.core.logging import configure_logging
from tripwise.api.v1.api import api_router
from tripwise.db.session import SessionLocal
from tripwise.engine.pricing import PricingConfig
from tripwise.services.batch_lock import RedisBatchLock
from tripwise.services.pricing_scheduler import PricingScheduler
from tripwise.services.pricing_service import PricingService
from tripwise.services.trip_store import SqlTripStore

logger = logging.getLogger(__name__)


def build_pricing(session_factory=SessionLocal):
    guard = None
    if settings.PRICING_SCHEDULER_BACKEND == "celery":
        # API manual runs and worker beat ticks must see one lock
        guard = RedisBatchLock.from_url(
            settings.REDIS_URL, settings.PRICING_LOCK_NAME, settings.PRICING_LOCK_TIMEOUT_SECONDS)
    store = SqlTripStore(session_factory)
    service = PricingService(
        store,
        config=PricingConfig(timezone=settings.TIMEZONE),
        update_threshold=settings.PRICING_UPDATE_THRESHOLD_PERCENT,
        horizon_days=settings.PRICING_HORIZON_DAYS,
    )
    scheduler = PricingScheduler(
        service,
        interval_seconds=settings.PRICING_INTERVAL_SECONDS,
        initial_delay_seconds=settings.PRICING_INITIAL_DELAY_SECONDS,
        significant_change_percent=settings.PRICING_SIGNIFICANT_CHANGE_PERCENT,
        guard=guard,
    )
    return store, service, scheduler


def create_app(session_factory=SessionLocal, run_scheduler: bool | None = None) -> FastAPI:
    if run_scheduler is None:
        run_scheduler = settings.PRICING_SCHEDULER_BACKEND == "inprocess"
    store, service, scheduler = build_pricing(session_factory)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if run_scheduler:
            logger.info("Starting dynamic pricing scheduler")
            scheduler.start()
        try:
            yield
        finally:
            scheduler.stop()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.trip_store = store
    app.state.pricing_service = service
    app.state.pricing_scheduler = scheduler

    # CORS: use CORS_ORIGINS from env in production; default to localhost for dev
    _default_origins = [
        "http://127.0.0.1:3000", "http://localhost:3000",
        "http://127.0.0.1:5173", "http://localhost:5173",
    ]
    _origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


configure_logging(settings.LOG_LEVEL)
app = create_app()
