"""
Firewall Metrics Rollup - Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import redis.asyncio as aioredis
from app.config import settings
from app.database import init_db, AsyncSessionLocal
from app.services.job_scheduler import APSJobScheduler
from app.services.metrics_aggregator import MetricsAggregator
from app.services.polling_state import PollingStateStore
from app.services.rollup_store import RollupStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


def make_scheduler_lock(redis, job_id: str, ttl_seconds: int):
    """Build a run guard backed by a Redis SETNX lock so only one worker runs
    each firing. Redis being unavailable lets the job run rather than
    silently skip it; a duplicate run only repeats idempotent upserts.
    """
    async def acquire() -> bool:
        try:
            acquired = await redis.set(f"sched:{job_id}", "1", nx=True, ex=ttl_seconds)
            return bool(acquired)
        except Exception as e:
            logger.warning("Scheduler lock %s unavailable, running anyway: %s", job_id, e)
            return True

    return acquire


def build_aggregator(redis, session_factory=AsyncSessionLocal, job_scheduler=None) -> MetricsAggregator:
    return MetricsAggregator(
        snapshots=PollingStateStore(
            redis,
            snapshot_ttl_days=settings.SNAPSHOT_RETENTION_DAYS,
            state_ttl_seconds=settings.POLLING_STATE_TTL_SECONDS,
        ),
        rollups=RollupStore(session_factory),
        scheduler=job_scheduler or APSJobScheduler(scheduler),
        cron=settings.ROLLUP_CRON,
        timezone_name=settings.ROLLUP_TIMEZONE,
        retention_days=settings.ROLLUP_RETENTION_DAYS,
        run_guard=make_scheduler_lock(redis, "metrics_rollup", settings.ROLLUP_LOCK_TTL_SECONDS),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    await init_db()

    redis = aioredis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
    aggregator = build_aggregator(redis)
    app.state.aggregator = aggregator

    try:
        scheduler.start()
        if settings.ROLLUP_ENABLED:
            aggregator.start()
        else:
            logger.info("Daily metrics rollup disabled (ROLLUP_ENABLED=false)")
    except Exception:
        if scheduler.running:
            scheduler.shutdown()
        await redis.aclose()
        raise

    yield

    # Shutdown
    aggregator.stop()
    scheduler.shutdown()
    await redis.aclose()
    logger.info("%s shutting down", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)


@app.get("/api/health")
async def health():
    aggregator = getattr(app.state, "aggregator", None)
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "aggregating": bool(aggregator and aggregator.is_aggregating()),
    }
