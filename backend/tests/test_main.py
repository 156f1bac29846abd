import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app import main
from app.models.device import FirewallDevice
from app.main import build_aggregator, make_scheduler_lock
from app.services.metrics_aggregator import MetricsAggregator
from app.services.polling_state import PollingStateStore
from app.services.rollup_store import RollupStore
from app.services.rollup_dates import yesterday_utc
from tests.conftest import FakeScheduler


async def test_scheduler_lock_allows_one_holder(fake_redis):
    acquire = make_scheduler_lock(fake_redis, "metrics_rollup", ttl_seconds=3600)

    assert await acquire() is True
    assert await acquire() is False
    assert fake_redis.expiry["sched:metrics_rollup"] == 3600


async def test_scheduler_lock_runs_anyway_when_redis_is_down(fake_redis):
    fake_redis.down = True

    assert await make_scheduler_lock(fake_redis, "metrics_rollup", 60)() is True


async def test_build_aggregator_wires_collaborators(fake_redis, session_factory):
    scheduler = FakeScheduler()
    aggregator = build_aggregator(fake_redis, session_factory=session_factory, job_scheduler=scheduler)

    assert isinstance(aggregator.snapshots, PollingStateStore)
    assert isinstance(aggregator.rollups, RollupStore)

    aggregator.start()
    assert aggregator.is_aggregating()
    assert len(scheduler.jobs) == 1
    aggregator.stop()


async def test_end_to_end_rollup_over_sqlite(fake_redis, session_factory, sample_counters):
    async with session_factory() as db:
        db.add(FirewallDevice(id="dev-1", tenant_id="t1", management_ip="10.0.0.1", status="active"))
        await db.commit()

    aggregator = build_aggregator(fake_redis, session_factory=session_factory, job_scheduler=FakeScheduler())
    day = yesterday_utc()
    await aggregator.snapshots.store_daily_snapshot("dev-1", day, sample_counters)

    summary = await aggregator.manual_rollup()
    await aggregator.manual_rollup(day)

    assert summary.date == day
    assert summary.succeeded == 1
    [row] = await aggregator.rollups.list_device_rollups("dev-1")
    assert row.date == day
    assert row.threats_blocked == 200
    assert row.web_filter_hits == 15


async def test_failed_startup_releases_scheduler_and_redis(monkeypatch, fake_redis):
    aps = AsyncIOScheduler(timezone="UTC")

    async def no_tables():
        return None

    monkeypatch.setattr(main, "init_db", no_tables)
    monkeypatch.setattr(main, "scheduler", aps)
    monkeypatch.setattr(main.aioredis, "from_url", lambda *a, **kw: fake_redis)
    monkeypatch.setattr(main.settings, "ROLLUP_ENABLED", True)
    monkeypatch.setattr(
        main, "build_aggregator",
        lambda redis: MetricsAggregator(
            snapshots=None, rollups=None, scheduler=FakeScheduler(fail=True),
        ),
    )

    with pytest.raises(ValueError):
        async with main.lifespan(main.app):
            pass

    assert not aps.running
    assert fake_redis.closed
