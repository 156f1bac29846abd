from datetime import datetime, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.database import init_db
from app.schemas.metrics import CounterSnapshot, DeviceRef

FIXED_NOW = datetime(2024, 3, 16, 14, 30, tzinfo=timezone.utc)


class FakeSnapshots:
    """In-memory stand-in for PollingStateStore."""

    def __init__(self):
        self.daily = {}
        self.states = {}
        self.failing = set()
        self.calls = []

    async def get_daily_snapshot(self, device_id, day):
        self.calls.append(("daily", device_id, day))
        if device_id in self.failing:
            raise RedisConnectionError("cache down")
        return self.daily.get((device_id, day))

    async def get_current_state(self, device_id):
        self.calls.append(("state", device_id))
        return self.states.get(device_id)


class FakeRollupStore:
    """In-memory stand-in for RollupStore keyed on (device_id, date)."""

    def __init__(self, devices=()):
        self.devices = [DeviceRef(id=d, status="active", tenant_id="t1") for d in devices]
        self.rows = {}
        self.upserts = []
        self.deleted_before = []
        self.fail_upsert_for = set()
        self.fail_cleanup = False
        self.fail_listing = False

    async def upsert(self, rollup):
        if rollup.device_id in self.fail_upsert_for:
            raise RuntimeError("write failed")
        self.upserts.append(rollup)
        self.rows[(rollup.device_id, rollup.date)] = rollup

    async def delete_older_than(self, cutoff):
        if self.fail_cleanup:
            raise RuntimeError("delete failed")
        self.deleted_before.append(cutoff)
        old = [k for k in self.rows if k[1] < cutoff]
        for k in old:
            del self.rows[k]
        return len(old)

    async def list_active_devices(self):
        if self.fail_listing:
            raise RuntimeError("db down")
        return list(self.devices)


class FakeScheduler:
    def __init__(self, fail=False):
        self.jobs = {}
        self.fail = fail
        self._seq = 0

    def schedule(self, cron, timezone, callback):
        if self.fail:
            raise ValueError("bad trigger")
        self._seq += 1
        handle = f"job-{self._seq}"
        self.jobs[handle] = (cron, timezone, callback)
        return handle

    def cancel(self, handle):
        del self.jobs[handle]

    async def fire_all(self):
        return [await cb() for _, _, cb in list(self.jobs.values())]


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache and lock code."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.down = False
        self.closed = False

    async def get(self, key):
        if self.down:
            raise RedisConnectionError("connection refused")
        value = self.data.get(key)
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    async def set(self, key, value, ex=None, nx=False):
        if self.down:
            raise RedisConnectionError("connection refused")
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def sample_counters():
    return CounterSnapshot(
        ips_blocks=100,
        gav_blocks=50,
        dpi_ssl_blocks=25,
        atp_verdicts=30,
        app_control_blocks=10,
        botnet_blocks=20,
        content_filter_blocks=15,
        blocked_connections=40,
    )


@pytest.fixture
def snapshots():
    return FakeSnapshots()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
