"""
Polling state cache: last-known firewall counters kept in Redis.

The device poller writes two kinds of entries:
  firewall:state:{device_id}            live state, refreshed every poll
  firewall:snapshot:{device_id}:{day}   counters as of the end of a UTC day

Entries expire on their own; an expired key reads exactly like one that
was never written.
"""
import logging
from datetime import date, datetime
from typing import Optional, Union

from pydantic import ValidationError
from redis.exceptions import RedisError

from app.schemas.metrics import CounterSnapshot, PollingState
from app.services.rollup_dates import to_rollup_date

logger = logging.getLogger(__name__)

STATE_PREFIX = "firewall:state:"
SNAPSHOT_PREFIX = "firewall:snapshot:"


def state_key(device_id: str) -> str:
    return f"{STATE_PREFIX}{device_id}"


def snapshot_key(device_id: str, day: Union[date, datetime]) -> str:
    return f"{SNAPSHOT_PREFIX}{device_id}:{to_rollup_date(day).isoformat()}"


class PollingStateStore:
    """Reads and writes polling state through an injected ``redis.asyncio`` client."""

    def __init__(self, redis, snapshot_ttl_days: int = 7, state_ttl_seconds: int = 86400):
        self.redis = redis
        self.snapshot_ttl_seconds = snapshot_ttl_days * 86400
        self.state_ttl_seconds = state_ttl_seconds

    async def _read(self, key: str) -> Optional[Union[str, bytes]]:
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            logger.warning("Polling state read failed for %s: %s", key, e)
            return None
        return raw

    async def get_daily_snapshot(self, device_id: str, day: Union[date, datetime]) -> Optional[CounterSnapshot]:
        key = snapshot_key(device_id, day)
        raw = await self._read(key)
        if raw is None:
            return None
        try:
            return CounterSnapshot.model_validate_json(raw)
        except (ValidationError, UnicodeDecodeError) as e:
            logger.warning("Discarding malformed snapshot %s: %s", key, e)
            return None

    async def store_daily_snapshot(self, device_id: str, day: Union[date, datetime], counters: CounterSnapshot) -> None:
        await self.redis.set(
            snapshot_key(device_id, day),
            counters.model_dump_json(by_alias=True),
            ex=self.snapshot_ttl_seconds,
        )

    async def get_current_state(self, device_id: str) -> Optional[PollingState]:
        key = state_key(device_id)
        raw = await self._read(key)
        if raw is None:
            return None
        try:
            return PollingState.model_validate_json(raw)
        except (ValidationError, UnicodeDecodeError) as e:
            logger.warning("Discarding malformed polling state %s: %s", key, e)
            return None

    async def store_state(self, state: PollingState) -> None:
        await self.redis.set(
            state_key(state.device_id),
            state.model_dump_json(by_alias=True),
            ex=self.state_ttl_seconds,
        )
