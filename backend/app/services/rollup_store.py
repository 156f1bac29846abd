"""
Durable storage for daily firewall rollups.

Writes are upsert-only on (device_id, date): a re-run for the same day
replaces every derived column, it never accumulates.
"""
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from app.models.device import FirewallDevice
from app.models.metrics_rollup import FirewallMetricsRollup, ROLLUP_VALUE_COLUMNS
from app.schemas.metrics import DailyRollup, DeviceRef

logger = logging.getLogger(__name__)

CONFLICT_KEY = ("device_id", "date")
MAX_QUERY_LIMIT = 365


def build_upsert(rollup: DailyRollup, dialect_name: str = "postgresql"):
    """INSERT ... ON CONFLICT (device_id, date) DO UPDATE for the given dialect."""
    insert = sqlite_insert if dialect_name == "sqlite" else pg_insert
    stmt = insert(FirewallMetricsRollup).values(
        device_id=rollup.device_id,
        date=rollup.date,
        **rollup.derived_values(),
    )
    set_ = {col: stmt.excluded[col] for col in ROLLUP_VALUE_COLUMNS}
    set_["updated_at"] = func.now()
    return stmt.on_conflict_do_update(index_elements=list(CONFLICT_KEY), set_=set_)


class RollupStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def upsert(self, rollup: DailyRollup) -> None:
        async with self.session_factory() as db:
            try:
                await db.execute(build_upsert(rollup, db.bind.dialect.name))
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.debug("Stored rollup for device %s on %s", rollup.device_id, rollup.date)

    async def delete_older_than(self, cutoff: date) -> int:
        async with self.session_factory() as db:
            try:
                result = await db.execute(
                    delete(FirewallMetricsRollup).where(FirewallMetricsRollup.date < cutoff)
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            return result.rowcount or 0

    async def list_active_devices(self) -> List[DeviceRef]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(FirewallDevice).where(FirewallDevice.status == "active")
            )
            return [DeviceRef.model_validate(d) for d in result.scalars().all()]

    async def list_device_rollups(
        self,
        device_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = 30,
    ) -> List[DailyRollup]:
        """Rollups for one device, newest first."""
        if limit < 1 or limit > MAX_QUERY_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_QUERY_LIMIT}")
        if start and end and start > end:
            raise ValueError("start date must be before or equal to end date")

        query = select(FirewallMetricsRollup).where(FirewallMetricsRollup.device_id == device_id)
        if start:
            query = query.where(FirewallMetricsRollup.date >= start)
        if end:
            query = query.where(FirewallMetricsRollup.date <= end)
        query = query.order_by(FirewallMetricsRollup.date.desc()).limit(limit)

        async with self.session_factory() as db:
            result = await db.execute(query)
            return [DailyRollup.model_validate(r) for r in result.scalars().all()]
