"""
Daily firewall metrics rollup.

At 00:00 UTC every day, takes the final cumulative counters of the previous
UTC day for each active device and upserts one firewall_metrics_rollup row
per (device, day). Counters are used as reported by the appliance; daily
values are never rebuilt by summing poll increments.
"""
import logging
import math
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from app.schemas.metrics import CounterSnapshot, DailyRollup, RollupRunSummary
from app.services.rollup_dates import to_rollup_date, yesterday_utc, retention_cutoff

logger = logging.getLogger(__name__)

DEFAULT_CRON = "0 0 * * *"
DEFAULT_RETENTION_DAYS = 365


def _whole(value: Optional[float]) -> int:
    if value is None or not math.isfinite(value):
        return 0
    return int(round(value))


def compute_rollup(device_id: str, day: date, counters: CounterSnapshot) -> DailyRollup:
    # threats = IPS + GAV + ATP + botnet; DPI-SSL, app control and content
    # filter blocks are reported separately or not at all.
    return DailyRollup(
        device_id=device_id,
        date=day,
        threats_blocked=(
            counters.ips_blocks
            + counters.gav_blocks
            + counters.atp_verdicts
            + counters.botnet_blocks
        ),
        malware_blocked=counters.gav_blocks,
        ips_blocked=counters.ips_blocks,
        blocked_connections=counters.blocked_connections,
        web_filter_hits=counters.content_filter_blocks,
        bandwidth_total_mb=_whole(counters.bandwidth_total_mb),
        active_sessions_count=_whole(counters.active_sessions_count),
    )


class MetricsAggregator:
    """Rollup engine, batch driver and daily trigger.

    Collaborators:
      snapshots  -- PollingStateStore (or anything with get_daily_snapshot /
                    get_current_state)
      rollups    -- RollupStore (upsert / delete_older_than / list_active_devices)
      scheduler  -- JobScheduler used by start() / stop()
      run_guard  -- optional async callable; a scheduled firing is skipped
                    when it returns False (cross-process lock)
    """

    def __init__(
        self,
        snapshots,
        rollups,
        scheduler,
        cron: str = DEFAULT_CRON,
        timezone_name: str = "UTC",
        retention_days: int = DEFAULT_RETENTION_DAYS,
        run_guard: Optional[Callable[[], Awaitable[bool]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.snapshots = snapshots
        self.rollups = rollups
        self.scheduler = scheduler
        self.cron = cron
        self.timezone_name = timezone_name
        self.retention_days = retention_days
        self.run_guard = run_guard
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._job = None

    # ── Rollup engine ───────────────────────────────────────────────────────

    async def aggregate_device_metrics(self, device_id: str, day: Union[date, datetime]) -> DailyRollup:
        """Build and upsert the rollup for one device and day.

        Counter source, first hit wins: the day's snapshot, then the live
        polling state, then all zeros. Collaborator errors propagate.
        """
        day = to_rollup_date(day)

        counters = await self.snapshots.get_daily_snapshot(device_id, day)
        if counters is None:
            logger.debug("No daily snapshot for device %s on %s, using current state", device_id, day)
            state = await self.snapshots.get_current_state(device_id)
            if state is None:
                logger.warning("No polling state for device %s, using zero counters", device_id)
                counters = CounterSnapshot.zero()
            else:
                counters = state.last_counters

        rollup = compute_rollup(device_id, day, counters)
        await self.rollups.upsert(rollup)

        logger.debug(
            "Aggregated device %s on %s: threats=%d malware=%d ips=%d",
            device_id, day, rollup.threats_blocked, rollup.malware_blocked, rollup.ips_blocked,
        )
        return rollup

    # ── Batch ───────────────────────────────────────────────────────────────

    async def run_daily_rollup(self) -> RollupRunSummary:
        """Roll up yesterday (UTC) for every active device, then prune old rows."""
        day = yesterday_utc(self.clock())
        logger.info("Running daily metrics rollup for %s", day)
        return await self._run(day)

    async def manual_rollup(self, day: Optional[Union[date, datetime]] = None) -> RollupRunSummary:
        """Operator-triggered run or backfill. Safe to repeat for the same day."""
        day = to_rollup_date(day) if day is not None else yesterday_utc(self.clock())
        logger.info("Running manual metrics rollup for %s", day)
        return await self._run(day)

    async def _run(self, day: date) -> RollupRunSummary:
        summary = RollupRunSummary(date=day)

        try:
            devices = await self.rollups.list_active_devices()
        except Exception as e:
            logger.error("Could not list active devices for rollup %s: %s", day, e)
            devices = []

        summary.total = len(devices)
        if devices:
            logger.info("Processing metrics rollup for %d devices", len(devices))
        else:
            logger.info("No active devices found for metrics rollup")

        for device in devices:
            try:
                await self.aggregate_device_metrics(device.id, day)
                summary.succeeded += 1
            except Exception as e:
                logger.error("Failed to aggregate metrics for device %s: %s", device.id, e)
                summary.failed.append(device.id)

        if devices:
            logger.info(
                "Metrics rollup for %s done: %d OK, %d failed",
                day, summary.succeeded, len(summary.failed),
            )

        summary.deleted = await self.cleanup_old_metrics()
        return summary

    async def cleanup_old_metrics(self) -> int:
        cutoff = retention_cutoff(self.retention_days, self.clock())
        try:
            deleted = await self.rollups.delete_older_than(cutoff)
        except Exception as e:
            logger.error("Failed to clean up rollups older than %s: %s", cutoff, e)
            return 0
        logger.info("Cleaned up %d rollup rows older than %s", deleted, cutoff)
        return deleted

    # ── Trigger ─────────────────────────────────────────────────────────────

    async def _scheduled_run(self):
        if self.run_guard is not None and not await self.run_guard():
            logger.info("Daily metrics rollup already claimed by another worker, skipping")
            return None
        return await self.run_daily_rollup()

    def start(self) -> None:
        if self._job is not None:
            logger.warning("Metrics aggregator is already running")
            return
        logger.info("Starting metrics aggregator (%s %s)", self.cron, self.timezone_name)
        try:
            self._job = self.scheduler.schedule(self.cron, self.timezone_name, self._scheduled_run)
        except Exception as e:
            logger.error("Failed to start metrics aggregator: %s", e)
            raise

    def stop(self) -> None:
        if self._job is None:
            logger.warning("Metrics aggregator is not running")
            return
        self.scheduler.cancel(self._job)
        self._job = None
        logger.info("Metrics aggregator stopped")

    def is_aggregating(self) -> bool:
        return self._job is not None
