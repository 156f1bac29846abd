import datetime as dt
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CounterSnapshot(BaseModel):
    """Cumulative security counters for one device at one point in time.

    Values are running totals since an arbitrary epoch, not per-day deltas.
    Serialised to Redis with camelCase keys (``ipsBlocks``, ``gavBlocks``...),
    which is how the device poller writes them.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    ips_blocks: int = Field(0, ge=0)
    gav_blocks: int = Field(0, ge=0)
    dpi_ssl_blocks: int = Field(0, ge=0)
    atp_verdicts: int = Field(0, ge=0)
    app_control_blocks: int = Field(0, ge=0)
    botnet_blocks: int = Field(0, ge=0)
    content_filter_blocks: int = Field(0, ge=0)
    blocked_connections: int = Field(0, ge=0)
    # Not every firmware exposes these
    bandwidth_total_mb: Optional[float] = Field(None, ge=0)
    active_sessions_count: Optional[float] = Field(None, ge=0)

    @classmethod
    def zero(cls) -> "CounterSnapshot":
        return cls()


class PollingState(BaseModel):
    """Live polling state for a device, refreshed on every poll."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    device_id: str
    last_poll_time: Optional[dt.datetime] = None
    last_counters: CounterSnapshot = Field(default_factory=CounterSnapshot)
    last_status: Optional[dict] = None
    last_security_features: Optional[dict] = None


class DailyRollup(BaseModel):
    device_id: str
    date: dt.date
    threats_blocked: int = 0
    malware_blocked: int = 0
    ips_blocked: int = 0
    blocked_connections: int = 0
    web_filter_hits: int = 0
    bandwidth_total_mb: int = 0
    active_sessions_count: int = 0

    model_config = {"from_attributes": True}

    def derived_values(self) -> dict:
        """Derived fields only, keyed by column name."""
        return self.model_dump(exclude={"device_id", "date"})


class DeviceRef(BaseModel):
    id: str
    status: Optional[str] = None
    tenant_id: Optional[str] = None

    model_config = {"from_attributes": True}


class RollupRunSummary(BaseModel):
    date: dt.date
    total: int = 0
    succeeded: int = 0
    failed: List[str] = Field(default_factory=list)
    deleted: int = 0
