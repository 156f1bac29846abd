from sqlalchemy import (
    Column, Integer, String, Date, DateTime, BigInteger, ForeignKey, Index,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

# Derived columns, replaced wholesale on every upsert
ROLLUP_VALUE_COLUMNS = (
    "threats_blocked",
    "malware_blocked",
    "ips_blocked",
    "blocked_connections",
    "web_filter_hits",
    "bandwidth_total_mb",
    "active_sessions_count",
)


class FirewallMetricsRollup(Base):
    """One row per device per UTC calendar day, built from end-of-day counters."""
    __tablename__ = "firewall_metrics_rollup"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String(36), ForeignKey("firewall_devices.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    threats_blocked = Column(Integer, nullable=False, default=0)       # IPS + GAV + ATP + botnet
    malware_blocked = Column(Integer, nullable=False, default=0)       # GAV
    ips_blocked = Column(Integer, nullable=False, default=0)
    blocked_connections = Column(Integer, nullable=False, default=0)
    web_filter_hits = Column(Integer, nullable=False, default=0)       # content filter
    bandwidth_total_mb = Column(BigInteger, nullable=False, default=0)
    active_sessions_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    device = relationship("FirewallDevice", back_populates="rollups")

    __table_args__ = (
        UniqueConstraint("device_id", "date", name="uq_firewall_metrics_rollup_device_date"),
        Index("ix_firewall_metrics_rollup_device_date", "device_id", "date"),
        Index("ix_firewall_metrics_rollup_date", "date"),
        *(
            CheckConstraint(f"{col} >= 0", name=f"ck_firewall_metrics_rollup_{col}_non_negative")
            for col in ROLLUP_VALUE_COLUMNS
        ),
    )
