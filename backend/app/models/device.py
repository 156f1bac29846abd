import uuid
from sqlalchemy import Column, String, BigInteger, DateTime, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class FirewallDevice(Base):
    """Registered firewall appliance. Owned by the device registry; the rollup only reads it."""
    __tablename__ = "firewall_devices"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    hostname = Column(String(255))
    model = Column(String(100))
    firmware_version = Column(String(50))
    serial_number = Column(String(100), unique=True, nullable=True)
    management_ip = Column(String(45), nullable=False)
    uptime_seconds = Column(BigInteger, default=0)
    status = Column(String(20), default="active")  # active, inactive, offline
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    rollups = relationship("FirewallMetricsRollup", back_populates="device", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_firewall_devices_status", "status"),
    )
