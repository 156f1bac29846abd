from app.models.device import FirewallDevice
from app.models.metrics_rollup import FirewallMetricsRollup

__all__ = [
    "FirewallDevice",
    "FirewallMetricsRollup",
]
