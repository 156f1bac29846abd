from app.schemas.metrics import CounterSnapshot, PollingState, DailyRollup, DeviceRef, RollupRunSummary

__all__ = [
    "CounterSnapshot", "PollingState", "DailyRollup", "DeviceRef", "RollupRunSummary",
]
