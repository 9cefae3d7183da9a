"""
Background monitoring of Active warnings: one periodic task per warning,
self-cancelling once the warning is resolved, false-alarmed or deleted.
"""

from rugwatch.scheduler.monitor import MonitoringConfig, MonitoringScheduler, TickOutcome

__all__ = ["MonitoringConfig", "MonitoringScheduler", "TickOutcome"]
