"""Checking pipeline: single-domain checks, recurring monitoring and the service facade."""

from .checker import DomainChecker
from .scheduler import CycleSummary, MonitoringScheduler, SchedulerState

__all__ = ["CycleSummary", "DomainChecker", "MonitoringScheduler", "SchedulerState"]
