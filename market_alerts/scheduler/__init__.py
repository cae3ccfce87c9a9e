"""Scheduling module for periodic digest delivery runs."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
