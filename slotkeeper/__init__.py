"""
slotkeeper - provider availability windows and race-free slot booking.
"""

from .config import SchedulerConfig
from .scheduler import Scheduler, build_scheduler

__all__ = ["Scheduler", "SchedulerConfig", "build_scheduler"]

__version__ = "0.1.0"
