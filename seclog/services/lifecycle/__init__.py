from .scheduler import LifecycleReport, LifecycleScheduler, run_lifecycle_once, seconds_until_midnight

__all__ = ["LifecycleReport", "LifecycleScheduler", "run_lifecycle_once", "seconds_until_midnight"]
