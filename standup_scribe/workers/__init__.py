from .base import PeriodicWorker
from .cleanup import CleanupWorker
from .delivery import DeliveryWorker
from .scheduler import Scheduler, due_actions

__all__ = ["PeriodicWorker", "CleanupWorker", "DeliveryWorker", "Scheduler", "due_actions"]
