from .due_scheduler import DueNotification, DueScheduler

__all__ = ["DueScheduler", "DueNotification"]
