"""Background task processing."""

from .queue import BackgroundTask, TaskPriority, TaskQueue, TaskStatus

__all__ = ["BackgroundTask", "TaskPriority", "TaskQueue", "TaskStatus"]
