# teamctl/tasks/__init__.py

from .schema import Task, TaskStatus
from .manager import TaskManager

__all__ = ["Task", "TaskStatus", "TaskManager"]
