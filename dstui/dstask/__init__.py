"""Access to the dstask command line task tracker."""

from .client import CommandResult, DstaskClient, DstaskError
from .models import Project, Task, TaskStatus

__all__ = [
    "CommandResult",
    "DstaskClient",
    "DstaskError",
    "Project",
    "Task",
    "TaskStatus",
]
