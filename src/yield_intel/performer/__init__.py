"""Task performer exports."""

from yield_intel.performer.models import TaskPayload, TaskType
from yield_intel.performer.performer import TaskPerformer

__all__ = ["TaskPayload", "TaskPerformer", "TaskType"]
