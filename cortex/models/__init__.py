"""Data models for Cortex."""

from cortex.models.task import Task, TaskStatus, TaskScope, TaskPriority
from cortex.models.conditional import (
    Conditional,
    ConditionalOutcome,
    ConditionalStatus,
    ConditionalUrgency,
    OutcomeType,
    OutcomeAction,
)
from cortex.models.user import User

__all__ = [
    "Task",
    "TaskStatus",
    "TaskScope",
    "TaskPriority",
    "Conditional",
    "ConditionalOutcome",
    "ConditionalStatus",
    "ConditionalUrgency",
    "OutcomeType",
    "OutcomeAction",
    "User",
]
