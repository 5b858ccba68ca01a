"""Task data model for Cortex."""

from datetime import date, datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field


class TaskScope(str, Enum):
    """Calendar granularity a task is planned at."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class TaskStatus(str, Enum):
    """Task status enumeration."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    BLOCKED = "blocked"  # Waiting on a conditional (blocked_by_conditional_id is set)


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Unique task identifier (UUID v4)")
    user_id: str = Field(..., description="User ID who owns this task")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    deadline: Optional[datetime] = Field(None, description="Hard deadline for the task")
    scope: TaskScope = Field(..., description="Calendar granularity (day/week/month/year)")
    scope_key: str = Field(
        ...,
        description="Scope-specific key: '2026-02-02', '2026-W05', '2026-02' or '2026'",
    )
    start_time: Optional[str] = Field(None, description="Time slot start ('HH:MM', day scope only)")
    end_time: Optional[str] = Field(None, description="Time slot end ('HH:MM', day scope only)")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Task status")
    progress: int = Field(0, ge=0, le=100, description="Completion percentage")
    parent_task_id: Optional[str] = Field(None, description="Parent task this one rolls up into")
    contribution_percent: Optional[float] = Field(
        None, ge=0, le=100, description="Weight of this task's progress toward its parent"
    )
    color: Optional[str] = Field(None, description="Display color")

    # Conditional dependency
    blocked_by_conditional_id: Optional[str] = Field(
        None, description="ID of the conditional blocking this task"
    )
    original_scheduled_date: Optional[date] = Field(
        None, description="Scheduled date before the first postponement (never overwritten)"
    )

    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
