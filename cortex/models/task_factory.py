"""Task creation factory for Cortex.

This module centralizes task creation logic so every creation path applies
the same defaults and the same initial-status rule for blocked tasks.
"""

import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from cortex.models.task import Task, TaskStatus, TaskScope, TaskPriority
from cortex.models.constants import DEFAULT_TASK_PRIORITY, DEFAULT_PROGRESS


def initial_status(blocked_by_conditional_id: Optional[str]) -> TaskStatus:
    """A task created with a conditional dependency starts out blocked."""
    return TaskStatus.BLOCKED if blocked_by_conditional_id else TaskStatus.PENDING


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary."""
    return {
        "description": None,
        "priority": DEFAULT_TASK_PRIORITY,
        "deadline": None,
        "start_time": None,
        "end_time": None,
        "progress": DEFAULT_PROGRESS,
        "parent_task_id": None,
        "contribution_percent": None,
        "color": None,
    }


def create_task_base(
    user_id: str,
    title: str,
    scope: TaskScope,
    scope_key: str,
    description: Optional[str] = None,
    priority: Optional[TaskPriority] = None,
    deadline: Optional[datetime] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    parent_task_id: Optional[str] = None,
    contribution_percent: Optional[float] = None,
    color: Optional[str] = None,
    blocked_by_conditional_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Create a task with defaults, allowing overrides.

    Args:
        user_id: User ID who owns this task (required)
        title: Task title (required)
        scope: Calendar granularity
        scope_key: Scope-specific key (e.g. '2026-02-02' for day scope)
        blocked_by_conditional_id: Conditional this task waits on; when set the
            task starts out BLOCKED instead of PENDING
        now: Creation timestamp (defaults to utcnow)

    Returns:
        Task object with defaults applied
    """
    now = now or datetime.utcnow()
    defaults = create_task_defaults()

    return Task(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=title,
        description=description if description is not None else defaults["description"],
        priority=priority if priority is not None else defaults["priority"],
        deadline=deadline if deadline is not None else defaults["deadline"],
        scope=scope,
        scope_key=scope_key,
        start_time=start_time if start_time is not None else defaults["start_time"],
        end_time=end_time if end_time is not None else defaults["end_time"],
        status=initial_status(blocked_by_conditional_id),
        progress=defaults["progress"],
        parent_task_id=parent_task_id if parent_task_id is not None else defaults["parent_task_id"],
        contribution_percent=(
            contribution_percent if contribution_percent is not None else defaults["contribution_percent"]
        ),
        color=color if color is not None else defaults["color"],
        blocked_by_conditional_id=blocked_by_conditional_id,
        original_scheduled_date=None,
        created_at=now,
        updated_at=now,
    )
