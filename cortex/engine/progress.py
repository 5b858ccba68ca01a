"""Hierarchical progress rollup for Cortex.

A parent task's progress is the weighted average of its children's progress.
Each child weighs its contribution_percent, or an equal share (100 / number
of children) when that is unset or zero.
"""

import logging
import math
from typing import List, Optional
from sqlalchemy.orm import Session

from cortex.models.constants import MIN_PROGRESS, MAX_PROGRESS
from cortex.models.task import Task
from cortex.database.repository import TaskRepository

logger = logging.getLogger(__name__)


def weighted_progress(children: List[Task]) -> Optional[int]:
    """Compute rolled-up progress for a set of children (None if there are none)."""
    if not children:
        return None

    equal_share = 100 / len(children)
    total_weight = 0.0
    weighted = 0.0
    for child in children:
        weight = child.contribution_percent or equal_share
        total_weight += weight
        weighted += child.progress * weight

    # Round half up
    progress = math.floor(weighted / total_weight + 0.5)
    return max(MIN_PROGRESS, min(MAX_PROGRESS, progress))


def recompute_parent_progress(db: Session, user_id: str, parent_task_id: str) -> Optional[int]:
    """Recompute and store a parent's progress from its children.

    Writes only the parent's progress. Does nothing (and returns None) when
    the parent has no children. Does not cascade upward; see rollup_progress.
    """
    tasks = TaskRepository(db)
    progress = weighted_progress(tasks.get_children(user_id, parent_task_id))
    if progress is None:
        return None
    tasks.set_progress(user_id, parent_task_id, progress)
    logger.debug(f"Recomputed progress of task {parent_task_id}: {progress}")
    return progress


def rollup_progress(db: Session, user_id: str, task_id: str) -> List[str]:
    """Recompute progress for every ancestor of a task, bottom-up.

    Returns:
        Ids of the ancestors whose progress was recomputed, nearest first
    """
    tasks = TaskRepository(db)
    task = tasks.get_or_raise(user_id, task_id)
    updated: List[str] = []
    seen = {task.id}
    parent_id = task.parent_task_id
    while parent_id and parent_id not in seen:
        seen.add(parent_id)
        parent = tasks.get(user_id, parent_id)
        if parent is None:
            break
        recompute_parent_progress(db, user_id, parent_id)
        updated.append(parent_id)
        parent_id = parent.parent_task_id
    return updated
