"""Repository layer for task database operations."""

import logging
from datetime import datetime
from typing import Callable, List, Optional, TypeVar
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from cortex.errors import (
    AlreadyResolvedError,
    BlockedTaskEditError,
    ConditionalNotFoundError,
    StoreError,
    TaskNotFoundError,
    ValidationError,
)
from cortex.models.task import Task, TaskStatus, TaskScope
from cortex.models.conditional import ConditionalStatus
from cortex.models.task_factory import initial_status
from cortex.database.models import TaskDB, ConditionalDB, enum_to_value

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskRepository:
    """Repository for Task database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _read(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}: {type(e).__name__}: {str(e)}")
            raise StoreError(operation, e) from e

    def _get_row(self, user_id: str, task_id: str) -> Optional[TaskDB]:
        return self._read(
            f"load task {task_id}",
            lambda: self.db.query(TaskDB).filter(
                TaskDB.id == task_id,
                TaskDB.user_id == user_id,
            ).first(),
        )

    def _require_pending_conditional(self, user_id: str, conditional_id: str) -> ConditionalDB:
        conditional_db = self._read(
            f"load conditional {conditional_id}",
            lambda: self.db.query(ConditionalDB).filter(
                ConditionalDB.id == conditional_id,
                ConditionalDB.user_id == user_id,
            ).first(),
        )
        if not conditional_db:
            raise ConditionalNotFoundError(conditional_id)
        if conditional_db.status != ConditionalStatus.PENDING.value:
            raise AlreadyResolvedError(conditional_id, conditional_db.status)
        return conditional_db

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {operation}: {type(e).__name__}: {str(e)}")
            raise StoreError(operation, e) from e

    def create(self, task: Task) -> Task:
        """Create a new task.

        A task created with a conditional dependency starts out BLOCKED; the
        conditional must exist and still be pending.
        """
        if task.blocked_by_conditional_id:
            self._require_pending_conditional(task.user_id, task.blocked_by_conditional_id)
        task = task.model_copy(update={"status": initial_status(task.blocked_by_conditional_id)})

        task_db = TaskDB.from_pydantic(task)
        self.db.add(task_db)
        self._commit(f"create task {task.id}")
        self.db.refresh(task_db)
        logger.debug(f"Created task {task.id}: {task.title[:50]}")
        return task_db.to_pydantic()

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        """Get task by ID for a specific user."""
        task_db = self._get_row(user_id, task_id)
        return task_db.to_pydantic() if task_db else None

    def get_or_raise(self, user_id: str, task_id: str) -> Task:
        task = self.get(user_id, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def get_all(self, user_id: str, scope: Optional[TaskScope] = None, scope_key: Optional[str] = None) -> List[Task]:
        """Get tasks for a user (optionally for one scope/scope key), oldest first."""
        query = self.db.query(TaskDB).filter(TaskDB.user_id == user_id)
        if scope is not None:
            query = query.filter(TaskDB.scope == enum_to_value(scope))
        if scope_key is not None:
            query = query.filter(TaskDB.scope_key == scope_key)
        tasks_db = self._read(
            f"list tasks for user {user_id}",
            lambda: query.order_by(TaskDB.created_at).all(),
        )
        return [task_db.to_pydantic() for task_db in tasks_db]

    def get_blocked_by(self, user_id: str, conditional_id: str) -> List[Task]:
        """Get every task currently blocked by a conditional (order unspecified)."""
        tasks_db = self._read(
            f"query tasks blocked by {conditional_id}",
            lambda: self.db.query(TaskDB).filter(
                TaskDB.user_id == user_id,
                TaskDB.blocked_by_conditional_id == conditional_id,
            ).all(),
        )
        return [task_db.to_pydantic() for task_db in tasks_db]

    def get_children(self, user_id: str, parent_task_id: str) -> List[Task]:
        """Get child tasks of a parent, oldest first."""
        tasks_db = self._read(
            f"query children of task {parent_task_id}",
            lambda: self.db.query(TaskDB).filter(
                TaskDB.user_id == user_id,
                TaskDB.parent_task_id == parent_task_id,
            ).order_by(TaskDB.created_at).all(),
        )
        return [task_db.to_pydantic() for task_db in tasks_db]

    def update(self, task: Task) -> Task:
        """Update an existing task (user_id must match task.user_id).

        Normal edits never touch the conditional link: a blocked task must stay
        blocked, an unblocked task cannot be blocked here, and the block pointer
        and original scheduled date are not editable. Use link_to_conditional /
        unlink_from_conditional or resolve the conditional instead.
        """
        task_db = self._get_row(task.user_id, task.id)
        if not task_db:
            raise TaskNotFoundError(task.id)

        status_value = enum_to_value(task.status)
        if task.blocked_by_conditional_id != task_db.blocked_by_conditional_id:
            raise ValidationError(f"Task {task.id}: use link/unlink to change its conditional")
        if task_db.blocked_by_conditional_id and status_value != TaskStatus.BLOCKED.value:
            raise BlockedTaskEditError(task.id, task_db.blocked_by_conditional_id)
        if not task_db.blocked_by_conditional_id and status_value == TaskStatus.BLOCKED.value:
            raise ValidationError(f"Task {task.id}: only a conditional can block a task")

        task_db.title = task.title
        task_db.description = task.description
        task_db.priority = enum_to_value(task.priority)
        task_db.deadline = task.deadline
        task_db.scope = enum_to_value(task.scope)
        task_db.scope_key = task.scope_key
        task_db.start_time = task.start_time
        task_db.end_time = task.end_time
        task_db.status = status_value
        task_db.progress = task.progress
        task_db.parent_task_id = task.parent_task_id
        task_db.contribution_percent = task.contribution_percent
        task_db.color = task.color
        task_db.updated_at = datetime.utcnow()

        self._commit(f"update task {task.id}")
        self.db.refresh(task_db)
        logger.debug(f"Updated task {task.id}: {task.title[:50]}")
        return task_db.to_pydantic()

    def set_progress(self, user_id: str, task_id: str, progress: int) -> Task:
        """Write only the progress field of a task."""
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            raise TaskNotFoundError(task_id)
        task_db.progress = progress
        task_db.updated_at = datetime.utcnow()
        self._commit(f"set progress of task {task_id}")
        self.db.refresh(task_db)
        return task_db.to_pydantic()

    def delete(self, user_id: str, task_id: str) -> bool:
        """Delete a task by ID for a specific user. Children keep existing, unparented."""
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            return False
        try:
            self.db.query(TaskDB).filter(
                TaskDB.user_id == user_id,
                TaskDB.parent_task_id == task_id,
            ).update({TaskDB.parent_task_id: None}, synchronize_session=False)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to unparent children of task {task_id}: {type(e).__name__}: {str(e)}")
            raise StoreError(f"unparent children of task {task_id}", e) from e
        self.db.delete(task_db)
        self._commit(f"delete task {task_id}")
        logger.debug(f"Deleted task {task_id}")
        return True

    def link_to_conditional(self, user_id: str, task_id: str, conditional_id: str) -> Task:
        """Block a task on a pending conditional."""
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            raise TaskNotFoundError(task_id)
        self._require_pending_conditional(user_id, conditional_id)

        task_db.blocked_by_conditional_id = conditional_id
        task_db.status = TaskStatus.BLOCKED.value
        task_db.updated_at = datetime.utcnow()
        self._commit(f"link task {task_id} to conditional {conditional_id}")
        self.db.refresh(task_db)
        logger.debug(f"Linked task {task_id} to conditional {conditional_id}")
        return task_db.to_pydantic()

    def unlink_from_conditional(self, user_id: str, task_id: str) -> Task:
        """Release a task from its conditional (manual intervention)."""
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            raise TaskNotFoundError(task_id)
        if not task_db.blocked_by_conditional_id:
            return task_db.to_pydantic()

        previous = task_db.blocked_by_conditional_id
        task_db.blocked_by_conditional_id = None
        task_db.status = TaskStatus.PENDING.value
        task_db.updated_at = datetime.utcnow()
        self._commit(f"unlink task {task_id}")
        self.db.refresh(task_db)
        logger.debug(f"Unlinked task {task_id} from conditional {previous}")
        return task_db.to_pydantic()
