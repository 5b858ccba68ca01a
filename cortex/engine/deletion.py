"""Conditional deletion with cascading unblock for Cortex."""

import logging
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.orm import Session

from cortex.errors import StoreError
from cortex.models.task import TaskStatus
from cortex.database.batch import BatchConflictError, WriteBatch
from cortex.database.conditional_repository import ConditionalRepository
from cortex.database.models import ConditionalDB, TaskDB
from cortex.database.repository import TaskRepository

logger = logging.getLogger(__name__)


def delete_conditional(
    db: Session,
    user_id: str,
    conditional_id: str,
    clock: Optional[Callable[[], datetime]] = None,
) -> int:
    """Delete a conditional, releasing every task it blocks.

    In one batch: each blocked task becomes pending with no block pointer,
    other conditionals that fall back to this one lose that fallback, and the
    conditional itself is deleted.

    Returns:
        Number of tasks released

    Raises:
        ConditionalNotFoundError: no such conditional for this user
        StoreError: the batch could not be committed; nothing was written
    """
    now = (clock or datetime.utcnow)()
    conditionals = ConditionalRepository(db)
    conditionals.get_or_raise(user_id, conditional_id)
    blocked = TaskRepository(db).get_blocked_by(user_id, conditional_id)

    dependants = conditionals.get_fallback_dependants(user_id, conditional_id)

    batch = WriteBatch(db, user_id)
    for task in blocked:
        batch.update(
            TaskDB,
            task.id,
            {"blocked_by_conditional_id": None, "status": TaskStatus.PENDING.value, "updated_at": now},
            expect={"blocked_by_conditional_id": conditional_id},
        )
    for dependant_id in dependants:
        batch.update(
            ConditionalDB,
            dependant_id,
            {"fallback_conditional_id": None, "updated_at": now},
            expect={"fallback_conditional_id": conditional_id},
        )
    batch.delete(ConditionalDB, conditional_id)

    try:
        batch.commit()
    except BatchConflictError as e:
        raise StoreError(f"delete conditional {conditional_id}", e) from e

    logger.info(
        f"Deleted conditional {conditional_id}: released {len(blocked)} tasks, "
        f"cleared {len(dependants)} fallback references"
    )
    return len(blocked)
