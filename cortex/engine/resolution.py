"""Conditional resolution for Cortex.

Resolving a conditional with one of its outcomes marks the conditional
terminal and moves every task it blocks, in one atomic batch:

- activate:        tasks become pending and lose their block pointer
- postpone:        tasks shift forward by the outcome's postpone_days (7 if unset)
                   and stay blocked on this conditional
- switch_fallback: tasks are redirected to the fallback conditional; without
                   one, fallback_postpone_days shifts and unblocks them
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional
from sqlalchemy.orm import Session

from cortex.errors import (
    AlreadyResolvedError,
    FallbackUnavailableError,
    OutcomeNotFoundError,
    ResolutionFailedError,
    StoreError,
)
from cortex.models.conditional import (
    Conditional,
    ConditionalOutcome,
    ConditionalStatus,
    OutcomeAction,
    OutcomeType,
)
from cortex.models.constants import DEFAULT_POSTPONE_DAYS
from cortex.models.task import Task, TaskStatus
from cortex.database.batch import BatchConflictError, WriteBatch
from cortex.database.conditional_repository import ConditionalRepository
from cortex.database.models import ConditionalDB, TaskDB
from cortex.database.repository import TaskRepository
from cortex.engine.scope import shift_scope_key

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ResolutionResult:
    """Result of resolving a conditional."""

    def __init__(self, updated_task_count: int = 0, switched_to_fallback_id: Optional[str] = None):
        self.updated_task_count = updated_task_count
        self.switched_to_fallback_id = switched_to_fallback_id

    def __repr__(self) -> str:
        return (
            f"ResolutionResult(updated_task_count={self.updated_task_count}, "
            f"switched_to_fallback_id={self.switched_to_fallback_id!r})"
        )


def terminal_status(outcome: ConditionalOutcome) -> ConditionalStatus:
    """A 'failed' outcome fails the conditional; anything else resolves it."""
    if outcome.type == OutcomeType.FAILED:
        return ConditionalStatus.FAILED
    return ConditionalStatus.RESOLVED


def postponed_values(task: Task, days: int, now: datetime) -> Dict[str, Any]:
    """Column values that shift a task forward by `days`.

    The first postponement records the pre-shift date in
    original_scheduled_date; later ones leave it alone.
    """
    new_key, before = shift_scope_key(task.scope, task.scope_key, days)
    return {
        "scope_key": new_key,
        "original_scheduled_date": task.original_scheduled_date or before,
        "updated_at": now,
    }


def _stage_task_updates(
    batch: WriteBatch,
    conditional_id: str,
    tasks: List[Task],
    values_for: Callable[[Task], Dict[str, Any]],
) -> int:
    # Each update is guarded on the task still pointing at this conditional.
    for task in tasks:
        batch.update(TaskDB, task.id, values_for(task), expect={"blocked_by_conditional_id": conditional_id})
    return len(tasks)


def _usable_fallback(conditionals: ConditionalRepository, user_id: str, fallback_id: str) -> bool:
    fallback = conditionals.get(user_id, fallback_id)
    return fallback is not None and fallback.is_pending


def _stage_switch_fallback(
    batch: WriteBatch,
    conditionals: ConditionalRepository,
    conditional: Conditional,
    tasks: List[Task],
    now: datetime,
    result: ResolutionResult,
) -> None:
    fallback_id = conditional.fallback_conditional_id
    if fallback_id and _usable_fallback(conditionals, conditional.user_id, fallback_id):
        result.updated_task_count = _stage_task_updates(
            batch,
            conditional.id,
            tasks,
            lambda task: {"blocked_by_conditional_id": fallback_id, "updated_at": now},
        )
        result.switched_to_fallback_id = fallback_id
        return

    if conditional.fallback_postpone_days:
        if fallback_id:
            logger.warning(
                f"Fallback {fallback_id} of conditional {conditional.id} is unavailable; "
                f"postponing {len(tasks)} tasks by {conditional.fallback_postpone_days} days instead"
            )
        days = conditional.fallback_postpone_days
        result.updated_task_count = _stage_task_updates(
            batch,
            conditional.id,
            tasks,
            lambda task: {
                **postponed_values(task, days, now),
                "blocked_by_conditional_id": None,
                "status": TaskStatus.PENDING.value,
            },
        )
        return

    if fallback_id:
        raise FallbackUnavailableError(conditional.id, fallback_id)

    # No fallback path at all: the tasks stay blocked on a terminal conditional.
    if tasks:
        logger.warning(
            f"Conditional {conditional.id} switched to fallback without any fallback configured; "
            f"{len(tasks)} tasks remain blocked"
        )


def resolve_conditional(
    db: Session,
    user_id: str,
    conditional_id: str,
    outcome_id: str,
    clock: Optional[Clock] = None,
) -> ResolutionResult:
    """Resolve a pending conditional with one of its outcomes.

    Args:
        db: Database session
        user_id: Owner of the conditional
        conditional_id: Conditional to resolve
        outcome_id: Id of the selected outcome
        clock: Source of "now" (defaults to datetime.utcnow)

    Returns:
        ResolutionResult with the number of tasks mutated and, when tasks were
        redirected, the fallback conditional id

    Raises:
        ConditionalNotFoundError: no such conditional for this user
        AlreadyResolvedError: the conditional is not pending (also raised when
            a concurrent resolution wins the race)
        OutcomeNotFoundError: outcome_id is not one of the conditional's outcomes
        FallbackUnavailableError: switch_fallback with an unusable fallback and
            no fallback postpone days
        ResolutionFailedError: the batch could not be committed; nothing was written
    """
    now = (clock or datetime.utcnow)()
    conditionals = ConditionalRepository(db)
    tasks_repo = TaskRepository(db)

    conditional = conditionals.get_or_raise(user_id, conditional_id)
    if not conditional.is_pending:
        raise AlreadyResolvedError(conditional_id, conditional.status)
    outcome = conditional.find_outcome(outcome_id)
    if outcome is None:
        raise OutcomeNotFoundError(conditional_id, outcome_id)

    blocked = tasks_repo.get_blocked_by(user_id, conditional_id)

    batch = WriteBatch(db, user_id)
    batch.update(
        ConditionalDB,
        conditional_id,
        {
            "status": terminal_status(outcome).value,
            "selected_outcome_id": outcome.id,
            "resolved_at": now,
            "updated_at": now,
        },
        expect={"status": ConditionalStatus.PENDING.value},
    )

    result = ResolutionResult()
    if outcome.action == OutcomeAction.ACTIVATE:
        result.updated_task_count = _stage_task_updates(
            batch,
            conditional_id,
            blocked,
            lambda task: {
                "status": TaskStatus.PENDING.value,
                "blocked_by_conditional_id": None,
                "updated_at": now,
            },
        )
    elif outcome.action == OutcomeAction.POSTPONE:
        days = outcome.postpone_days or DEFAULT_POSTPONE_DAYS
        result.updated_task_count = _stage_task_updates(
            batch,
            conditional_id,
            blocked,
            lambda task: postponed_values(task, days, now),
        )
    elif outcome.action == OutcomeAction.SWITCH_FALLBACK:
        _stage_switch_fallback(batch, conditionals, conditional, blocked, now, result)

    try:
        batch.commit()
    except BatchConflictError as e:
        if e.table == ConditionalDB.__tablename__:
            raise AlreadyResolvedError(conditional_id) from e
        raise ResolutionFailedError(conditional_id, e) from e
    except StoreError as e:
        raise ResolutionFailedError(conditional_id, e.cause) from e

    logger.info(
        f"Resolved conditional {conditional_id} with outcome {outcome.id} ({outcome.action}): "
        f"{result.updated_task_count} tasks updated"
        + (f", switched to fallback {result.switched_to_fallback_id}" if result.switched_to_fallback_id else "")
    )
    return result
