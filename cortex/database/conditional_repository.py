"""Repository for Conditional database operations."""

import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, TypeVar
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from cortex.errors import (
    AlreadyResolvedError,
    ConditionalNotFoundError,
    InvalidFallbackError,
    StoreError,
    ValidationError,
)
from cortex.models.conditional import (
    Conditional,
    ConditionalOutcome,
    ConditionalStatus,
    CreateConditionalInput,
    OutcomeAction,
    OutcomeInput,
    UpdateConditionalInput,
)
from cortex.models.constants import OUTCOME_ID_PREFIX
from cortex.database.models import ConditionalDB, enum_to_value, outcomes_to_json

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_outcome_id(index: int) -> str:
    """Generate a unique outcome id."""
    return f"{OUTCOME_ID_PREFIX}-{uuid.uuid4().hex[:12]}-{index}"


def stamp_outcomes(
    outcomes: List[OutcomeInput],
    existing: Optional[List[ConditionalOutcome]] = None,
) -> List[ConditionalOutcome]:
    """Materialize input outcomes, assigning ids.

    An input outcome that carries the id of one of `existing` keeps that id;
    every other outcome gets a fresh one.
    """
    known_ids = {o.id for o in (existing or [])}
    stamped: List[ConditionalOutcome] = []
    used: set = set()
    for i, outcome in enumerate(outcomes):
        outcome_id = outcome.id if outcome.id in known_ids and outcome.id not in used else new_outcome_id(i)
        used.add(outcome_id)
        stamped.append(ConditionalOutcome(**{**outcome.model_dump(), "id": outcome_id}))
    return stamped


class ConditionalRepository:
    """Repository for Conditional database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _read(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}: {type(e).__name__}: {str(e)}")
            raise StoreError(operation, e) from e

    def _get_row(self, user_id: str, conditional_id: str) -> Optional[ConditionalDB]:
        return self._read(
            f"load conditional {conditional_id}",
            lambda: self.db.query(ConditionalDB).filter(
                ConditionalDB.id == conditional_id,
                ConditionalDB.user_id == user_id,
            ).first(),
        )

    def _validate_fallback(
        self,
        user_id: str,
        conditional_id: str,
        outcomes: List[ConditionalOutcome],
        fallback_conditional_id: Optional[str],
        fallback_postpone_days: Optional[int],
        require_pending_target: bool = True,
    ) -> None:
        """Reject fallback configurations that would leave tasks stranded.

        - a switch_fallback outcome needs a fallback conditional or fallback postpone days
        - the fallback conditional must exist, be owned by the user, and not be this one
        - a newly assigned fallback conditional must still be pending
        - following fallback links from the target must never come back here
        """
        needs_fallback = any(o.action == OutcomeAction.SWITCH_FALLBACK for o in outcomes)
        if needs_fallback and not fallback_conditional_id and not fallback_postpone_days:
            raise InvalidFallbackError(
                "A switch_fallback outcome requires fallback_conditional_id or fallback_postpone_days"
            )
        if not fallback_conditional_id:
            return
        if fallback_conditional_id == conditional_id:
            raise InvalidFallbackError(f"Conditional {conditional_id} cannot fall back to itself")

        rows = self._read(
            f"load fallback chain for conditional {conditional_id}",
            lambda: self.db.query(
                ConditionalDB.id, ConditionalDB.status, ConditionalDB.fallback_conditional_id
            ).filter(ConditionalDB.user_id == user_id).all(),
        )
        chain: Dict[str, Optional[str]] = {row.id: row.fallback_conditional_id for row in rows}
        statuses = {row.id: row.status for row in rows}
        if fallback_conditional_id not in chain:
            raise InvalidFallbackError(f"Fallback conditional {fallback_conditional_id} not found")
        if require_pending_target and statuses[fallback_conditional_id] != ConditionalStatus.PENDING.value:
            raise InvalidFallbackError(
                f"Fallback conditional {fallback_conditional_id} is already {statuses[fallback_conditional_id]}"
            )

        seen = set()
        current: Optional[str] = fallback_conditional_id
        while current is not None and current not in seen:
            if current == conditional_id:
                raise InvalidFallbackError(
                    f"Fallback {fallback_conditional_id} would create a cycle back to {conditional_id}"
                )
            seen.add(current)
            current = chain.get(current)

    def create(self, user_id: str, data: CreateConditionalInput, now: Optional[datetime] = None) -> Conditional:
        """Create a new pending conditional with freshly stamped outcome ids."""
        now = now or datetime.utcnow()
        conditional_id = str(uuid.uuid4())
        outcomes = stamp_outcomes(data.outcomes)
        self._validate_fallback(
            user_id, conditional_id, outcomes, data.fallback_conditional_id, data.fallback_postpone_days
        )

        conditional = Conditional(
            id=conditional_id,
            user_id=user_id,
            title=data.title,
            description=data.description or "",
            expected_date=data.expected_date,
            urgency=data.urgency,
            status=ConditionalStatus.PENDING,
            outcomes=outcomes,
            fallback_conditional_id=data.fallback_conditional_id or None,
            fallback_postpone_days=data.fallback_postpone_days or None,
            selected_outcome_id=None,
            resolved_at=None,
            color=data.color or None,
            created_at=now,
            updated_at=now,
        )
        conditional_db = ConditionalDB.from_pydantic(conditional)
        self.db.add(conditional_db)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create conditional {conditional_id}: {type(e).__name__}: {str(e)}")
            raise StoreError(f"create conditional {conditional_id}", e) from e
        self.db.refresh(conditional_db)
        logger.debug(f"Created conditional {conditional_id}: {data.title[:50]}")
        return conditional_db.to_pydantic()

    def get(self, user_id: str, conditional_id: str) -> Optional[Conditional]:
        """Get conditional by ID for a specific user."""
        conditional_db = self._get_row(user_id, conditional_id)
        return conditional_db.to_pydantic() if conditional_db else None

    def get_or_raise(self, user_id: str, conditional_id: str) -> Conditional:
        conditional = self.get(user_id, conditional_id)
        if conditional is None:
            raise ConditionalNotFoundError(conditional_id)
        return conditional

    def list(self, user_id: str, status: Optional[ConditionalStatus] = None) -> List[Conditional]:
        """Get conditionals for a user ordered by expected date (soonest first)."""
        query = self.db.query(ConditionalDB).filter(ConditionalDB.user_id == user_id)
        if status is not None:
            query = query.filter(ConditionalDB.status == enum_to_value(status))
        rows = self._read(
            f"list conditionals for user {user_id}",
            lambda: query.order_by(ConditionalDB.expected_date, ConditionalDB.created_at).all(),
        )
        return [row.to_pydantic() for row in rows]

    def get_fallback_dependants(self, user_id: str, conditional_id: str) -> List[str]:
        """Ids of the conditionals that fall back to this one."""
        rows = self._read(
            f"query conditionals falling back to {conditional_id}",
            lambda: self.db.query(ConditionalDB.id).filter(
                ConditionalDB.user_id == user_id,
                ConditionalDB.fallback_conditional_id == conditional_id,
            ).all(),
        )
        return [row.id for row in rows]

    def update(
        self,
        user_id: str,
        conditional_id: str,
        data: UpdateConditionalInput,
        now: Optional[datetime] = None,
    ) -> Conditional:
        """Apply the fields present in `data` to a pending conditional."""
        conditional_db = self._get_row(user_id, conditional_id)
        if not conditional_db:
            raise ConditionalNotFoundError(conditional_id)
        if conditional_db.status != ConditionalStatus.PENDING.value:
            raise AlreadyResolvedError(conditional_id, conditional_db.status)

        current = conditional_db.to_pydantic()
        fields = data.model_dump(exclude_unset=True)

        outcomes = current.outcomes
        if "outcomes" in fields:
            if data.outcomes is None:
                raise ValidationError(f"Conditional {conditional_id}: outcomes cannot be null")
            outcomes = stamp_outcomes(data.outcomes, existing=current.outcomes)
        fallback_id = fields.get("fallback_conditional_id", current.fallback_conditional_id)
        fallback_days = fields.get("fallback_postpone_days", current.fallback_postpone_days)
        self._validate_fallback(
            user_id,
            conditional_id,
            outcomes,
            fallback_id,
            fallback_days,
            require_pending_target="fallback_conditional_id" in fields,
        )

        if data.title is not None:
            conditional_db.title = data.title
        if "description" in fields:
            conditional_db.description = data.description or ""
        if data.expected_date is not None:
            conditional_db.expected_date = data.expected_date
        if data.urgency is not None:
            conditional_db.urgency = enum_to_value(data.urgency)
        if "outcomes" in fields:
            conditional_db.outcomes = outcomes_to_json(outcomes)
        if "fallback_conditional_id" in fields:
            conditional_db.fallback_conditional_id = fallback_id or None
        if "fallback_postpone_days" in fields:
            conditional_db.fallback_postpone_days = fallback_days or None
        if "color" in fields:
            conditional_db.color = data.color
        conditional_db.updated_at = now or datetime.utcnow()

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update conditional {conditional_id}: {type(e).__name__}: {str(e)}")
            raise StoreError(f"update conditional {conditional_id}", e) from e
        self.db.refresh(conditional_db)
        logger.debug(f"Updated conditional {conditional_id}")
        return conditional_db.to_pydantic()
