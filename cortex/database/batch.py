"""Atomic multi-row writes for Cortex.

A WriteBatch stages updates and deletes against user-scoped rows and applies
them in a single transaction on commit(): either every staged operation lands
or none does. A staged operation may carry `expect` preconditions
(column == value); if the row no longer matches at commit time the whole
batch is rolled back and BatchConflictError is raised.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cortex.errors import CortexError, StoreError

logger = logging.getLogger(__name__)


class BatchConflictError(CortexError):
    """A staged operation matched no row (missing, or a precondition no longer holds)."""

    def __init__(self, table: str, entity_id: str, expect: Optional[Dict[str, Any]] = None):
        self.table = table
        self.entity_id = entity_id
        self.expect = expect or {}
        super().__init__(f"Batch conflict on {table}/{entity_id} (expected {self.expect})")


@dataclass
class _StagedOp:
    kind: str  # "update" or "delete"
    model: Any
    entity_id: str
    values: Dict[str, Any] = field(default_factory=dict)
    expect: Dict[str, Any] = field(default_factory=dict)


class WriteBatch:
    """Stage-then-commit writer over one SQLAlchemy session."""

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id
        self._ops: List[_StagedOp] = []

    def __len__(self) -> int:
        return len(self._ops)

    def update(self, model, entity_id: str, values: Dict[str, Any], expect: Optional[Dict[str, Any]] = None) -> None:
        """Stage a column update for one row."""
        self._ops.append(_StagedOp("update", model, entity_id, dict(values), dict(expect or {})))

    def delete(self, model, entity_id: str) -> None:
        """Stage deletion of one row."""
        self._ops.append(_StagedOp("delete", model, entity_id))

    def commit(self) -> None:
        """Apply every staged operation in one transaction.

        Raises:
            BatchConflictError: a staged operation matched no row; nothing was written
            StoreError: the database failed; nothing was written
        """
        try:
            for op in self._ops:
                query = self.db.query(op.model).filter(
                    op.model.id == op.entity_id,
                    op.model.user_id == self.user_id,
                )
                for column, value in op.expect.items():
                    attr = getattr(op.model, column)
                    query = query.filter(attr.is_(None) if value is None else attr == value)

                if op.kind == "update":
                    affected = query.update(op.values, synchronize_session=False)
                else:
                    affected = query.delete(synchronize_session=False)

                if affected != 1:
                    raise BatchConflictError(op.model.__tablename__, op.entity_id, op.expect)

            self.db.commit()
            logger.debug(f"Committed batch of {len(self._ops)} operations for user {self.user_id}")
        except BatchConflictError as e:
            self.db.rollback()
            logger.warning(f"Rolled back batch for user {self.user_id}: {e}")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to commit batch for user {self.user_id}: {type(e).__name__}: {str(e)}")
            raise StoreError("batch commit", e) from e
