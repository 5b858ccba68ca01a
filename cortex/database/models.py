"""SQLAlchemy database models for Cortex."""

from datetime import datetime
from typing import Union, TypeVar, Type
import uuid
from sqlalchemy import Column, String, Integer, Float, Date, DateTime, JSON, ForeignKey

from cortex.database.database import Base
from cortex.models.task import TaskStatus, TaskScope, TaskPriority
from cortex.models.conditional import ConditionalStatus, ConditionalUrgency

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from cortex.models.user import User
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, user):
        """Create database model from Pydantic model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class ConditionalDB(Base):
    """Database model for Conditional."""

    __tablename__ = "conditionals"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    expected_date = Column(Date, nullable=False, index=True)
    urgency = Column(String, nullable=False, default=ConditionalUrgency.MEDIUM.value)
    status = Column(String, nullable=False, default=ConditionalStatus.PENDING.value, index=True)

    # Outcomes (stored as JSON array of outcome objects)
    outcomes = Column(JSON, nullable=False, default=list)

    # Fallback chain. Absent fallbacks are stored as explicit NULL.
    fallback_conditional_id = Column(
        String, ForeignKey("conditionals.id", ondelete="SET NULL"), nullable=True, index=True
    )
    fallback_postpone_days = Column(Integer, nullable=True)

    # Set exactly once, at resolution
    selected_outcome_id = Column(String, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    color = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from cortex.models.conditional import Conditional, ConditionalOutcome

        return Conditional(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description or "",
            expected_date=self.expected_date,
            urgency=value_to_enum(self.urgency, ConditionalUrgency, ConditionalUrgency.MEDIUM),
            status=value_to_enum(self.status, ConditionalStatus, ConditionalStatus.PENDING),
            outcomes=[ConditionalOutcome(**o) for o in (self.outcomes or [])],
            fallback_conditional_id=self.fallback_conditional_id,
            fallback_postpone_days=self.fallback_postpone_days,
            selected_outcome_id=self.selected_outcome_id,
            resolved_at=self.resolved_at,
            color=self.color,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, conditional):
        """Create database model from Pydantic model."""
        return cls(
            id=conditional.id,
            user_id=conditional.user_id,
            title=conditional.title,
            description=conditional.description or "",
            expected_date=conditional.expected_date,
            urgency=enum_to_value(conditional.urgency),
            status=enum_to_value(conditional.status),
            outcomes=outcomes_to_json(conditional.outcomes),
            fallback_conditional_id=conditional.fallback_conditional_id,
            fallback_postpone_days=conditional.fallback_postpone_days,
            selected_outcome_id=conditional.selected_outcome_id,
            resolved_at=conditional.resolved_at,
            color=conditional.color,
            created_at=conditional.created_at,
            updated_at=conditional.updated_at,
        )


def outcomes_to_json(outcomes) -> list:
    """Serialize outcomes for the JSON column (dates as ISO strings)."""
    return [o.model_dump(mode="json") for o in outcomes]


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"

    # Primary key
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # User association
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Basic fields
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    priority = Column(String, nullable=False, default=TaskPriority.MEDIUM.value)
    deadline = Column(DateTime, nullable=True)
    color = Column(String, nullable=True)

    # Scope & timing
    scope = Column(String, nullable=False, index=True)
    scope_key = Column(String, nullable=False, index=True)
    start_time = Column(String, nullable=True)
    end_time = Column(String, nullable=True)

    # Status & progress
    status = Column(String, nullable=False, default=TaskStatus.PENDING.value)
    progress = Column(Integer, nullable=False, default=0)

    # Hierarchy
    parent_task_id = Column(String, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True)
    contribution_percent = Column(Float, nullable=True)

    # Conditional dependency
    blocked_by_conditional_id = Column(
        String, ForeignKey("conditionals.id", ondelete="SET NULL"), nullable=True, index=True
    )
    original_scheduled_date = Column(Date, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from cortex.models.task import Task

        return Task(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description,
            priority=value_to_enum(self.priority, TaskPriority, TaskPriority.MEDIUM),
            deadline=self.deadline,
            scope=value_to_enum(self.scope, TaskScope, TaskScope.DAY),
            scope_key=self.scope_key,
            start_time=self.start_time,
            end_time=self.end_time,
            status=value_to_enum(self.status, TaskStatus, TaskStatus.PENDING),
            progress=self.progress or 0,
            parent_task_id=self.parent_task_id,
            contribution_percent=self.contribution_percent,
            color=self.color,
            blocked_by_conditional_id=self.blocked_by_conditional_id,
            original_scheduled_date=self.original_scheduled_date,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        return cls(
            id=task.id,
            user_id=task.user_id,
            title=task.title,
            description=task.description,
            priority=enum_to_value(task.priority),
            deadline=task.deadline,
            scope=enum_to_value(task.scope),
            scope_key=task.scope_key,
            start_time=task.start_time,
            end_time=task.end_time,
            status=enum_to_value(task.status),
            progress=task.progress,
            parent_task_id=task.parent_task_id,
            contribution_percent=task.contribution_percent,
            color=task.color,
            blocked_by_conditional_id=task.blocked_by_conditional_id,
            original_scheduled_date=task.original_scheduled_date,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
