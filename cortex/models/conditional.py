"""Conditional data model for Cortex.

A conditional is an uncertain future event ("Grant decision", "Money from
client") that one or more tasks wait on. Resolving it with one of its
outcomes reschedules every task it blocks.
"""

from datetime import date, datetime
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field


class ConditionalUrgency(str, Enum):
    """Urgency enumeration (display and ordering only)."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConditionalStatus(str, Enum):
    """Conditional status enumeration. Only PENDING is mutable."""
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class OutcomeType(str, Enum):
    """What kind of outcome occurred."""
    SUCCESS = "success"
    DELAYED = "delayed"
    FAILED = "failed"


class OutcomeAction(str, Enum):
    """What happens to blocked tasks when an outcome is selected."""
    ACTIVATE = "activate"
    POSTPONE = "postpone"
    SWITCH_FALLBACK = "switch_fallback"


class ConditionalOutcome(BaseModel):
    """A possible outcome of a conditional."""

    id: str = Field(..., description="Stable outcome identifier")
    label: str = Field(..., description="Human label, e.g. 'Money received'")
    type: OutcomeType = Field(..., description="Outcome type")
    action: OutcomeAction = Field(..., description="Action applied to blocked tasks")
    postpone_days: Optional[int] = Field(
        None, ge=1, description="Days to add for the 'postpone' action (7 when unset)"
    )
    new_expected_date: Optional[date] = Field(None, description="Informational new expected date")
    notes: Optional[str] = Field(None, description="Free-form notes")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class Conditional(BaseModel):
    """Canonical Conditional model."""

    id: str = Field(..., description="Unique conditional identifier (UUID v4)")
    user_id: str = Field(..., description="User ID who owns this conditional")
    title: str = Field(..., description="Conditional title")
    description: str = Field("", description="Conditional description")
    expected_date: date = Field(..., description="When the event is expected to resolve")
    urgency: ConditionalUrgency = Field(ConditionalUrgency.MEDIUM, description="Urgency")
    status: ConditionalStatus = Field(ConditionalStatus.PENDING, description="Conditional status")
    outcomes: List[ConditionalOutcome] = Field(..., min_length=1, description="Possible outcomes")
    fallback_conditional_id: Optional[str] = Field(
        None, description="Conditional to redirect blocked tasks to on 'switch_fallback'"
    )
    fallback_postpone_days: Optional[int] = Field(
        None, ge=1, description="Final fallback: postpone and unblock by this many days"
    )
    selected_outcome_id: Optional[str] = Field(None, description="Outcome chosen at resolution")
    resolved_at: Optional[datetime] = Field(None, description="Resolution timestamp")
    color: Optional[str] = Field(None, description="Display color")
    created_at: datetime = Field(..., description="Conditional creation timestamp")
    updated_at: datetime = Field(..., description="Conditional last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def is_pending(self) -> bool:
        return self.status == ConditionalStatus.PENDING

    def find_outcome(self, outcome_id: str) -> Optional[ConditionalOutcome]:
        """Return the outcome with the given id, or None."""
        for outcome in self.outcomes:
            if outcome.id == outcome_id:
                return outcome
        return None


class OutcomeInput(BaseModel):
    """Outcome as supplied by a caller.

    `id` is optional: on update, an outcome re-sent with its existing id keeps it.
    """

    id: Optional[str] = None
    label: str = Field(..., min_length=1)
    type: OutcomeType
    action: OutcomeAction
    postpone_days: Optional[int] = Field(None, ge=1)
    new_expected_date: Optional[date] = None
    notes: Optional[str] = None


class CreateConditionalInput(BaseModel):
    """Input for creating a conditional."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    expected_date: date
    urgency: ConditionalUrgency = ConditionalUrgency.MEDIUM
    outcomes: List[OutcomeInput] = Field(..., min_length=1)
    fallback_conditional_id: Optional[str] = None
    fallback_postpone_days: Optional[int] = Field(None, ge=1)
    color: Optional[str] = None


class UpdateConditionalInput(BaseModel):
    """Partial update for a conditional.

    Only fields explicitly present in the payload are applied, so sending
    `"fallback_conditional_id": null` clears the fallback while omitting it
    leaves it untouched.
    """

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    expected_date: Optional[date] = None
    urgency: Optional[ConditionalUrgency] = None
    outcomes: Optional[List[OutcomeInput]] = Field(None, min_length=1)
    fallback_conditional_id: Optional[str] = None
    fallback_postpone_days: Optional[int] = Field(None, ge=1)
    color: Optional[str] = None
