"""Exception taxonomy for Cortex.

Every engine operation either returns a result or raises exactly one of these.
NotFoundError and ValidationError are never retried; StoreError carries enough
context for a caller-driven retry.
"""

from typing import Optional


class CortexError(Exception):
    """Base exception for Cortex."""

    pass


class NotFoundError(CortexError):
    """Raised when a conditional or task does not exist for the owner."""

    entity = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity.capitalize()} {entity_id} not found")


class ConditionalNotFoundError(NotFoundError):
    entity = "conditional"


class TaskNotFoundError(NotFoundError):
    entity = "task"


class ValidationError(CortexError):
    """Raised when a request is well-formed but violates a domain rule."""

    pass


class AlreadyResolvedError(ValidationError):
    """Raised when mutating or resolving a conditional that is no longer pending."""

    def __init__(self, conditional_id: str, status: Optional[str] = None):
        self.conditional_id = conditional_id
        self.status = status
        detail = f" (status: {status})" if status else ""
        super().__init__(f"Conditional {conditional_id} was already resolved{detail}")


class OutcomeNotFoundError(ValidationError):
    """Raised when the selected outcome is not one of the conditional's outcomes."""

    def __init__(self, conditional_id: str, outcome_id: str):
        self.conditional_id = conditional_id
        self.outcome_id = outcome_id
        super().__init__(f"Outcome {outcome_id} not found on conditional {conditional_id}")


class InvalidFallbackError(ValidationError):
    """Raised when a conditional's fallback configuration is unusable."""

    pass


class FallbackUnavailableError(ValidationError):
    """Raised when switch_fallback is selected but no fallback path is usable."""

    def __init__(self, conditional_id: str, fallback_conditional_id: Optional[str] = None):
        self.conditional_id = conditional_id
        self.fallback_conditional_id = fallback_conditional_id
        if fallback_conditional_id:
            msg = (
                f"Fallback conditional {fallback_conditional_id} of {conditional_id} "
                "is missing or no longer pending"
            )
        else:
            msg = f"Conditional {conditional_id} has no fallback conditional or fallback postpone days"
        super().__init__(msg)


class BlockedTaskEditError(ValidationError):
    """Raised when a normal edit tries to move a blocked task out of 'blocked'."""

    def __init__(self, task_id: str, conditional_id: str):
        self.task_id = task_id
        self.conditional_id = conditional_id
        super().__init__(
            f"Task {task_id} is blocked by conditional {conditional_id}; "
            "resolve or unlink the conditional first"
        )


class StoreError(CortexError):
    """Raised when the database fails during a read, query or commit."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        reason = f": {type(cause).__name__}: {cause}" if cause else ""
        super().__init__(f"Store failure during {operation}{reason}")


class ResolutionFailedError(StoreError):
    """Raised when the resolution batch could not be committed. Nothing was written."""

    def __init__(self, conditional_id: str, cause: Optional[BaseException] = None):
        self.conditional_id = conditional_id
        super().__init__(f"resolution of conditional {conditional_id}", cause)
