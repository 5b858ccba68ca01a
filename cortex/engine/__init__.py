"""Conditional dependency and rescheduling engine for Cortex."""

from cortex.engine.resolution import resolve_conditional, ResolutionResult
from cortex.engine.deletion import delete_conditional
from cortex.engine.progress import recompute_parent_progress, rollup_progress, weighted_progress
from cortex.engine.scope import get_scope_key, scope_key_to_date, shift_scope_key
from cortex.engine.retry import with_store_retry

__all__ = [
    "resolve_conditional",
    "ResolutionResult",
    "delete_conditional",
    "recompute_parent_progress",
    "rollup_progress",
    "weighted_progress",
    "get_scope_key",
    "scope_key_to_date",
    "shift_scope_key",
    "with_store_retry",
]
