"""Constants for Cortex.

This module centralizes all magic numbers and default values used throughout the application.
"""

from cortex.models.task import TaskPriority
from cortex.models.conditional import ConditionalUrgency


# Task defaults
DEFAULT_TASK_PRIORITY = TaskPriority.MEDIUM
DEFAULT_PROGRESS = 0
MIN_PROGRESS = 0
MAX_PROGRESS = 100

# Conditional defaults
DEFAULT_URGENCY = ConditionalUrgency.MEDIUM
DEFAULT_POSTPONE_DAYS = 7  # Used when a 'postpone' outcome carries no postpone_days
OUTCOME_ID_PREFIX = "outcome"

# Store retry (caller-side, transient failures only)
DEFAULT_STORE_RETRY_ATTEMPTS = 3
DEFAULT_STORE_RETRY_MAX_WAIT_SEC = 4
