"""Caller-side retry for transient store failures.

The engine makes at most one batch attempt per call. Callers that want to
ride out transient database errors wrap the call with `with_store_retry`,
which retries only on StoreError, never on NotFound/Validation errors.
"""

import logging
import os
from typing import Callable, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cortex.errors import StoreError
from cortex.models.constants import DEFAULT_STORE_RETRY_ATTEMPTS, DEFAULT_STORE_RETRY_MAX_WAIT_SEC

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", str(DEFAULT_STORE_RETRY_ATTEMPTS)))
STORE_RETRY_MAX_WAIT_SEC = float(os.getenv("STORE_RETRY_MAX_WAIT_SEC", str(DEFAULT_STORE_RETRY_MAX_WAIT_SEC)))


def _log_retry(retry_state) -> None:
    logger.warning(
        f"Store failure on attempt {retry_state.attempt_number}, retrying in "
        f"{retry_state.next_action.sleep:.2f}s: {retry_state.outcome.exception()}"
    )


store_retry = retry(
    retry=retry_if_exception_type(StoreError),
    stop=stop_after_attempt(STORE_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.25, max=STORE_RETRY_MAX_WAIT_SEC),
    reraise=True,
    before_sleep=_log_retry,
)


def with_store_retry(fn: Callable[..., T], *args, **kwargs) -> T:
    """Call fn(*args, **kwargs), retrying with backoff on StoreError."""
    return store_retry(fn)(*args, **kwargs)
