"""
Concurrency management: bounded retry with exponential backoff.

Writers are serialized by the storage layer alone (conditional updates and
unique constraints), so no operation waits on another operation's in-memory
lock and the manager keeps no per-resource state.
"""

import time
from typing import Any, Callable, Optional, Tuple, Type

from ..app_logger import get_logger
from ..core.exceptions import StorageError

logger = get_logger("services.concurrency")


class ConcurrencyManager:
    """Retries transient storage failures for idempotent writes."""

    def __init__(self, max_retries: int = 2, backoff_factor: float = 0.05):
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor

    def execute_with_retry(self, func: Callable[[], Any], max_retries: Optional[int] = None,
                           backoff_factor: Optional[float] = None,
                           retry_on: Tuple[Type[BaseException], ...] = (StorageError,)) -> Any:
        """Run ``func``, retrying on ``retry_on`` with exponential backoff."""
        retries = self._max_retries if max_retries is None else max_retries
        backoff = self._backoff_factor if backoff_factor is None else backoff_factor

        for attempt in range(retries + 1):
            try:
                return func()
            except retry_on as e:
                if attempt >= retries:
                    raise
                delay = backoff * (2 ** attempt)
                logger.warning("Attempt %d failed (%s); retrying in %.2fs", attempt + 1, e, delay)
                time.sleep(delay)
