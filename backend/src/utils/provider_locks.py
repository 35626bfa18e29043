"""
Per-provider exclusive sections for the booking read-check-write.

Bookings for different providers never wait on each other; bookings for the
same provider are serialized within this process. Multi-process deployments
additionally rely on the provider row lock the coordinator takes on
PostgreSQL.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator

from core.exceptions import SchedulingTimeoutError

logger = logging.getLogger(__name__)


class ProviderLockRegistry:
    """Lazily created lock per provider id, guarded by a registry lock."""

    def __init__(self) -> None:
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, provider_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[provider_id] = lock
            return lock

    @contextmanager
    def hold(self, provider_id: int, timeout: float) -> Generator[None, None, None]:
        """
        Hold the provider's exclusive section for the duration of the block.

        Args:
            provider_id: Provider whose schedule is being mutated
            timeout: Seconds to wait for the section before giving up

        Raises:
            SchedulingTimeoutError: If the section was not acquired in time
        """
        lock = self._lock_for(provider_id)
        if not lock.acquire(timeout=timeout):
            logger.warning(f"Timed out after {timeout}s waiting for booking lock of provider {provider_id}")
            raise SchedulingTimeoutError(
                f"Could not acquire booking lock for provider {provider_id} within {timeout}s"
            )
        try:
            yield
        finally:
            lock.release()


# Shared registry used by the booking coordinator unless one is injected
provider_locks = ProviderLockRegistry()
