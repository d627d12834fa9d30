"""Per-cadence lease held in the state store.

Manifesto:
    Two overlapping runs of the same cadence race on the cursor. The
    scheduler is expected to prevent that; where it cannot (retries from an
    external cron, two hosts running ``logsync tick``), a lease gives a
    best-effort guard. TTL expiry means a crashed holder blocks the cadence
    for at most ``ttl_seconds``.

    A key/value store without compare-and-set cannot make this atomic.
    ``acquire`` writes its token and reads it back, which closes the common
    overlap window but not every interleaving.

Tags:
    lease, lock, concurrency, TTL, scheduling
"""

from __future__ import annotations

from logsync.core.kv import KeyValueStore
from logsync.core.logging import get_logger
from logsync.core.timestamps import generate_run_id

logger = get_logger(__name__)


class CycleLease:
    """Lease ``lease:<cadence>`` for one cycle.

    Example:
        >>> lease = CycleLease(kv, "forward", ttl_seconds=300)
        >>> if lease.acquire():
        ...     try:
        ...         run_cycle()
        ...     finally:
        ...         lease.release()
    """

    def __init__(self, kv: KeyValueStore, cadence: str, *, ttl_seconds: int = 300):
        self._kv = kv
        self.cadence = cadence
        self.key = f"lease:{cadence}"
        self.ttl_seconds = ttl_seconds
        self.token = generate_run_id()
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> bool:
        """Take the lease if nobody holds it.

        Returns:
            True if acquired, False if another run holds it.
        """
        holder = self._kv.get(self.key)
        if holder and holder != self.token:
            logger.info("lease_busy", cadence=self.cadence, holder=holder)
            return False

        self._kv.put(self.key, self.token, ttl_seconds=self.ttl_seconds)
        if self._kv.get(self.key) != self.token:
            logger.info("lease_lost_race", cadence=self.cadence)
            return False

        self._held = True
        logger.debug("lease_acquired", cadence=self.cadence, token=self.token)
        return True

    def release(self) -> bool:
        """Release the lease if this instance still holds it.

        Returns:
            True if released, False if not held.
        """
        if not self._held:
            return False
        self._held = False
        try:
            if self._kv.get(self.key) != self.token:
                return False
            self._kv.delete(self.key)
        except Exception as e:
            # The TTL frees it anyway.
            logger.warning("lease_release_failed", cadence=self.cadence, error=str(e))
            return False
        logger.debug("lease_released", cadence=self.cadence)
        return True

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, *args: object) -> None:
        self.release()


__all__ = ["CycleLease"]
