"""Tag-based duplicate suppression for repeatable source events."""
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Prune expired entries once the cache grows past this many keys
PRUNE_THRESHOLD = 1000


class TagDeduplicator:
    """Remembers when a (device, tag) pair was last accepted.

    Best-effort and process-local: it keeps a burst of identical events from
    producing several user-visible notifications, it is not a transactional
    guarantee. Notifications without a tag are always accepted.
    """

    def __init__(self, window: timedelta = timedelta(seconds=60)):
        self.window = window
        self._last_accepted: Dict[Tuple[str, str], datetime] = {}

    def should_accept(self, device_id: str, tag: Optional[str], now: Optional[datetime] = None) -> bool:
        """Accept and record the pair unless it was accepted within the window."""
        if not tag:
            return True

        now = now or datetime.utcnow()
        key = (device_id, tag)
        last = self._last_accepted.get(key)
        if last is not None and now - last < self.window:
            logger.info(f"Suppressed duplicate notification tag={tag} device={device_id}")
            return False

        self._last_accepted[key] = now
        if len(self._last_accepted) > PRUNE_THRESHOLD:
            self.prune(now)
        return True

    def forget(self, device_id: str, tag: str):
        """Drop a pair, e.g. when the enqueue it guarded did not go through."""
        self._last_accepted.pop((device_id, tag), None)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Drop entries whose window has passed. Returns how many were removed."""
        now = now or datetime.utcnow()
        expired = [key for key, seen in self._last_accepted.items() if now - seen >= self.window]
        for key in expired:
            del self._last_accepted[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._last_accepted)
