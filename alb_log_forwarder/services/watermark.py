"""
Watermark-based deduplication of S3 event notifications
"""

import logging
import threading
from datetime import datetime, timezone

from alb_log_forwarder.models.notification import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationDeduplicator:
    """
    Tracks the event time of the most recently accepted notification.

    An event is accepted only if it is strictly newer than the watermark; accepting it
    advances the watermark. The compare-and-advance runs under a lock so concurrent
    callers can never both accept events with equal or decreasing timestamps. Two
    distinct events with the same recorded time are indistinguishable and only the
    first is accepted.

    The watermark lives in memory only and starts at construction time, so events
    created before the process started are ignored.
    """

    def __init__(self, initial_watermark: datetime = None):
        if initial_watermark is None:
            initial_watermark = datetime.now(timezone.utc)
        elif initial_watermark.tzinfo is None:
            initial_watermark = initial_watermark.replace(tzinfo=timezone.utc)
        self._watermark = initial_watermark
        self._lock = threading.Lock()

    @property
    def watermark(self) -> datetime:
        with self._lock:
            return self._watermark

    def accept(self, event: NotificationEvent) -> bool:
        """
        Decide whether an event should be processed

        Args:
            event: Notification to check

        Returns:
            True if the event is newer than the watermark (the watermark is advanced),
            False otherwise (no state change)
        """
        with self._lock:
            if event.event_time <= self._watermark:
                logger.info(
                    f"Rejecting {event.event_name} for {event.location}: event time "
                    f"{event.event_time.isoformat()} is not after watermark {self._watermark.isoformat()}"
                )
                return False

            self._watermark = event.event_time

        logger.info(f"Accepted {event.event_name} for {event.location} at {event.event_time.isoformat()}")
        return True
