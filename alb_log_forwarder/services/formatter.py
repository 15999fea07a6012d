"""
Builds Loki push batches from parsed access log records
"""

import json
import logging
import threading
import time
from typing import Dict, List, Sequence

from alb_log_forwarder.models.batch import BatchEntry, IngestionBatch

logger = logging.getLogger(__name__)

DEFAULT_STREAM_LABELS = {'job': 'alb-logger-1', 'level': 'INFO'}


def serialize_record(record: Dict[str, str]) -> str:
    """Compact JSON encoding of a record, keeping field order"""
    return json.dumps(record, separators=(',', ':'))


class LogBatchFormatter:
    """
    Turns parsed records into IngestionBatch objects.

    Entries are stamped with the wall-clock time at formatting, not the time field of
    the log line, so one stream never receives out-of-order timestamps. Each process
    pushing concurrently needs its own 'job' label for the same reason.
    """

    def __init__(
        self,
        stream_labels: Dict[str, str] = None,
        max_entries_per_batch: int = 1000,
        max_bytes_per_batch: int = 1048576
    ):
        if max_entries_per_batch < 1 or max_bytes_per_batch < 1:
            raise ValueError("Batch limits must be positive")
        self.stream_labels = dict(stream_labels or DEFAULT_STREAM_LABELS)
        self.max_entries_per_batch = max_entries_per_batch
        self.max_bytes_per_batch = max_bytes_per_batch
        self._last_timestamp_ns = 0
        self._clock_lock = threading.Lock()

    def _next_timestamp_ns(self) -> int:
        # Never go backwards, even if the system clock is adjusted
        with self._clock_lock:
            timestamp_ns = max(time.time_ns(), self._last_timestamp_ns)
            self._last_timestamp_ns = timestamp_ns
        return timestamp_ns

    def format(self, records: Sequence[Dict[str, str]]) -> List[IngestionBatch]:
        """
        Format records into one or more push batches

        All records go into a single batch unless it would exceed the entry count or
        byte limits, in which case further batches are started.

        Args:
            records: Parsed log records

        Returns:
            List of batches, empty when there are no records
        """
        batches = []
        current_entries = []
        current_bytes = 0

        for record in records:
            line = serialize_record(record)
            line_size = len(line.encode('utf-8'))

            if current_entries and (
                len(current_entries) >= self.max_entries_per_batch or
                current_bytes + line_size > self.max_bytes_per_batch
            ):
                batches.append(IngestionBatch(stream_labels=self.stream_labels, entries=current_entries))
                current_entries = []
                current_bytes = 0

            current_entries.append(BatchEntry(timestamp_ns=self._next_timestamp_ns(), line=line))
            current_bytes += line_size

        if current_entries:
            batches.append(IngestionBatch(stream_labels=self.stream_labels, entries=current_entries))

        logger.debug(f"Formatted {len(records)} records into {len(batches)} batch(es)")
        return batches
