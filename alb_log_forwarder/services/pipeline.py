"""
Orchestration of the ALB log ingestion pipeline

notification -> deduplicate -> fetch object -> parse lines -> format batches -> push to Loki
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from alb_log_forwarder.config import ForwarderSettings, get_settings
from alb_log_forwarder.exceptions import ConfigurationError, FetchError, NotificationMalformedError, SubmitError
from alb_log_forwarder.models.notification import NotificationEvent, parse_sns_envelope
from alb_log_forwarder.services.fetcher import ObjectFetcher
from alb_log_forwarder.services.formatter import LogBatchFormatter
from alb_log_forwarder.services.loki import LokiClient
from alb_log_forwarder.services.parser import LogLineParser
from alb_log_forwarder.services.watermark import NotificationDeduplicator

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    EVENT_RECEIVED = "event_received"
    REJECTED = "rejected"
    IGNORED = "ignored"
    FETCHING = "fetching"
    FETCH_FAILED = "fetch_failed"
    PARSING = "parsing"
    FORMATTING = "formatting"
    SUBMITTING = "submitting"
    SUBMIT_FAILED = "submit_failed"
    DONE = "done"


class EventOutcome(BaseModel):
    """What happened to one notification event"""
    event: NotificationEvent
    state: PipelineState = PipelineState.EVENT_RECEIVED
    records_parsed: int = 0
    lines_skipped: int = 0
    batches_submitted: int = 0
    batches_failed: int = 0
    error: Optional[str] = None


class IngestionPipeline:
    """
    Runs notification events through deduplication, retrieval, parsing, formatting
    and submission.

    Acceptance is decided on the calling thread in arrival order; the slow part of
    each accepted event runs on a bounded thread pool. Fetching and parsing run
    concurrently; formatting and pushing hold the stream lock, because all batches
    share one label set and Loki rejects entries older than the last one pushed.
    """

    def __init__(
        self,
        deduplicator: NotificationDeduplicator,
        fetcher: ObjectFetcher,
        parser: LogLineParser,
        formatter: LogBatchFormatter,
        client: LokiClient,
        max_workers: int = 4
    ):
        self.deduplicator = deduplicator
        self.fetcher = fetcher
        self.parser = parser
        self.formatter = formatter
        self.client = client
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='alb-ingest')
        self._stream_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: ForwarderSettings) -> 'IngestionPipeline':
        """
        Build a pipeline with real S3 and Loki collaborators

        Raises:
            ConfigurationError: If Loki settings are missing
        """
        settings.validate_for_submission()
        return cls(
            deduplicator=NotificationDeduplicator(),
            fetcher=ObjectFetcher(region=settings.aws_region, timeout=settings.fetch_timeout),
            parser=LogLineParser(),
            formatter=LogBatchFormatter(
                stream_labels=settings.stream_labels,
                max_entries_per_batch=settings.max_batch_size,
                max_bytes_per_batch=settings.max_batch_bytes
            ),
            client=LokiClient(
                endpoint=settings.loki_endpoint,
                user=settings.loki_user,
                token=settings.loki_password,
                timeout=settings.submit_timeout
            ),
            max_workers=settings.max_workers
        )

    def handle_notification(self, body: Union[str, bytes]) -> List[EventOutcome]:
        """
        Process an SNS envelope (webhook or SQS body)

        A malformed envelope is logged and dropped; it never raises.

        Returns:
            One outcome per decoded event, in message order
        """
        try:
            events = parse_sns_envelope(body)
        except NotificationMalformedError as e:
            logger.warning(f"Dropping malformed notification: {str(e)}")
            return []

        logger.info(f"Notification contains {len(events)} S3 event record(s)")
        return self.process_events(events)

    def process_events(self, events: Iterable[NotificationEvent]) -> List[EventOutcome]:
        """Deduplicate events in order, then process accepted ones concurrently and wait for them"""
        outcomes = []
        pending = []

        for event in events:
            outcome = EventOutcome(event=event)
            outcomes.append(outcome)
            if not self.deduplicator.accept(event):
                outcome.state = PipelineState.REJECTED
                continue
            pending.append((outcome, self._executor.submit(self._process_accepted, outcome)))

        for outcome, future in pending:
            try:
                future.result()
            except Exception as e:
                logger.error(f"Unexpected error processing {outcome.event.location}: {str(e)}", exc_info=True)
                outcome.error = str(e)

        return outcomes

    def handle_event(self, event: NotificationEvent) -> EventOutcome:
        """Run a single event through the pipeline on the calling thread"""
        outcome = EventOutcome(event=event)
        if not self.deduplicator.accept(event):
            outcome.state = PipelineState.REJECTED
            return outcome
        return self._process_accepted(outcome)

    def _process_accepted(self, outcome: EventOutcome) -> EventOutcome:
        event = outcome.event

        if not event.is_object_put:
            logger.info(f"Ignoring {event.event_name} event for {event.location}")
            outcome.state = PipelineState.IGNORED
            return outcome

        outcome.state = PipelineState.FETCHING
        try:
            blob = self.fetcher.fetch(event.bucket_name, event.object_key)
        except FetchError as e:
            # The watermark stays advanced; this object will not be retried
            logger.error(f"Couldn't get log data for {event.location} ({e.reason}): {str(e)}")
            outcome.state = PipelineState.FETCH_FAILED
            outcome.error = str(e)
            return outcome

        outcome.state = PipelineState.PARSING
        records, skipped = self.parser.parse_blob_with_stats(blob)
        outcome.records_parsed = len(records)
        outcome.lines_skipped = skipped

        # Timestamps are assigned at format time, so no other event may push in between
        with self._stream_lock:
            outcome.state = PipelineState.FORMATTING
            batches = self.formatter.format(records)

            outcome.state = PipelineState.SUBMITTING
            for index, batch in enumerate(batches, start=1):
                try:
                    self.client.push(batch)
                    outcome.batches_submitted += 1
                except SubmitError as e:
                    logger.error(f"Logging error for {event.location} batch {index}/{len(batches)}: {str(e)}")
                    outcome.batches_failed += 1
                    outcome.error = str(e)

        outcome.state = PipelineState.SUBMIT_FAILED if outcome.batches_failed else PipelineState.DONE
        logger.info(
            f"Finished {event.location}: {outcome.records_parsed} records, {outcome.lines_skipped} skipped lines, "
            f"batches: Success: {outcome.batches_submitted}, Failed: {outcome.batches_failed}"
        )
        return outcome

    def close(self) -> None:
        """Wait for in-flight events and release the HTTP session"""
        self._executor.shutdown(wait=True)
        self.client.close()


def summarize_outcomes(outcomes: Iterable[EventOutcome]) -> Dict[str, int]:
    """Count outcomes by final state, for log lines and handler responses"""
    stats = {
        'events': 0,
        'processed': 0,
        'rejected': 0,
        'ignored': 0,
        'failed': 0,
        'records': 0,
    }
    for outcome in outcomes:
        stats['events'] += 1
        stats['records'] += outcome.records_parsed
        if outcome.state == PipelineState.DONE:
            stats['processed'] += 1
        elif outcome.state == PipelineState.REJECTED:
            stats['rejected'] += 1
        elif outcome.state == PipelineState.IGNORED:
            stats['ignored'] += 1
        else:
            stats['failed'] += 1
    return stats


_default_pipeline: Optional[IngestionPipeline] = None
_default_pipeline_lock = threading.Lock()


def get_pipeline() -> Optional[IngestionPipeline]:
    """
    Return the process-wide pipeline, building it from the environment on first use

    The pipeline owns the watermark, so every request and poll in a process must
    share it. Returns None when the forwarder is not configured.
    """
    global _default_pipeline
    with _default_pipeline_lock:
        if _default_pipeline is None:
            try:
                _default_pipeline = IngestionPipeline.from_settings(get_settings())
            except ConfigurationError as e:
                logger.error(f"Cannot build ingestion pipeline: {str(e)}")
                return None
        return _default_pipeline
