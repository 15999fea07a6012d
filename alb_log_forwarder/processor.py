#!/usr/bin/env python3
"""
ALB log forwarder entry points
Supports SNS-triggered Lambda, HTTP webhook serving, SQS polling, and manual input modes
"""

import argparse
import logging
import sys
import time
from typing import Any, Dict, Optional

import boto3

from alb_log_forwarder.config import get_settings
from alb_log_forwarder.exceptions import ConfigurationError, NotificationMalformedError
from alb_log_forwarder.models.notification import parse_s3_event
from alb_log_forwarder.services.pipeline import IngestionPipeline, get_pipeline, summarize_outcomes
from alb_log_forwarder.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """
    AWS Lambda handler for SNS notifications of new ALB log objects

    The SNS ``Message`` holds the S3 event as one layer of JSON. Failures are logged
    and never raised, so SNS does not retry the invocation.
    """
    records = event.get('Records', [])
    logger.info(f"Processing {len(records)} SNS records")

    pipeline = get_pipeline()
    if pipeline is None:
        logger.error("Ingestion pipeline is not configured, dropping SNS records")
        return {'events': 0, 'processed': 0, 'rejected': 0, 'ignored': 0, 'failed': 0, 'records': 0}

    outcomes = []
    for record in records:
        try:
            message = record['Sns']['Message']
            events = parse_s3_event(message)
        except (KeyError, TypeError) as e:
            subscription = record.get('EventSubscriptionArn', 'unknown') if isinstance(record, dict) else 'unknown'
            logger.warning(f"Invalid SNS record {subscription}: missing {str(e)}")
            continue
        except NotificationMalformedError as e:
            logger.warning(f"Invalid S3 event in SNS record: {str(e)}")
            continue

        outcomes.extend(pipeline.process_events(events))

    stats = summarize_outcomes(outcomes)
    logger.info(
        f"Processing complete. Events: {stats['events']}, Processed: {stats['processed']}, "
        f"Rejected: {stats['rejected']}, Ignored: {stats['ignored']}, Failed: {stats['failed']}"
    )
    return stats


def serve_mode(host: str, port: int) -> None:
    """Serve the SNS webhook over HTTP"""
    import uvicorn
    from alb_log_forwarder.app import app

    logger.info(f"Listening for SNS notifications on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


def sqs_polling_mode(pipeline: IngestionPipeline, queue_url: str, region: str, max_polls: Optional[int] = None) -> None:
    """
    SQS polling mode for a queue subscribed to the SNS topic

    Message bodies are SNS envelopes. Every received message is deleted after
    processing, since failed events are not retried.

    Args:
        pipeline: Pipeline to process notifications with
        queue_url: URL of the subscribed SQS queue
        region: AWS region of the queue
        max_polls: Stop after this many receive calls (poll forever when None)
    """
    sqs_client = boto3.client('sqs', region_name=region)
    logger.info(f"Starting SQS polling mode for queue: {queue_url}")

    polls = 0
    while max_polls is None or polls < max_polls:
        polls += 1
        try:
            response = sqs_client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=10,
                WaitTimeSeconds=20,  # Long polling
                VisibilityTimeout=300
            )

            messages = response.get('Messages', [])
            if not messages:
                logger.info("No messages received, continuing to poll...")
                continue

            logger.info(f"Received {len(messages)} messages from SQS")

            for message in messages:
                outcomes = pipeline.handle_notification(message['Body'])
                stats = summarize_outcomes(outcomes)
                logger.info(
                    f"Message {message['MessageId']} processed. Events: {stats['events']}, "
                    f"Processed: {stats['processed']}, Failed: {stats['failed']}"
                )

                try:
                    sqs_client.delete_message(
                        QueueUrl=queue_url,
                        ReceiptHandle=message['ReceiptHandle']
                    )
                except Exception as delete_error:
                    logger.error(f"Failed to delete message {message['MessageId']}: {str(delete_error)}")

        except KeyboardInterrupt:
            logger.info("Received interrupt signal, shutting down...")
            break
        except Exception as e:
            logger.error(f"Error in SQS polling: {str(e)}")
            time.sleep(5)  # Wait before retrying


def manual_input_mode(pipeline: IngestionPipeline, input_data: str) -> Dict[str, int]:
    """
    Manual input mode for development/testing
    Processes one SNS envelope read from stdin
    """
    if not input_data.strip():
        raise NotificationMalformedError("No input data provided")

    stats = summarize_outcomes(pipeline.handle_notification(input_data.strip()))
    logger.info(
        f"Processed manual input. Events: {stats['events']}, Processed: {stats['processed']}, "
        f"Rejected: {stats['rejected']}, Failed: {stats['failed']}"
    )
    return stats


def main(argv=None) -> int:
    """
    Main entry point for standalone execution
    """
    parser = argparse.ArgumentParser(description='Forward ALB access logs from S3 to Loki')
    parser.add_argument('--mode', choices=['serve', 'sqs', 'manual'], default='serve',
                        help='Execution mode: serve (SNS HTTP webhook), sqs (poll queue), or manual (stdin input)')
    parser.add_argument('--host', default='0.0.0.0', help='Listen address for serve mode')
    parser.add_argument('--port', type=int, default=None, help='Listen port for serve mode (default: LISTEN_PORT)')

    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {str(e)}")
        return 1

    setup_logging(settings.log_level)

    if args.mode == 'serve':
        serve_mode(args.host, args.port or settings.listen_port)
        return 0

    pipeline = get_pipeline()
    if pipeline is None:
        return 1

    try:
        if args.mode == 'sqs':
            if not settings.sqs_queue_url:
                logger.error("SQS_QUEUE_URL environment variable not set")
                return 1
            sqs_polling_mode(pipeline, settings.sqs_queue_url, settings.aws_region)
        else:
            logger.info("Manual input mode - reading SNS notification JSON from stdin")
            try:
                manual_input_mode(pipeline, sys.stdin.read())
            except NotificationMalformedError as e:
                logger.error(f"Error processing manual input: {str(e)}")
                return 1
    finally:
        pipeline.close()

    return 0


if __name__ == '__main__':
    sys.exit(main())
