"""
Test configuration and fixtures for unit tests
"""
import json
import os
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from moto import mock_aws

from alb_log_forwarder.config import get_settings
from alb_log_forwarder.models.notification import NotificationEvent
from alb_log_forwarder.services import pipeline as pipeline_module
from alb_log_forwarder.services.formatter import LogBatchFormatter
from alb_log_forwarder.services.parser import LogLineParser
from alb_log_forwarder.services.pipeline import IngestionPipeline
from alb_log_forwarder.services.watermark import NotificationDeduplicator


# Line from the ALB documentation (plain HTTP listener, newer format with trailing fields)
SAMPLE_HTTP_LINE = (
    'http 2018-07-02T22:23:00.186641Z app/my-loadbalancer/50dc6c495c0c9188 '
    '192.168.131.39:2817 10.0.0.1:80 0.000 0.001 0.000 200 200 34 366 '
    '"GET http://www.example.com:80/ HTTP/1.1" "curl/7.46.0" - - '
    'arn:aws:elasticloadbalancing:us-east-2:123456789012:targetgroup/my-targets/73e2d6bc24d8a067 '
    '"Root=1-58337262-36d228ad5d99923122bbe354" "-" "-" '
    '0 2018-07-02T22:22:48.364000Z "forward" "-" "-" "10.0.0.1:80" "200" "-" "-" TID_1234'
)

# HTTPS listener with TLS fields, domain name and certificate ARN
SAMPLE_HTTPS_LINE = (
    'https 2018-07-02T22:23:00.186641Z app/my-loadbalancer/50dc6c495c0c9188 '
    '192.168.131.39:2817 10.0.0.1:80 0.086 0.048 0.037 200 200 0 57 '
    '"GET https://www.example.com:443/ HTTP/1.1" "curl/7.46.0" ECDHE-RSA-AES128-GCM-SHA256 TLSv1.2 '
    'arn:aws:elasticloadbalancing:us-east-2:123456789012:targetgroup/my-targets/73e2d6bc24d8a067 '
    '"Root=1-58337281-1d84f3d73c47ec4e58577259" "www.example.com" '
    '"arn:aws:acm:us-east-2:123456789012:certificate/12345678-1234-1234-1234-123456789012" '
    '1 2018-07-02T22:22:48.364000Z "authenticate,forward" "-" "-" "10.0.0.1:80" "200" "-" "-"'
)

# Minimal line without domain name / certificate fields
SAMPLE_MINIMAL_LINE = (
    'http 2023-01-01T00:00:00.000000Z my-elb 1.2.3.4:80 5.6.7.8:80 0.001 0.002 0.003 200 200 100 200 '
    '"GET http://x/ HTTP/1.1" "curl/7" - - arn:target "trace-1" 1 2023-01-01T00:00:00.000000Z '
    '"forward" "-" "-" "arn:tg" "200" '
)


def make_s3_record(
    key: str = 'AWSLogs/123456789012/elasticloadbalancing/us-east-1/2023/01/01/log.gz',
    bucket: str = 'alb-logs',
    event_time: str = '2023-01-01T00:05:00.000Z',
    event_name: str = 'ObjectCreated:Put'
) -> dict:
    """Build one entry of an S3 event Records list"""
    return {
        'eventVersion': '2.1',
        'eventSource': 'aws:s3',
        'eventName': event_name,
        'eventTime': event_time,
        's3': {
            'bucket': {'name': bucket},
            'object': {'key': key, 'size': 1024}
        }
    }


def make_sns_envelope(*records: dict) -> str:
    """Build an SNS HTTP notification body wrapping an S3 event"""
    return json.dumps({
        'Type': 'Notification',
        'MessageId': 'test-message-id',
        'TopicArn': 'arn:aws:sns:us-east-1:123456789012:alb-logs',
        'Message': json.dumps({'Records': list(records)}),
        'Timestamp': '2023-01-01T00:05:01.000Z'
    })


def make_event(
    event_time: datetime = datetime(2023, 1, 1, 0, 5, tzinfo=timezone.utc),
    event_name: str = 'ObjectCreated:Put',
    bucket: str = 'alb-logs',
    key: str = 'AWSLogs/log.gz'
) -> NotificationEvent:
    return NotificationEvent(event_name=event_name, event_time=event_time, bucket_name=bucket, object_key=key)


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'


@pytest.fixture
def mock_aws_services(aws_credentials):
    """Mock all AWS services."""
    with mock_aws():
        yield


@pytest.fixture
def environment_variables():
    """Set up test environment variables."""
    test_env = {
        'LOKI_USER': '123456',
        'LOKI_PASSWORD': 'test-token',
        'LOKI_ENDPOINT': 'logs-prod-us-central1.grafana.net/loki/api/v1/push',
        'AWS_REGION': 'us-east-1',
        'MAX_BATCH_SIZE': '1000',
        'SQS_QUEUE_URL': 'https://sqs.us-east-1.amazonaws.com/123456789012/test-queue'
    }

    # Store original values
    original_env = {}
    for key, value in test_env.items():
        original_env[key] = os.environ.get(key)
        os.environ[key] = value

    yield test_env

    # Restore original values
    for key, value in original_env.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def reset_default_pipeline():
    """Forget the cached settings and process-wide pipeline around a test."""
    get_settings.cache_clear()
    pipeline_module._default_pipeline = None
    yield
    if pipeline_module._default_pipeline is not None:
        pipeline_module._default_pipeline.close()
    pipeline_module._default_pipeline = None
    get_settings.cache_clear()


@pytest.fixture
def mock_fetcher():
    """Fetcher returning a two-line blob."""
    fetcher = Mock()
    fetcher.fetch.return_value = f"{SAMPLE_HTTP_LINE}\n{SAMPLE_HTTPS_LINE}\n"
    return fetcher


@pytest.fixture
def mock_loki_client():
    return Mock()


@pytest.fixture
def pipeline(mock_fetcher, mock_loki_client):
    """Pipeline with real parser, formatter and deduplicator, and mocked I/O."""
    pipeline = IngestionPipeline(
        deduplicator=NotificationDeduplicator(initial_watermark=datetime(2020, 1, 1, tzinfo=timezone.utc)),
        fetcher=mock_fetcher,
        parser=LogLineParser(),
        formatter=LogBatchFormatter(),
        client=mock_loki_client,
        max_workers=2
    )
    yield pipeline
    pipeline.close()
