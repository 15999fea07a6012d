"""
Pydantic models and decoders for S3 event notifications delivered over SNS
"""

import json
import logging
import urllib.parse
from datetime import datetime, timezone
from typing import Any, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from alb_log_forwarder.exceptions import NotificationMalformedError

logger = logging.getLogger(__name__)

OBJECT_CREATED_PUT = "ObjectCreated:Put"


class NotificationEvent(BaseModel):
    """A single object-creation record from an S3 event notification"""
    model_config = ConfigDict(frozen=True)

    event_name: str = Field(..., min_length=1, description="S3 event name, e.g. ObjectCreated:Put")
    event_time: datetime = Field(..., description="Time the object was created")
    bucket_name: str = Field(..., min_length=1)
    object_key: str = Field(..., min_length=1)

    @field_validator('event_time')
    @classmethod
    def ensure_utc(cls, v):
        """Treat naive timestamps as UTC so comparisons never mix aware and naive values"""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def is_object_put(self) -> bool:
        return self.event_name == OBJECT_CREATED_PUT

    @property
    def location(self) -> str:
        return f"s3://{self.bucket_name}/{self.object_key}"

    @classmethod
    def from_s3_record(cls, record: Dict[str, Any]) -> 'NotificationEvent':
        """
        Build an event from one entry of an S3 event's ``Records`` list

        Raises:
            NotificationMalformedError: If required keys are missing or invalid
        """
        try:
            raw_key = record['s3']['object']['key']
            if not isinstance(raw_key, str):
                raise NotificationMalformedError(f"Invalid S3 event record: object key is {type(raw_key).__name__}")
            return cls(
                event_name=record['eventName'],
                event_time=record['eventTime'],
                bucket_name=record['s3']['bucket']['name'],
                object_key=urllib.parse.unquote_plus(raw_key),
            )
        except (KeyError, TypeError) as e:
            raise NotificationMalformedError(f"Invalid S3 event record: missing {str(e)}")
        except ValidationError as e:
            raise NotificationMalformedError(f"Invalid S3 event record: {str(e)}")


def parse_s3_event(message: Union[str, Dict[str, Any]]) -> List[NotificationEvent]:
    """
    Decode an S3 event (the SNS ``Message`` payload) into notification events

    Records that cannot be decoded are logged and skipped; the remaining records
    are still returned.

    Args:
        message: S3 event as a JSON string or an already decoded dict

    Returns:
        Notification events in the order they appear in the message

    Raises:
        NotificationMalformedError: If the message is not JSON or has no Records list
    """
    if isinstance(message, str):
        try:
            message = json.loads(message)
        except json.JSONDecodeError as e:
            raise NotificationMalformedError(f"S3 event is not valid JSON: {str(e)}")

    if not isinstance(message, dict) or not isinstance(message.get('Records'), list):
        raise NotificationMalformedError("S3 event has no Records list")

    events = []
    for index, record in enumerate(message['Records']):
        try:
            events.append(NotificationEvent.from_s3_record(record))
        except NotificationMalformedError as e:
            logger.warning(f"Skipping record {index} of S3 event: {str(e)}")

    return events


def parse_sns_envelope(body: Union[str, bytes]) -> List[NotificationEvent]:
    """
    Decode an SNS HTTP/SQS envelope, whose ``Message`` field holds the S3 event
    as a second layer of JSON

    Raises:
        NotificationMalformedError: If either JSON layer cannot be decoded
    """
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')

    try:
        envelope = json.loads(body)
        message = envelope['Message']
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise NotificationMalformedError(f"Invalid SNS message format: {str(e)}")

    return parse_s3_event(message)
