"""
Exception hierarchy for the log forwarding pipeline
"""

from typing import Optional


class ForwarderError(Exception):
    """Base class for all forwarder errors"""
    pass


class NonRecoverableError(ForwarderError):
    """Exception for errors that should not be retried (the event is dropped)"""
    pass


class ConfigurationError(ForwarderError):
    """Raised when required settings are missing or invalid"""
    pass


class NotificationMalformedError(NonRecoverableError):
    """Exception for SNS/S3 notifications that cannot be decoded"""
    pass


class FetchError(NonRecoverableError):
    """
    Raised when a log object cannot be retrieved or decompressed.

    ``reason`` is one of ``not_found``, ``permission``, ``decompression`` or ``storage``.
    """

    def __init__(self, message: str, bucket: str = None, key: str = None, reason: str = "storage"):
        super().__init__(message)
        self.bucket = bucket
        self.key = key
        self.reason = reason


class ParseError(ForwarderError):
    """Raised when a log line does not match the access log grammar"""

    def __init__(self, message: str, field: Optional[str] = None, line_number: Optional[int] = None):
        super().__init__(message)
        self.field = field
        self.line_number = line_number


class SubmitError(NonRecoverableError):
    """Raised when the Loki push endpoint is unreachable or rejects a batch"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
