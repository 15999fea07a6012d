"""
Environment-driven settings for the log forwarder
"""

import os
from functools import lru_cache
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from alb_log_forwarder.exceptions import ConfigurationError


# Environment variable -> settings field
ENVIRONMENT_FIELDS = {
    'LOKI_USER': 'loki_user',
    'LOKI_PASSWORD': 'loki_password',
    'LOKI_ENDPOINT': 'loki_endpoint',
    'LOKI_JOB': 'job_label',
    'LOKI_LEVEL': 'level_label',
    'AWS_REGION': 'aws_region',
    'MAX_BATCH_SIZE': 'max_batch_size',
    'MAX_BATCH_BYTES': 'max_batch_bytes',
    'MAX_WORKERS': 'max_workers',
    'FETCH_TIMEOUT': 'fetch_timeout',
    'SUBMIT_TIMEOUT': 'submit_timeout',
    'SQS_QUEUE_URL': 'sqs_queue_url',
    'LISTEN_PORT': 'listen_port',
    'LOG_LEVEL': 'log_level',
}


class ForwarderSettings(BaseModel):
    """Runtime settings, normally loaded with ``ForwarderSettings.from_env()``"""
    loki_user: Optional[str] = Field(default=None, description="Grafana Cloud Logs user ID")
    loki_password: Optional[str] = Field(default=None, description="Token with logs write permission")
    loki_endpoint: Optional[str] = Field(default=None, description="Loki push URL, scheme optional")
    job_label: str = Field(default="alb-logger-1", min_length=1, description="Value of the 'job' stream label")
    level_label: str = Field(default="INFO", min_length=1, description="Value of the 'level' stream label")
    aws_region: str = Field(default="us-east-1")
    max_batch_size: int = Field(default=1000, ge=1, description="Maximum entries per push request")
    max_batch_bytes: int = Field(default=1048576, ge=1, description="Maximum line bytes per push request")
    max_workers: int = Field(default=4, ge=1, description="Concurrent events processed per notification")
    fetch_timeout: float = Field(default=10.0, gt=0)
    submit_timeout: float = Field(default=10.0, gt=0)
    sqs_queue_url: Optional[str] = None
    listen_port: int = Field(default=3456, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Normalise and validate the log level name"""
        v = v.upper()
        if v not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError('log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL')
        return v

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> 'ForwarderSettings':
        """
        Build settings from environment variables

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            ForwarderSettings instance

        Raises:
            ConfigurationError: If a value cannot be converted or is out of range
        """
        if environ is None:
            environ = os.environ

        values = {}
        for env_name, field_name in ENVIRONMENT_FIELDS.items():
            value = environ.get(env_name)
            if value is not None and value.strip() != '':
                values[field_name] = value.strip()

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid forwarder configuration: {str(e)}")

    def missing_loki_settings(self) -> List[str]:
        """Return the environment variable names of unset Loki settings"""
        required = {
            'LOKI_USER': self.loki_user,
            'LOKI_PASSWORD': self.loki_password,
            'LOKI_ENDPOINT': self.loki_endpoint,
        }
        return [name for name, value in required.items() if not value]

    def validate_for_submission(self) -> None:
        """Raise ConfigurationError if Loki credentials or endpoint are missing"""
        missing = self.missing_loki_settings()
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

    @property
    def stream_labels(self) -> Dict[str, str]:
        """Labels attached to every pushed stream"""
        return {'job': self.job_label, 'level': self.level_label}


@lru_cache()
def get_settings() -> ForwarderSettings:
    """Settings read once from the process environment"""
    return ForwarderSettings.from_env()
