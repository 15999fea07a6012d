"""
Unit tests for forwarder settings
"""
import pytest

from alb_log_forwarder.config import ForwarderSettings, get_settings
from alb_log_forwarder.exceptions import ConfigurationError


class TestForwarderSettings:
    """Test environment loading and validation."""

    def test_defaults(self):
        settings = ForwarderSettings.from_env({})

        assert settings.job_label == 'alb-logger-1'
        assert settings.stream_labels == {'job': 'alb-logger-1', 'level': 'INFO'}
        assert settings.max_batch_size == 1000
        assert settings.listen_port == 3456
        assert settings.aws_region == 'us-east-1'

    def test_values_from_environment(self):
        settings = ForwarderSettings.from_env({
            'LOKI_USER': '123456',
            'LOKI_PASSWORD': 'secret',
            'LOKI_ENDPOINT': 'logs.example.net/loki/api/v1/push',
            'LOKI_JOB': 'alb-logger-2',
            'MAX_BATCH_SIZE': '250',
            'SUBMIT_TIMEOUT': '2.5',
            'LOG_LEVEL': 'debug',
        })

        assert settings.loki_user == '123456'
        assert settings.stream_labels['job'] == 'alb-logger-2'
        assert settings.max_batch_size == 250
        assert settings.submit_timeout == 2.5
        assert settings.log_level == 'DEBUG'

    def test_blank_values_use_defaults(self):
        settings = ForwarderSettings.from_env({'MAX_WORKERS': '  ', 'LOKI_JOB': ''})

        assert settings.max_workers == 4
        assert settings.job_label == 'alb-logger-1'

    def test_invalid_number(self):
        with pytest.raises(ConfigurationError):
            ForwarderSettings.from_env({'MAX_BATCH_SIZE': 'lots'})

    def test_out_of_range(self):
        with pytest.raises(ConfigurationError):
            ForwarderSettings.from_env({'MAX_WORKERS': '0'})

    def test_invalid_log_level(self):
        with pytest.raises(ConfigurationError):
            ForwarderSettings.from_env({'LOG_LEVEL': 'LOUD'})

    def test_missing_loki_settings(self):
        settings = ForwarderSettings.from_env({'LOKI_USER': '123456'})

        assert settings.missing_loki_settings() == ['LOKI_PASSWORD', 'LOKI_ENDPOINT']
        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_for_submission()
        assert 'LOKI_PASSWORD' in str(exc_info.value)

    def test_get_settings_reads_process_environment(self, environment_variables, reset_default_pipeline):
        settings = get_settings()

        assert settings.loki_user == environment_variables['LOKI_USER']
        assert settings.sqs_queue_url == environment_variables['SQS_QUEUE_URL']
        assert get_settings() is settings
