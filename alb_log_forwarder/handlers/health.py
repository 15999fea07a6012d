"""
Health check handler for the log forwarder
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from alb_log_forwarder import __version__
from alb_log_forwarder.config import ForwarderSettings
from alb_log_forwarder.services.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)


def get_health_status(
    settings: Optional[ForwarderSettings],
    pipeline: Optional[IngestionPipeline] = None,
    configuration_error: Optional[str] = None
) -> Dict[str, Any]:
    """
    Get health status information

    Args:
        settings: Current forwarder settings (None when they failed to load)
        pipeline: Running pipeline, if one has been built
        configuration_error: Why the settings failed to load

    Returns:
        Dictionary containing health status
    """
    health_data = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "alb-log-forwarder",
        "version": __version__,
        "checks": {}
    }

    if settings is None:
        health_data["checks"]["configuration"] = {
            "status": "unhealthy",
            "error": configuration_error or "settings not loaded"
        }
        health_data["status"] = "unhealthy"
        logger.error(f"Health check failed, invalid configuration: {configuration_error}")
    elif settings.missing_loki_settings():
        missing = settings.missing_loki_settings()
        health_data["checks"]["configuration"] = {
            "status": "unhealthy",
            "missing": missing
        }
        health_data["status"] = "unhealthy"
        logger.error(f"Health check failed, missing configuration: {missing}")
    else:
        health_data["checks"]["configuration"] = {
            "status": "healthy",
            "stream_labels": settings.stream_labels
        }

    if pipeline is not None:
        health_data["checks"]["watermark"] = {
            "status": "healthy",
            "value": pipeline.deduplicator.watermark.isoformat()
        }

    return health_data
