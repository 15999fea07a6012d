"""
HTTP endpoint receiving SNS notifications for new ALB log objects
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from mangum import Mangum

from alb_log_forwarder import __version__
from alb_log_forwarder.config import get_settings
from alb_log_forwarder.exceptions import ConfigurationError
from alb_log_forwarder.handlers.health import get_health_status
from alb_log_forwarder.services.pipeline import IngestionPipeline, get_pipeline
from alb_log_forwarder.utils.logger import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="ALB Log Forwarder",
    description="Receives SNS notifications for ALB access logs stored in S3 and forwards them to Loki",
    version=__version__
)


@app.post("/")
async def receive_notification(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: Optional[IngestionPipeline] = Depends(get_pipeline)
) -> Dict[str, Any]:
    """
    Acknowledge an SNS notification and process it in the background

    Always answers 200 so SNS does not redeliver, whatever the processing outcome.
    """
    body = await request.body()

    if pipeline is None:
        logger.error("Ingestion pipeline is not configured, dropping notification")
    else:
        background_tasks.add_task(pipeline.handle_notification, body)

    return {"status": "accepted"}


@app.get("/health")
async def health_check(pipeline: Optional[IngestionPipeline] = Depends(get_pipeline)):
    """Health check endpoint"""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        settings = None
        configuration_error = str(e)
    else:
        configuration_error = None

    try:
        return get_health_status(settings, pipeline, configuration_error=configuration_error)
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Health check failed")


# Lambda handler using Mangum (API Gateway in front of the webhook)
def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """
    AWS Lambda handler using Mangum to adapt FastAPI to Lambda

    Args:
        event: API Gateway event
        context: Lambda context

    Returns:
        API Gateway response
    """
    handler = Mangum(app, lifespan="off")

    try:
        logger.info(f"Processing request: {event.get('httpMethod', 'unknown')} {event.get('path', 'unknown')}")
        return handler(event, context)
    except Exception as e:
        # SNS must still get its acknowledgement
        logger.error(f"Unhandled error in Lambda handler: {str(e)}", exc_info=True)
        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"status": "accepted"})
        }
