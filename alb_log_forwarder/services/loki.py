"""
Client for the Loki (Grafana Cloud Logs) push API
"""

import logging

import requests
from requests.auth import HTTPBasicAuth

from alb_log_forwarder.exceptions import SubmitError
from alb_log_forwarder.models.batch import IngestionBatch

logger = logging.getLogger(__name__)


def normalize_endpoint(endpoint: str) -> str:
    """
    Ensure the push endpoint carries a scheme

    Grafana Cloud endpoints are often configured as bare host/path values, e.g.
    logs-prod-us-central1.grafana.net/loki/api/v1/push
    """
    endpoint = endpoint.strip()
    if not endpoint.startswith(('http://', 'https://')):
        return f"https://{endpoint}"
    return endpoint


class LokiClient:
    """Submits IngestionBatch objects to a Loki push endpoint with basic auth"""

    def __init__(self, endpoint: str, user: str, token: str, timeout: float = 10.0, session: requests.Session = None):
        """
        Initialize the client

        Args:
            endpoint: Push URL (https:// is assumed when no scheme is given)
            user: Grafana Cloud Logs user ID
            token: Token with logs write permission
            timeout: Request timeout in seconds
            session: Optional requests session to reuse
        """
        self.endpoint = normalize_endpoint(endpoint)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = HTTPBasicAuth(user, token)

    def push(self, batch: IngestionBatch) -> None:
        """
        Submit one batch in a single request

        Raises:
            SubmitError: If the endpoint is unreachable or answers with a non-2xx status
        """
        try:
            response = self.session.post(
                self.endpoint,
                json=batch.to_push_payload(),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise SubmitError(f"Failed to reach Loki endpoint {self.endpoint}: {str(e)}")

        if not 200 <= response.status_code < 300:
            raise SubmitError(
                f"Loki rejected batch of {len(batch.entries)} entries: HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code
            )

        logger.info(f"Pushed {len(batch.entries)} entries to Loki (HTTP {response.status_code})")

    def close(self) -> None:
        self.session.close()
