"""
S3 retrieval and decompression of ALB access log objects
"""

import gzip
import logging
import zlib

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from alb_log_forwarder.exceptions import FetchError

logger = logging.getLogger(__name__)

NOT_FOUND_ERROR_CODES = {'NoSuchKey', 'NoSuchBucket', '404', 'NotFound'}
PERMISSION_ERROR_CODES = {'AccessDenied', '403', 'Forbidden', 'AllAccessDisabled'}


class ObjectFetcher:
    """
    Fetches gzip-compressed log objects from S3 and returns their text.

    Retrieval is all-or-nothing: any failure raises FetchError and no partial
    content is returned.
    """

    def __init__(self, s3_client=None, region: str = "us-east-1", timeout: float = 10.0):
        """
        Initialize the fetcher

        Args:
            s3_client: Existing boto3 S3 client (created lazily when omitted)
            region: AWS region for the lazily created client
            timeout: Connect and read timeout in seconds
        """
        self.region = region
        self.timeout = timeout
        self._s3_client = s3_client

    @property
    def s3_client(self):
        """Lazy initialization of the S3 client"""
        if self._s3_client is None:
            self._s3_client = boto3.client(
                's3',
                region_name=self.region,
                config=Config(
                    connect_timeout=self.timeout,
                    read_timeout=self.timeout,
                    retries={'max_attempts': 1}
                )
            )
        return self._s3_client

    def fetch_bytes(self, bucket: str, key: str) -> bytes:
        """
        Download the raw (compressed) object body

        Raises:
            FetchError: If the object is missing, access is denied, or S3 is unreachable
        """
        try:
            response = self.s3_client.get_object(Bucket=bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            error_code = str(e.response.get('Error', {}).get('Code', ''))
            if error_code in NOT_FOUND_ERROR_CODES:
                reason = 'not_found'
            elif error_code in PERMISSION_ERROR_CODES:
                reason = 'permission'
            else:
                reason = 'storage'
            raise FetchError(
                f"Failed to get s3://{bucket}/{key}: {error_code}: {str(e)}",
                bucket=bucket, key=key, reason=reason
            )
        except BotoCoreError as e:
            raise FetchError(f"Failed to get s3://{bucket}/{key}: {str(e)}", bucket=bucket, key=key, reason='storage')

    def fetch(self, bucket: str, key: str) -> str:
        """
        Retrieve and gunzip a log object

        Args:
            bucket: S3 bucket name
            key: S3 object key (already URL-decoded)

        Returns:
            Decompressed log text

        Raises:
            FetchError: On any retrieval or decompression failure
        """
        file_content = self.fetch_bytes(bucket, key)
        logger.info(f"Downloaded s3://{bucket}/{key}: {len(file_content)} bytes (compressed)")

        try:
            file_content = gzip.decompress(file_content)
        except (OSError, EOFError, zlib.error) as e:
            # gzip.BadGzipFile is a subclass of OSError
            raise FetchError(
                f"Failed to decompress s3://{bucket}/{key}: {str(e)}",
                bucket=bucket, key=key, reason='decompression'
            )

        logger.info(f"Decompressed file size: {len(file_content)} bytes")
        return file_content.decode('utf-8', errors='replace')
