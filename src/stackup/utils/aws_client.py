"""AWS session and client management."""

import secrets
from typing import Optional, Dict, Any

import boto3
from botocore.config import Config

from stackup.utils.errors import error_handler, ErrorContext
from stackup.utils.logging import get_logger

logger = get_logger(__name__)

# botocore "standard" mode defaults to 3 attempts (initial request + 2 retries);
# 50 attempts gives long-running waits some breathing room under throttling.
MAX_SDK_ATTEMPTS = 50


def build_retry_config(retry_limit: Optional[int] = None) -> Config:
    """Build the botocore transport retry configuration.

    Args:
        retry_limit: Maximum number of retries; None selects MAX_SDK_ATTEMPTS attempts

    Returns:
        botocore Config with a bounded attempt count
    """
    total_attempts = MAX_SDK_ATTEMPTS if retry_limit is None else retry_limit + 1
    return Config(
        retries={
            'mode': 'standard',
            'total_max_attempts': total_attempts
        },
        connect_timeout=10,
        read_timeout=60
    )


class AWSClientManager:
    """Manages boto3 sessions and clients, optionally under an assumed role."""

    def __init__(
        self,
        region: Optional[str] = None,
        role_arn: Optional[str] = None,
        retry_limit: Optional[int] = None
    ):
        """Initialize AWS client manager.

        Args:
            region: AWS region to use (session default when None)
            role_arn: IAM role to assume for all clients
            retry_limit: Transport retry limit
        """
        self.region = region
        self.role_arn = role_arn
        self.retry_limit = retry_limit
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}
        self._boto_config = build_retry_config(retry_limit)

    @property
    def session(self) -> boto3.Session:
        """Get or create the boto3 session, assuming the role when configured.

        Returns:
            Configured boto3 session
        """
        if self._session is None:
            kwargs = {}
            if self.region:
                kwargs['region_name'] = self.region
            base_session = boto3.Session(**kwargs)

            if self.role_arn:
                self._session = self._assume_role(base_session)
            else:
                self._session = base_session

            logger.debug(f"Created AWS session - Region: {self._session.region_name}")

        return self._session

    def _assume_role(self, base_session: boto3.Session) -> boto3.Session:
        """Assume the configured role and return a session using its credentials."""
        session_name = f"stackup-{secrets.token_hex(8)}"
        logger.debug(f"Assuming IAM role: {self.role_arn} ({session_name})")

        sts = base_session.client('sts', config=self._boto_config)
        try:
            response = sts.assume_role(RoleArn=self.role_arn, RoleSessionName=session_name)
        except Exception as e:
            raise error_handler.handle_exception(
                e, ErrorContext(operation='assume_role')
            ) from e

        credentials = response['Credentials']
        return boto3.Session(
            aws_access_key_id=credentials['AccessKeyId'],
            aws_secret_access_key=credentials['SecretAccessKey'],
            aws_session_token=credentials['SessionToken'],
            region_name=base_session.region_name
        )

    def get_client(self, service_name: str):
        """Get a cached boto3 client for a service.

        Args:
            service_name: AWS service name (e.g., 'cloudformation', 's3')

        Returns:
            Boto3 client for the service
        """
        if service_name not in self._clients:
            self._clients[service_name] = self.session.client(
                service_name, config=self._boto_config
            )
            logger.debug(f"Created {service_name} client")

        return self._clients[service_name]

    @property
    def cloudformation(self):
        """CloudFormation client."""
        return self.get_client('cloudformation')

    @property
    def s3(self):
        """S3 client."""
        return self.get_client('s3')
