"""AWS client management and session handling."""

import threading

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError
from typing import Optional, Dict, Any
from dataclasses import dataclass
from rds_bluegreen.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AWSCredentials:
    """AWS credential information."""
    account_id: str
    user_arn: str
    region: str
    profile: Optional[str] = None


class AWSClientManager:
    """Manages boto3 sessions and clients with credential management.

    Clients are created once and handed to handlers explicitly; boto3 clients
    are safe to share between the threads of a parallel apply.
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        max_pool_connections: int = 50
    ):
        """Initialize AWS client manager.

        Args:
            profile: AWS profile name to use
            region: AWS region to use
            max_pool_connections: Maximum number of connections in the connection pool
        """
        self.profile = profile
        self.region = region
        self.max_pool_connections = max_pool_connections
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}
        self._credentials: Optional[AWSCredentials] = None
        self._lock = threading.Lock()

        self._boto_config = Config(
            max_pool_connections=max_pool_connections,
            retries={
                'mode': 'adaptive',
                'max_attempts': 5
            },
            connect_timeout=10,
            read_timeout=60
        )

    @property
    def session(self) -> boto3.Session:
        """Get or create boto3 session."""
        if self._session is None:
            kwargs = {}
            if self.profile:
                kwargs['profile_name'] = self.profile
            if self.region:
                kwargs['region_name'] = self.region

            self._session = boto3.Session(**kwargs)
            logger.info(f"Created AWS session - Region: {self._session.region_name}, "
                        f"Profile: {self.profile or 'default'}")

        return self._session

    def get_client(self, service_name: str):
        """Get a cached boto3 client for a service.

        Args:
            service_name: AWS service name (e.g., 'rds', 'sts')

        Returns:
            Boto3 client for the service
        """
        with self._lock:
            if service_name not in self._clients:
                self._clients[service_name] = self.session.client(
                    service_name, config=self._boto_config
                )
                logger.debug(f"Created {service_name} client")
            return self._clients[service_name]

    def rds(self):
        """Shortcut for the RDS client."""
        return self.get_client('rds')

    def validate_credentials(self) -> AWSCredentials:
        """Validate AWS credentials and return credential information.

        Raises:
            NoCredentialsError: If no credentials are found
            PartialCredentialsError: If credentials are incomplete
            ClientError: If credentials are invalid
        """
        if self._credentials is not None:
            return self._credentials

        try:
            identity = self.get_client('sts').get_caller_identity()

            self._credentials = AWSCredentials(
                account_id=identity['Account'],
                user_arn=identity['Arn'],
                region=self.session.region_name,
                profile=self.profile
            )

            logger.info(f"AWS credentials validated - Account: {self._credentials.account_id}, "
                        f"Region: {self._credentials.region}")

            return self._credentials

        except (NoCredentialsError, PartialCredentialsError):
            logger.error("No usable AWS credentials found. Configure credentials using "
                         "the AWS CLI, environment variables, or an IAM role.")
            raise
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code in ('InvalidClientTokenId', 'ExpiredToken'):
                logger.error("AWS credentials are invalid or expired")
            else:
                logger.error(f"Failed to validate AWS credentials: {e}")
            raise
