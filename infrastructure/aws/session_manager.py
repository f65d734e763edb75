"""AWS session manager"""

from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

import boto3

from core.utils.logger import get_infrastructure_logger


class AWSSessionManager:
    """Creates boto3 sessions, optionally through an assumed build role.

    Sessions are cached per (region, profile, role) so the per-region clients
    used during replication share credentials with the build region.
    """

    _sessions: Dict[Tuple[str, Optional[str], Optional[str]], boto3.Session] = {}

    def __init__(
        self,
        region: str = "us-east-1",
        profile: Optional[str] = None,
        role_arn: Optional[str] = None,
    ):
        self.region = region
        self.profile = profile
        self.role_arn = role_arn
        self.logger = get_infrastructure_logger(__name__)

    def get_session(self, region: Optional[str] = None) -> boto3.Session:
        """Get an AWS session for ``region`` (defaults to the manager's region)."""
        region = region or self.region
        cache_key = (region, self.profile, self.role_arn)

        if cache_key not in self._sessions:
            if self.role_arn:
                self._sessions[cache_key] = self._assume_role_session(region)
            else:
                self._sessions[cache_key] = boto3.Session(
                    profile_name=self.profile, region_name=region
                )

        return self._sessions[cache_key]

    def _assume_role_session(self, region: str, session_duration: int = 3600) -> boto3.Session:
        """Assume the configured build role and return a session."""
        try:
            base = boto3.Session(profile_name=self.profile, region_name=region)
            sts_client = base.client("sts", region_name=region)

            response = sts_client.assume_role(
                RoleArn=self.role_arn,
                RoleSessionName=f"mami-build-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}",
                DurationSeconds=session_duration,
            )
            credentials = response["Credentials"]

            self.logger.info(f"Successfully assumed role {self.role_arn}")
            return boto3.Session(
                aws_access_key_id=credentials["AccessKeyId"],
                aws_secret_access_key=credentials["SecretAccessKey"],
                aws_session_token=credentials["SessionToken"],
                region_name=region,
            )

        except Exception as e:
            self.logger.error(f"Failed to assume role {self.role_arn}: {str(e)}")
            raise RuntimeError(f"Role assumption failed: {str(e)}") from e
