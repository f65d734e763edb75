"""AWS infrastructure implementations."""

from .ec2_client import EC2Client
from .session_manager import AWSSessionManager

__all__ = [
    'EC2Client',
    'AWSSessionManager'
]
