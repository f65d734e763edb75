"""Build instance data model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class InstanceState(Enum):
    """EC2 instance states."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"
    UNKNOWN = "unknown"

    @classmethod
    def from_aws(cls, aws_state: Optional[str]) -> "InstanceState":
        """Map an EC2 state name to an InstanceState."""
        try:
            return cls(aws_state)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class InstanceHandle:
    """Resources created for one build.

    A handle owns the instance, its key pair and its security group. All
    three are torn down together by the lifecycle manager; any of the ids may
    still be ``None`` when acquisition failed part way through.
    """

    build_id: str
    region: str

    instance_id: Optional[str] = None
    key_name: Optional[str] = None
    key_material: Optional[str] = None
    security_group_id: Optional[str] = None
    public_ip: Optional[str] = None

    created_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    released: bool = False

    @property
    def display_name(self) -> str:
        return f"{self.instance_id or 'no-instance'} ({self.build_id})"

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary, without the private key."""
        return {
            "build_id": self.build_id,
            "region": self.region,
            "instance_id": self.instance_id,
            "key_name": self.key_name,
            "security_group_id": self.security_group_id,
            "public_ip": self.public_ip,
            "created_time": self.created_time.isoformat(),
        }


@dataclass
class ReleaseReport:
    """Outcome of each teardown sub-step."""

    instance_id: Optional[str]
    succeeded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.failed
