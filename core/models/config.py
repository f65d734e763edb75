from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from core.models.regions import is_supported_region
from core.models.steps import ProvisioningStep, validate_step


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ReplicationPolicy(Enum):
    """How a partially failed replication counts toward the build outcome."""
    STRICT = "strict"
    LENIENT = "lenient"


@dataclass
class AWSConfig:
    """AWS credential selection."""
    profile: Optional[str] = None
    role_arn: Optional[str] = None


@dataclass
class ImageConfig:
    """Image naming and tagging."""
    name: str = ""
    description: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    release_channel: str = "stable"
    source_revision: Optional[str] = None


@dataclass
class ConnectionConfig:
    """SSH connection retry settings."""
    connect_timeout: int = 60
    retry_delay: float = 5.0
    max_attempts: int = 60
    total_timeout: float = 900.0


@dataclass
class TimeoutConfig:
    """Bounds for provider-side waits, in seconds."""
    instance_state: int = 900
    image_available: int = 3600
    image_poll_interval: float = 15.0


@dataclass
class ReplicationConfig:
    """Image replication settings."""
    policy: ReplicationPolicy = ReplicationPolicy.STRICT
    max_concurrent: int = 4


@dataclass
class BootstrapConfig:
    """Environment bootstrap file written onto the instance before provisioning."""
    variables: List[str] = field(default_factory=list)
    target_path: str = "/etc/mami/environment"


@dataclass
class BuildConfig:
    """Complete description of one image build."""

    # Instance
    region: str = "us-east-1"
    aws: AWSConfig = field(default_factory=AWSConfig)
    instance_type: str = "t3.micro"
    source_ami: Optional[str] = None
    source_distribution: Optional[str] = None

    # Remote execution
    ssh_username: str = "ubuntu"
    staging: str = "/tmp/mami-staging"
    steps: List[ProvisioningStep] = field(default_factory=list)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)

    # Flags
    reboot_before_build: bool = False
    build_ami: bool = True
    cleanup_on_error: bool = True

    # Image publication
    image: ImageConfig = field(default_factory=ImageConfig)
    copy_to: Union[str, List[str], None] = None
    replication: ReplicationConfig = field(default_factory=ReplicationConfig)

    # Misc
    name: str = "image build"
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    key_output_dir: str = "."
    log_level: LogLevel = LogLevel.INFO

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.region:
            errors.append("region is required")
        if not self.instance_type:
            errors.append("instance_type is required")
        if not self.source_ami and not self.source_distribution:
            errors.append("either source_ami or source_distribution must be set")
        if not self.ssh_username:
            errors.append("ssh_username is required")
        if not self.staging or self.staging in ("/", "."):
            errors.append("staging must name a dedicated directory")

        for i, step in enumerate(self.steps):
            errors.extend(validate_step(step, f"steps[{i}]"))

        if self.build_ami and not self.image.name:
            errors.append("image.name is required when build_ami is enabled")

        if isinstance(self.copy_to, list):
            for region in self.copy_to:
                if not is_supported_region(region):
                    errors.append(f"copy_to: unsupported region '{region}'")
        elif self.copy_to and self.copy_to != "all" and not is_supported_region(self.copy_to):
            errors.append(f"copy_to: unsupported region '{self.copy_to}'")

        if self.connection.max_attempts < 1:
            errors.append("connection.max_attempts must be positive")
        if self.connection.connect_timeout <= 0:
            errors.append("connection.connect_timeout must be positive")
        if self.connection.total_timeout <= 0:
            errors.append("connection.total_timeout must be positive")
        if self.timeouts.instance_state <= 0:
            errors.append("timeouts.instance_state must be positive")
        if self.replication.max_concurrent < 1:
            errors.append("replication.max_concurrent must be positive")

        return errors
