"""Error taxonomy for the image build engine."""

from typing import Dict, List, Optional


class MamiError(Exception):
    """Base class for all build engine errors."""


class ConfigurationError(MamiError):
    """Raised when a build configuration is missing, malformed or invalid."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class AcquisitionError(MamiError):
    """Raised when the build instance, key pair or security group cannot be created."""


class InstanceStateTimeoutError(MamiError, TimeoutError):
    """Raised when an instance does not reach the desired state in time."""

    def __init__(self, instance_id: str, desired_state: str, timeout: float, last_state: Optional[str] = None):
        self.instance_id = instance_id
        self.desired_state = desired_state
        self.timeout = timeout
        self.last_state = last_state
        super().__init__(
            f"Instance {instance_id} did not reach state '{desired_state}' "
            f"within {timeout} seconds (last seen: {last_state or 'unknown'})"
        )


class RemoteConnectionError(MamiError, ConnectionError):
    """Raised when the SSH transport cannot be established within the retry bounds."""


class RemoteCommandError(MamiError):
    """Raised when a remote invocation exits with a non-zero status."""

    def __init__(self, command: str, exit_status: Optional[int], output: str = ""):
        self.command = command
        self.exit_status = exit_status
        self.output = output
        super().__init__(f"Remote command failed with exit status {exit_status}: {command}")


class StagingError(MamiError):
    """Raised when the remote staging directory cannot be prepared or removed."""


class UnknownStepTypeError(MamiError):
    """Raised for a provisioning step type that has no registered handler."""

    def __init__(self, step_type: str, known_types: Optional[List[str]] = None):
        self.step_type = step_type
        self.known_types = sorted(known_types or [])
        message = f"Unknown provisioning step type: '{step_type}'"
        if self.known_types:
            message += f" (known types: {', '.join(self.known_types)})"
        super().__init__(message)


class WaitTimeoutError(MamiError, TimeoutError):
    """Raised when a remote wait condition is never satisfied."""

    def __init__(self, test: str, attempts: int):
        self.test = test
        self.attempts = attempts
        super().__init__(f"Condition '{test}' not satisfied after {attempts} attempts")


class ImageCreationError(MamiError):
    """Raised when the primary image cannot be created or never becomes available."""


class ReplicationError(MamiError):
    """Failure to copy an image into one target region."""

    def __init__(self, region: str, message: str):
        self.region = region
        super().__init__(f"Replication to {region} failed: {message}")


class ReleaseError(MamiError):
    """Raised when one or more teardown sub-steps failed."""

    def __init__(self, instance_id: Optional[str], failures: Dict[str, str]):
        self.instance_id = instance_id
        self.failures = dict(failures)
        details = "; ".join(f"{step}: {error}" for step, error in self.failures.items())
        super().__init__(f"Release of build resources for {instance_id} incomplete: {details}")
