"""Instance lifecycle manager interface."""

from abc import ABC, abstractmethod
from typing import Optional
from core.models.config import BuildConfig
from core.models.instance import InstanceHandle, InstanceState, ReleaseReport


class IInstanceLifecycleManager(ABC):
    """Interface for acquiring, driving and releasing a build instance."""

    @abstractmethod
    async def acquire(self, config: BuildConfig) -> InstanceHandle:
        """Create the key pair, security group and instance for one build.

        Args:
            config: Build configuration

        Returns:
            InstanceHandle for a running, reachable instance

        Raises:
            AcquisitionError: If any of the three resources cannot be created
        """
        pass

    @abstractmethod
    async def wait_for_state(self, handle: InstanceHandle,
                             desired_state: InstanceState,
                             timeout: Optional[float] = None) -> None:
        """Block until the instance reports ``desired_state``.

        Args:
            handle: The build instance
            desired_state: State to wait for
            timeout: Maximum seconds to wait

        Raises:
            InstanceStateTimeoutError: If the state is not reached in time
        """
        pass

    @abstractmethod
    async def reboot_and_wait_running(self, handle: InstanceHandle) -> None:
        """Reboot the instance and wait until it is running again."""
        pass

    @abstractmethod
    async def stop_and_wait_stopped(self, handle: InstanceHandle) -> None:
        """Stop the instance and wait until it is stopped."""
        pass

    @abstractmethod
    async def release(self, handle: InstanceHandle) -> ReleaseReport:
        """Terminate the instance and delete its key pair and security group.

        Every sub-step is attempted even if an earlier one fails.

        Args:
            handle: The build instance

        Returns:
            ReleaseReport listing the completed sub-steps

        Raises:
            ReleaseError: If any sub-step failed
        """
        pass
