"""Provisioning step interfaces."""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, List
from core.models.instance import InstanceHandle
from core.models.steps import ProvisioningStep, StepType
from infrastructure.ssh.ssh_client import RemoteSession


class StepContext:
    """Values every step handler needs besides the step itself."""

    def __init__(self, handle: InstanceHandle, username: str, staging: str):
        self.handle = handle
        self.username = username
        self.staging = staging.rstrip("/") or "/"

    def staged(self, name: str) -> str:
        """Remote path of ``name`` inside the staging directory."""
        return f"{self.staging}/{name}"


class IStepHandler(ABC):
    """Interface for the handler of one provisioning step type."""

    step_type: StepType

    @abstractmethod
    async def run(self, session: RemoteSession, step: ProvisioningStep,
                  context: StepContext) -> None:
        """Execute ``step`` over an open session.

        Args:
            session: Connected remote session
            step: The step to run; always of this handler's type
            context: Build instance, user and staging directory

        Raises:
            RemoteCommandError: If a remote command fails
        """
        pass


class IStepExecutor(ABC):
    """Interface for running an ordered provisioning pipeline."""

    @abstractmethod
    def session(self, handle: InstanceHandle) -> AsyncContextManager[RemoteSession]:
        """Open a remote session to the build instance."""
        pass

    @abstractmethod
    def staging(self, handle: InstanceHandle) -> AsyncContextManager[StepContext]:
        """Create the staging directory and remove it on exit, whatever happens."""
        pass

    @abstractmethod
    async def run_steps(self, handle: InstanceHandle,
                        steps: List[ProvisioningStep]) -> List[dict]:
        """Run steps in order, aborting at the first failure.

        Args:
            handle: The build instance
            steps: Ordered provisioning steps

        Returns:
            One result entry per completed step

        Raises:
            UnknownStepTypeError: If a step has no registered handler
        """
        pass
