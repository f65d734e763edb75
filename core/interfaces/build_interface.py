"""Build coordinator interface."""

from abc import ABC, abstractmethod
from core.models.build import BuildResult
from core.models.config import BuildConfig


class IBuildCoordinator(ABC):
    """Interface for running one image build end to end."""

    @abstractmethod
    async def run_build(self, config: BuildConfig) -> BuildResult:
        """Run a complete build and dispose of its resources.

        Never raises for build failures; the outcome is reported in the
        returned BuildResult. Cancellation is re-raised after the instance
        has been released or preserved.

        Args:
            config: Build configuration

        Returns:
            BuildResult with status, image record and disposition
        """
        pass
