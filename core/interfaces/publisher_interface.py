"""Image publisher interface."""

from abc import ABC, abstractmethod
from typing import Dict, List, Union
from core.models.config import BuildConfig
from core.models.image import ReplicationOutcome
from core.models.instance import InstanceHandle


class IImagePublisher(ABC):
    """Interface for turning a build instance into replicated images."""

    @abstractmethod
    async def create_image(self, handle: InstanceHandle, config: BuildConfig) -> str:
        """Snapshot the instance into an image without rebooting it.

        Returns:
            The new image id

        Raises:
            ImageCreationError: If the image cannot be created
        """
        pass

    @abstractmethod
    def resolve_target_regions(self, copy_to: Union[str, List[str], None],
                               source_region: str) -> List[str]:
        """Expand a replication target setting into a list of regions."""
        pass

    @abstractmethod
    async def replicate(self, source_region: str, image_id: str,
                        target_regions: List[str],
                        config: BuildConfig) -> Dict[str, ReplicationOutcome]:
        """Copy the image into every target region.

        A failing region never prevents attempts on the others.

        Returns:
            Mapping of region to its outcome, keyed by region
        """
        pass

    @abstractmethod
    def provenance_tags(self, config: BuildConfig) -> Dict[str, str]:
        """Tags applied to the image and every copy of it."""
        pass
