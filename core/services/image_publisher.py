"""Image publisher implementation."""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Union

from core.exceptions import ImageCreationError, ReplicationError
from core.interfaces.publisher_interface import IImagePublisher
from core.models.config import BuildConfig
from core.models.image import ReplicationOutcome
from core.models.instance import InstanceHandle
from core.models.regions import all_regions_except
from core.utils.polling import poll_until
from infrastructure.aws.ec2_client import EC2Client

FAILED_IMAGE_STATES = {"failed", "error", "invalid", "deregistered"}


class ImagePublisher(IImagePublisher):
    """Creates the image in the build region and copies it to other regions."""

    def __init__(
        self,
        ec2_client: EC2Client,
        region_client_factory: Optional[Callable[[str], EC2Client]] = None,
    ):
        self.ec2_client = ec2_client
        self.region_client_factory = region_client_factory or ec2_client.for_region
        self.logger = logging.getLogger(__name__)

    def provenance_tags(self, config: BuildConfig) -> Dict[str, str]:
        """Configured tags plus source revision and release channel."""
        tags = dict(config.image.tags)
        if config.image.source_revision:
            tags["SourceRevision"] = config.image.source_revision
        if config.image.release_channel:
            tags["ReleaseChannel"] = config.image.release_channel
        return tags

    async def create_image(self, handle: InstanceHandle, config: BuildConfig) -> str:
        """Snapshot the (stopped) instance without an implicit reboot."""
        self.logger.info(f"Creating image '{config.image.name}' from {handle.instance_id}")
        try:
            image_id = await self.ec2_client.create_image(
                instance_id=handle.instance_id,
                name=config.image.name,
                description=config.image.description,
                no_reboot=True,
            )
        except Exception as e:
            raise ImageCreationError(f"Failed to create image from {handle.instance_id}: {str(e)}") from e

        if not image_id:
            raise ImageCreationError("No image id returned from create_image call")
        self.logger.info(f"Created image {image_id}")

        try:
            await self.ec2_client.create_tags([image_id], self.provenance_tags(config))
        except Exception as e:
            raise ImageCreationError(f"Failed to tag image {image_id}: {str(e)}") from e

        await self.wait_for_image(image_id, config.timeouts.image_available, config.timeouts.image_poll_interval)
        return image_id

    async def wait_for_image(self, image_id: str, timeout: float, interval: float) -> None:
        """Wait for the image to become available; a failed image raises at once."""

        async def probe() -> Optional[str]:
            state = await self.ec2_client.get_image_state(image_id)
            self.logger.info(f"Image {image_id} state: {state}")
            if state in FAILED_IMAGE_STATES:
                raise ImageCreationError(f"Image {image_id} entered state '{state}'")
            return state

        try:
            await poll_until(
                probe,
                lambda state: state == "available",
                timeout=timeout,
                interval=interval,
                description=f"image {image_id} available",
            )
        except asyncio.TimeoutError as e:
            raise ImageCreationError(
                f"Image {image_id} not available within {timeout} seconds"
            ) from e

    def resolve_target_regions(
        self, copy_to: Union[str, List[str], None], source_region: str
    ) -> List[str]:
        """``"all"`` means every supported region but the source; otherwise as given."""
        if not copy_to:
            return []
        if copy_to == "all":
            return all_regions_except(source_region)
        if isinstance(copy_to, str):
            return [copy_to]

        regions = []
        for region in copy_to:
            if region not in regions:
                regions.append(region)
        return regions

    async def replicate(
        self,
        source_region: str,
        image_id: str,
        target_regions: List[str],
        config: BuildConfig,
    ) -> Dict[str, ReplicationOutcome]:
        """Copy ``image_id`` into each target region with bounded concurrency."""
        semaphore = asyncio.Semaphore(config.replication.max_concurrent)
        base_tags = self.provenance_tags(config)

        async def copy_to(region: str) -> ReplicationOutcome:
            async with semaphore:
                copy_id = None
                try:
                    client = self.region_client_factory(region)
                    copy_id = await client.copy_image(
                        source_image_id=image_id,
                        source_region=source_region,
                        name=config.image.name,
                        description=config.image.description,
                    )
                    tags = dict(base_tags)
                    tags["SourceImageId"] = image_id
                    tags["SourceRegion"] = source_region
                    await client.create_tags([copy_id], tags)

                    self.logger.info(f"Copied {image_id} to {region} as {copy_id}")
                    return ReplicationOutcome(region=region, image_id=copy_id)

                except Exception as e:
                    detail = str(e) if copy_id is None else f"copy {copy_id} created but {str(e)}"
                    error = ReplicationError(region, detail)
                    self.logger.error(str(error))
                    return ReplicationOutcome(region=region, error=str(error))

        self.logger.info(f"Replicating {image_id} to {len(target_regions)} regions: {', '.join(target_regions)}")
        outcomes = await asyncio.gather(*[copy_to(region) for region in target_regions])

        results = {outcome.region: outcome for outcome in outcomes}
        successful = len([o for o in outcomes if o.success])
        self.logger.info(f"Replication: {successful}/{len(target_regions)} regions successful")
        return results
