"""Instance lifecycle manager implementation."""

import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

from core.exceptions import AcquisitionError, InstanceStateTimeoutError, ReleaseError
from core.interfaces.lifecycle_interface import IInstanceLifecycleManager
from core.models.config import BuildConfig
from core.models.instance import InstanceHandle, InstanceState, ReleaseReport
from core.utils.identifiers import generate_build_id, key_pair_name, security_group_name
from core.utils.polling import poll_until
from infrastructure.aws.ec2_client import EC2Client

STATE_POLL_INTERVAL = 1.0
DEFAULT_STATE_TIMEOUT = 900

SSH_PORT = 22
# SSH is opened to the world; the key pair is the only access control.
SSH_INGRESS_CIDR = "0.0.0.0/0"

# distribution name -> (image owner, AMI name pattern)
DISTRIBUTIONS: Dict[str, Tuple[str, str]] = {
    "ubuntu-22.04": ("099720109477", "ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-amd64-server-*"),
    "ubuntu-24.04": ("099720109477", "ubuntu/images/hvm-ssd-gp3/ubuntu-noble-24.04-amd64-server-*"),
    "debian-12": ("136693071363", "debian-12-amd64-*"),
    "amazon-linux-2023": ("amazon", "al2023-ami-2023.*-x86_64"),
    "amazon-linux-2": ("amazon", "amzn2-ami-hvm-*-x86_64-gp2"),
}


class InstanceLifecycleManager(IInstanceLifecycleManager):
    """Owns the instance, key pair and security group of a build."""

    def __init__(
        self,
        ec2_client: EC2Client,
        poll_interval: float = STATE_POLL_INTERVAL,
        state_timeout: float = DEFAULT_STATE_TIMEOUT,
        build_id_factory: Callable[[], str] = generate_build_id,
    ):
        self.ec2_client = ec2_client
        self.poll_interval = poll_interval
        self.state_timeout = state_timeout
        self.build_id_factory = build_id_factory
        self.logger = logging.getLogger(__name__)

    async def acquire(self, config: BuildConfig) -> InstanceHandle:
        """Create key pair, security group and instance; wait until running."""
        handle = InstanceHandle(build_id=self.build_id_factory(), region=config.region)
        self.logger.info(f"Acquiring build instance for build {handle.build_id} in {config.region}")

        try:
            key_pair = await self.ec2_client.create_key_pair(key_pair_name(handle.build_id))
            handle.key_name = key_pair["key_name"]
            handle.key_material = key_pair["key_material"]
            self.logger.info(f"Created key pair {handle.key_name}")

            handle.security_group_id = await self.ec2_client.create_security_group(
                security_group_name(handle.build_id),
                f"mami temporary security group for build {handle.build_id}",
            )
            await self.ec2_client.authorize_ingress(
                handle.security_group_id, SSH_PORT, SSH_INGRESS_CIDR
            )
            self.logger.info(
                f"Created security group {handle.security_group_id} with port {SSH_PORT} open"
            )

            image_id = await self.resolve_source_image(config)
            handle.instance_id = await self.ec2_client.run_instance(
                image_id=image_id,
                instance_type=config.instance_type,
                key_name=handle.key_name,
                security_group_ids=[handle.security_group_id],
                tags={"Name": f"mami-build-{handle.build_id}", "MamiBuildId": handle.build_id},
            )
            self.logger.info(
                f"Launched {config.instance_type} instance {handle.instance_id} from {image_id}"
            )

            await self.wait_for_state(handle, InstanceState.RUNNING)
            handle.public_ip = await self.ec2_client.get_public_ip(handle.instance_id)
            if not handle.public_ip:
                raise AcquisitionError(f"Instance {handle.instance_id} has no public IP address")

        except Exception as e:
            self.logger.error(f"Failed to acquire build instance: {str(e)}")
            await self._rollback(handle)
            if isinstance(e, AcquisitionError):
                raise
            raise AcquisitionError(f"Failed to acquire build instance: {str(e)}") from e
        except asyncio.CancelledError:
            await self._rollback(handle)
            raise

        self.logger.info(f"Instance {handle.instance_id} running and reachable at {handle.public_ip}")
        return handle

    async def _rollback(self, handle: InstanceHandle) -> None:
        """Release whatever a failed acquisition managed to create."""
        try:
            await self.release(handle)
        except ReleaseError as e:
            self.logger.error(f"Rollback after failed acquisition left resources behind: {e}")

    async def resolve_source_image(self, config: BuildConfig) -> str:
        """Pick the base image: the explicit id, or the newest of a distribution."""
        if config.source_ami:
            return config.source_ami

        distribution = config.source_distribution
        if distribution not in DISTRIBUTIONS:
            raise AcquisitionError(
                f"Unknown source distribution '{distribution}' "
                f"(known: {', '.join(sorted(DISTRIBUTIONS))})"
            )

        owner, name_pattern = DISTRIBUTIONS[distribution]
        image_id = await self.ec2_client.find_latest_image([owner], name_pattern)
        if not image_id:
            raise AcquisitionError(f"No available image found for distribution '{distribution}'")

        self.logger.info(f"Resolved latest {distribution} image: {image_id}")
        return image_id

    async def get_state(self, handle: InstanceHandle) -> InstanceState:
        state_name = await self.ec2_client.get_instance_state(handle.instance_id)
        return InstanceState.from_aws(state_name)

    async def wait_for_state(
        self,
        handle: InstanceHandle,
        desired_state: InstanceState,
        timeout: Optional[float] = None,
    ) -> None:
        """Poll the provider every second until the instance is in ``desired_state``."""
        timeout = timeout or self.state_timeout
        last_seen = {"state": None}

        async def probe() -> InstanceState:
            state = await self.get_state(handle)
            if state != last_seen["state"]:
                self.logger.info(f"Instance {handle.instance_id} state: {state.value}")
                last_seen["state"] = state
            return state

        try:
            await poll_until(
                probe,
                lambda state: state == desired_state,
                timeout=timeout,
                interval=self.poll_interval,
                description=f"instance {handle.instance_id} {desired_state.value}",
            )
        except asyncio.TimeoutError as e:
            last_state = last_seen["state"].value if last_seen["state"] else None
            raise InstanceStateTimeoutError(
                handle.instance_id, desired_state.value, timeout, last_state
            ) from e

    async def reboot_and_wait_running(self, handle: InstanceHandle) -> None:
        self.logger.info(f"Rebooting {handle.instance_id}")
        await self.ec2_client.reboot_instances([handle.instance_id])
        await self.wait_for_state(handle, InstanceState.RUNNING)

    async def stop_and_wait_stopped(self, handle: InstanceHandle) -> None:
        self.logger.info(f"Stopping {handle.instance_id}")
        await self.ec2_client.stop_instances([handle.instance_id])
        await self.wait_for_state(handle, InstanceState.STOPPED)

    async def release(self, handle: InstanceHandle) -> ReleaseReport:
        """Terminate the instance, then delete the key pair and security group.

        Each sub-step runs regardless of the others; failures are collected
        and raised together as a ReleaseError. A handle is only ever released
        once; later calls are no-ops that report every sub-step as skipped.
        """
        report = ReleaseReport(instance_id=handle.instance_id)
        if handle.released:
            self.logger.warning(f"Build resources for {handle.display_name} already released")
            report.skipped.extend(["terminate_instance", "delete_key_pair", "delete_security_group"])
            return report

        self.logger.info(f"Releasing build resources for {handle.display_name}")

        if handle.instance_id:
            try:
                await self.ec2_client.terminate_instances([handle.instance_id])
                await self.wait_for_state(handle, InstanceState.TERMINATED)
                report.succeeded.append("terminate_instance")
                self.logger.info(f"Instance {handle.instance_id} terminated")
            except Exception as e:
                report.failed["terminate_instance"] = str(e)
                self.logger.error(f"Failed to terminate instance {handle.instance_id}: {str(e)}")
        else:
            report.skipped.append("terminate_instance")

        if handle.key_name:
            try:
                await self.ec2_client.delete_key_pair(handle.key_name)
                report.succeeded.append("delete_key_pair")
                self.logger.info(f"Key pair {handle.key_name} deleted")
            except Exception as e:
                report.failed["delete_key_pair"] = str(e)
                self.logger.error(f"Failed to delete key pair {handle.key_name}: {str(e)}")
        else:
            report.skipped.append("delete_key_pair")

        if handle.security_group_id:
            try:
                await self.ec2_client.delete_security_group(handle.security_group_id)
                report.succeeded.append("delete_security_group")
                self.logger.info(f"Security group {handle.security_group_id} deleted")
            except Exception as e:
                report.failed["delete_security_group"] = str(e)
                self.logger.error(
                    f"Failed to delete security group {handle.security_group_id}: {str(e)}"
                )
        else:
            report.skipped.append("delete_security_group")

        handle.released = True
        if report.failed:
            raise ReleaseError(handle.instance_id, report.failed)
        return report
