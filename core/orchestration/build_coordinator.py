import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import ReleaseError
from core.interfaces.build_interface import IBuildCoordinator
from core.interfaces.lifecycle_interface import IInstanceLifecycleManager
from core.interfaces.publisher_interface import IImagePublisher
from core.interfaces.step_interface import IStepExecutor
from core.models.build import BuildPhase, BuildResult, BuildStatus, Disposition
from core.models.config import BuildConfig, ReplicationPolicy
from core.models.image import ImageRecord
from core.models.instance import InstanceHandle
from core.services.bootstrap_service import EnvironmentBootstrap


class BuildCoordinator(IBuildCoordinator):
    """Runs one image build: acquire, provision, snapshot, replicate, dispose."""

    def __init__(
        self,
        lifecycle: IInstanceLifecycleManager,
        step_executor_factory: Callable[[BuildConfig], IStepExecutor],
        publisher: IImagePublisher,
        bootstrap: Optional[EnvironmentBootstrap] = None,
    ):
        self.lifecycle = lifecycle
        self.step_executor_factory = step_executor_factory
        self.publisher = publisher
        self.bootstrap = bootstrap or EnvironmentBootstrap()
        self.logger = logging.getLogger(__name__)

    def _handle_error(self, message: str, error: Exception) -> str:
        """Centralized error handling."""
        error_msg = f"{message}: {str(error)}"
        self.logger.error(error_msg)
        return error_msg

    async def _run_phase(
        self,
        result: BuildResult,
        phase: BuildPhase,
        operation: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run one phase, recording its start, end and failure on ``result``."""
        self.logger.info(f"Phase {phase.value}: started")
        phase_result = result.start_phase(phase)
        try:
            value = await operation()
        except asyncio.CancelledError:
            phase_result.mark_failed("cancelled")
            self.logger.warning(f"Phase {phase.value}: cancelled")
            raise
        except Exception as e:
            phase_result.mark_failed(str(e))
            result.add_error(self._handle_error(f"Phase {phase.value} failed", e))
            raise

        phase_result.mark_completed()
        self.logger.info(f"Phase {phase.value}: completed")
        return value

    async def run_build(self, config: BuildConfig) -> BuildResult:
        """Run a complete build; failures end up in the returned result."""
        result = BuildResult(build_name=config.name)
        result.mark_started()
        self.logger.info(f"Starting build: {config.name}")

        handle: Optional[InstanceHandle] = None
        try:
            handle = await self._run_phase(
                result, BuildPhase.ACQUIRE, lambda: self.lifecycle.acquire(config)
            )
            result.build_id = handle.build_id
            result.instance_id = handle.instance_id
            result.public_ip = handle.public_ip

            await self._run_phase(
                result, BuildPhase.PROVISION, lambda: self._provision(handle, config)
            )

            if config.reboot_before_build:
                await self._run_phase(
                    result, BuildPhase.REBOOT,
                    lambda: self.lifecycle.reboot_and_wait_running(handle),
                )
            else:
                result.skip_phase(BuildPhase.REBOOT, "reboot_before_build is disabled")

            await self._run_phase(
                result, BuildPhase.STOP, lambda: self.lifecycle.stop_and_wait_stopped(handle)
            )

            if config.build_ami:
                status = await self._publish(result, handle, config)
            else:
                self.logger.info("build_ami is disabled; no image will be created")
                result.skip_phase(BuildPhase.CREATE_IMAGE, "build_ami is disabled")
                result.skip_phase(BuildPhase.REPLICATE, "build_ami is disabled")
                status = BuildStatus.COMPLETED

        except asyncio.CancelledError:
            result.add_error("Build cancelled")
            await self._dispose(result, handle, config, failed=True)
            result.finish(BuildStatus.CANCELLED)
            self.logger.warning(f"Build cancelled: {config.name}")
            raise
        except Exception:
            await self._dispose(result, handle, config, failed=True)
            result.finish(BuildStatus.FAILED)
            self.logger.error(f"Build failed: {config.name}")
            return result

        await self._dispose(result, handle, config, failed=False)
        if result.disposition == Disposition.RELEASE_FAILED:
            status = BuildStatus.FAILED
        result.finish(status)
        self.logger.info(f"Build finished: {config.name} ({status.value})")
        return result

    async def _provision(self, handle: InstanceHandle, config: BuildConfig) -> None:
        executor = self.step_executor_factory(config)
        async with executor.staging(handle) as context:
            if config.bootstrap.variables:
                async with executor.session(handle) as session:
                    await self.bootstrap.install(session, context, config.bootstrap)
            else:
                self.logger.info("No bootstrap variables configured")
            await executor.run_steps(handle, config.steps)

    async def _publish(
        self, result: BuildResult, handle: InstanceHandle, config: BuildConfig
    ) -> BuildStatus:
        """Create the image and replicate it; returns the resulting build status."""
        image_id = await self._run_phase(
            result, BuildPhase.CREATE_IMAGE,
            lambda: self.publisher.create_image(handle, config),
        )
        record = ImageRecord(
            image_id=image_id,
            source_region=handle.region,
            name=config.image.name,
            tags=self.publisher.provenance_tags(config),
        )
        result.image = record

        target_regions = self.publisher.resolve_target_regions(config.copy_to, handle.region)
        if not target_regions:
            result.skip_phase(BuildPhase.REPLICATE, "No replication targets configured")
            return BuildStatus.COMPLETED

        phase_result = result.start_phase(BuildPhase.REPLICATE)
        self.logger.info(f"Phase {BuildPhase.REPLICATE.value}: started")
        try:
            outcomes = await self.publisher.replicate(
                handle.region, image_id, target_regions, config
            )
        except asyncio.CancelledError:
            phase_result.mark_failed("cancelled")
            raise
        except Exception as e:
            phase_result.mark_failed(str(e))
            result.add_error(self._handle_error("Replication failed", e))
            raise
        for region in target_regions:
            record.add_outcome(outcomes[region])

        if record.fully_replicated:
            phase_result.mark_completed({"replicas": dict(record.replicas)})
            self.logger.info(f"Phase {BuildPhase.REPLICATE.value}: completed")
            return BuildStatus.COMPLETED

        message = f"Replication failed for {len(record.failures)}/{len(target_regions)} regions"
        phase_result.mark_failed(message)
        phase_result.results["replicas"] = dict(record.replicas)
        for region, error in record.failures.items():
            result.add_error(f"Replication to {region} failed: {error}")

        if config.replication.policy == ReplicationPolicy.LENIENT:
            self.logger.warning(f"{message}; continuing under lenient policy")
            return BuildStatus.PARTIAL_SUCCESS

        self.logger.error(message)
        return BuildStatus.FAILED

    async def _dispose(
        self,
        result: BuildResult,
        handle: Optional[InstanceHandle],
        config: BuildConfig,
        failed: bool,
    ) -> None:
        """Release the instance, or keep it for debugging after a failure."""
        if handle is None:
            result.disposition = Disposition.NOT_ACQUIRED
            result.skip_phase(BuildPhase.RELEASE, "No instance was acquired")
            return

        if failed and not config.cleanup_on_error:
            try:
                stop_phase = result.get_phase_result(BuildPhase.STOP)
                stopped = stop_phase is not None and stop_phase.is_successful
                result.preserved_key_path = self.preserve(handle, config, stopped=stopped)
                result.disposition = Disposition.PRESERVED
                result.skip_phase(BuildPhase.RELEASE, "Instance preserved for debugging")
                return
            except OSError as e:
                result.add_error(self._handle_error("Could not write private key; releasing instead", e))

        phase_result = result.start_phase(BuildPhase.RELEASE)
        try:
            report = await self.lifecycle.release(handle)
        except ReleaseError as e:
            phase_result.mark_failed(str(e))
            result.add_error(self._handle_error("Release incomplete", e))
            result.disposition = Disposition.RELEASE_FAILED
            return

        phase_result.mark_completed({"succeeded": report.succeeded, "skipped": report.skipped})
        result.disposition = Disposition.RELEASED
        self.logger.info(f"Released build resources for {handle.display_name}")

    def preserve(self, handle: InstanceHandle, config: BuildConfig, stopped: bool = False) -> str:
        """Write the private key next to the operator and log how to log in.

        A stopped instance loses its public address, so no login line is
        logged for it; it has to be started again first.
        """
        output_dir = Path(config.key_output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        key_path = output_dir / f"{handle.public_ip or handle.instance_id}.pem"

        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as key_file:
            key_file.write(handle.key_material or "")
        os.chmod(key_path, 0o600)

        self.logger.warning(f"Instance {handle.instance_id} preserved for debugging")
        self.logger.warning(f"Private key written to {key_path}")
        if stopped:
            self.logger.warning(
                f"Instance {handle.instance_id} is stopped; start it with "
                f"'aws ec2 start-instances --region {handle.region} --instance-ids {handle.instance_id}' "
                f"and connect as {config.ssh_username} to its new public address"
            )
        else:
            self.logger.warning(
                f"Connect with: ssh -i {key_path} {config.ssh_username}@{handle.public_ip}"
            )
        return str(key_path)
