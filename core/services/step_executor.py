"""Provisioning pipeline: runs typed steps against a build instance in order."""

import logging
import shlex
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from core.exceptions import RemoteCommandError, StagingError, UnknownStepTypeError
from core.interfaces.step_interface import IStepExecutor, IStepHandler, StepContext
from core.models.instance import InstanceHandle
from core.models.steps import ProvisioningStep, StepType
from core.services.step_handlers import default_handlers
from infrastructure.ssh.ssh_client import RemoteSession, SSHClient


class StepExecutor(IStepExecutor):
    """Dispatches provisioning steps to their handlers over SSH.

    Handlers are registered once, keyed by step type identifier. Every step
    gets its own SSH session.
    """

    def __init__(
        self,
        ssh_client: SSHClient,
        username: str,
        staging: str,
        handlers: Optional[List[IStepHandler]] = None,
    ):
        self.ssh_client = ssh_client
        self.username = username
        self.staging_dir = staging
        self.logger = logging.getLogger(__name__)
        self._registry: Dict[str, IStepHandler] = {
            handler.step_type.value: handler
            for handler in (handlers if handlers is not None else default_handlers())
        }

    @property
    def registered_types(self) -> List[str]:
        return sorted(self._registry)

    def handler_for(self, step: ProvisioningStep) -> IStepHandler:
        """Look up the handler for ``step`` in the registry."""
        step_type = getattr(step, "step_type", None)
        identifier = step_type.value if isinstance(step_type, StepType) else str(step_type)

        handler = self._registry.get(identifier)
        if handler is None:
            raise UnknownStepTypeError(identifier, self.registered_types)
        return handler

    @asynccontextmanager
    async def session(self, handle: InstanceHandle) -> AsyncIterator[RemoteSession]:
        async with self.ssh_client.session(handle, self.username) as remote:
            yield remote

    @asynccontextmanager
    async def staging(self, handle: InstanceHandle) -> AsyncIterator[StepContext]:
        """Create the staging directory; remove it on exit whatever the outcome.

        A cleanup failure is raised only when the body succeeded, so it never
        hides the error that aborted provisioning.
        """
        context = StepContext(handle, self.username, self.staging_dir)
        await self._prepare_staging(context)

        try:
            yield context
        except BaseException:
            try:
                await self._cleanup_staging(context)
            except Exception as cleanup_error:
                self.logger.error(
                    f"Staging cleanup failed after provisioning error: {str(cleanup_error)}"
                )
            raise
        else:
            await self._cleanup_staging(context)

    async def _prepare_staging(self, context: StepContext) -> None:
        staging = shlex.quote(context.staging)
        self.logger.info(f"Creating staging directory {context.staging}")
        try:
            async with self.session(context.handle) as remote:
                await remote.run_commands([
                    f"sudo mkdir -p {staging}",
                    f"sudo chown {shlex.quote(context.username)} {staging}",
                ])
        except RemoteCommandError as e:
            raise StagingError(f"Could not create staging directory {context.staging}: {e}") from e

    async def _cleanup_staging(self, context: StepContext) -> None:
        self.logger.info(f"Removing staging directory {context.staging}")
        try:
            async with self.session(context.handle) as remote:
                await remote.run_commands([f"sudo rm -rf {shlex.quote(context.staging)}"])
        except RemoteCommandError as e:
            raise StagingError(f"Could not remove staging directory {context.staging}: {e}") from e

    async def run_steps(
        self, handle: InstanceHandle, steps: List[ProvisioningStep]
    ) -> List[Dict[str, Any]]:
        """Run ``steps`` in order; the first failure propagates and stops the rest."""
        # Resolve every handler first so an unknown type fails before any remote work.
        plan = [(step, self.handler_for(step)) for step in steps]
        context = StepContext(handle, self.username, self.staging_dir)
        results = []

        for index, (step, handler) in enumerate(plan, start=1):
            self.logger.info(f"Step {index}/{len(plan)}: {step.description}")
            started = time.monotonic()

            try:
                async with self.session(handle) as remote:
                    await handler.run(remote, step, context)
            except Exception as e:
                self.logger.error(f"Step {index}/{len(plan)} ({step.step_type.value}) failed: {str(e)}")
                raise

            results.append({
                "index": index,
                "type": step.step_type.value,
                "description": step.description,
                "duration_seconds": round(time.monotonic() - started, 3),
            })

        self.logger.info(f"All {len(plan)} provisioning steps completed")
        return results

    async def run(
        self, handle: InstanceHandle, steps: List[ProvisioningStep]
    ) -> List[Dict[str, Any]]:
        """Run ``steps`` inside a freshly created staging directory."""
        async with self.staging(handle):
            return await self.run_steps(handle, steps)
