"""Environment bootstrap: copies operator-supplied settings onto the instance."""

import logging
import os
import shlex
import tempfile
from pathlib import Path, PurePosixPath
from typing import Dict, Mapping, Optional

from core.interfaces.step_interface import StepContext
from core.models.config import BootstrapConfig
from infrastructure.ssh.ssh_client import RemoteSession

ENVIRONMENT_FILE_NAME = "environment"


class EnvironmentBootstrap:
    """Writes selected process environment variables into a remote env file.

    Values are copied verbatim (one ``NAME=value`` line each) and installed
    root-owned with mode 0600, before any provisioning step runs.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = environ if environ is not None else os.environ
        self.logger = logging.getLogger(__name__)

    def collect(self, config: BootstrapConfig) -> Dict[str, str]:
        """Pick the configured variables out of the environment."""
        values = {}
        for name in config.variables:
            if name in self.environ:
                values[name] = self.environ[name]
            else:
                self.logger.warning(f"Bootstrap variable {name} is not set; skipping it")
        return values

    @staticmethod
    def render(values: Mapping[str, str]) -> str:
        return "".join(f"{name}={value}\n" for name, value in values.items())

    async def install(self, session: RemoteSession, context: StepContext, config: BootstrapConfig) -> bool:
        """Upload and install the env file. Returns False when nothing was configured."""
        if not config.variables:
            self.logger.info("No bootstrap variables configured; skipping environment file")
            return False

        values = self.collect(config)
        target = config.target_path
        target_dir = str(PurePosixPath(target).parent)

        with tempfile.TemporaryDirectory(prefix="mami-env-") as tmp:
            env_file = Path(tmp) / ENVIRONMENT_FILE_NAME
            env_file.write_text(self.render(values), encoding="utf-8")
            os.chmod(env_file, 0o600)
            await session.upload(str(env_file), context.staging)

        await session.run_commands([
            f"sudo mkdir -p {shlex.quote(target_dir)}",
            f"sudo install -m 0600 -o root -g root "
            f"{shlex.quote(context.staged(ENVIRONMENT_FILE_NAME))} {shlex.quote(target)}",
            f"rm -f {shlex.quote(context.staged(ENVIRONMENT_FILE_NAME))}",
        ])
        self.logger.info(f"Installed environment file {target} with {len(values)} variables")
        return True
