"""Handlers for each provisioning step type."""

import asyncio
import json
import logging
import re
import shlex
import tempfile
from pathlib import Path, PurePosixPath
from typing import List, Optional

from core.exceptions import WaitTimeoutError
from core.interfaces.step_interface import IStepHandler, StepContext
from core.models.steps import (
    ConfigManagementStep,
    FileCopyStep,
    ShellStep,
    StepType,
    UnitInstallStep,
    UnitKind,
    WaitForConditionStep,
)
from infrastructure.ssh.ssh_client import RemoteSession

SYSTEMD_UNIT_DIR = "/etc/systemd/system"

UNIT_EXTENSIONS = {
    ".service": UnitKind.SERVICE,
    ".timer": UnitKind.TIMER,
    ".socket": UnitKind.SOCKET,
    ".path": UnitKind.PATH,
    ".target": UnitKind.TARGET,
    ".mount": UnitKind.MOUNT,
}

_SERVICE_TYPE = re.compile(r"^\s*Type\s*=\s*(\S+)", re.IGNORECASE)


def _service_type(unit_file: str) -> Optional[str]:
    """Read ``Type=`` from the [Service] section of a local unit file."""
    try:
        lines = Path(unit_file).read_text(encoding="utf-8").splitlines()
    except OSError:
        return None

    in_service = False
    for line in lines:
        stripped = line.strip()
        if stripped.startswith("["):
            in_service = stripped.lower() == "[service]"
            continue
        match = _SERVICE_TYPE.match(line)
        if in_service and match:
            return match.group(1).lower()
    return None


def unit_kind(unit_file: str) -> UnitKind:
    """Classify a unit file by its extension; a oneshot .service is a ONESHOT."""
    kind = UNIT_EXTENSIONS.get(PurePosixPath(unit_file).suffix.lower(), UnitKind.OTHER)
    if kind is UnitKind.SERVICE and _service_type(unit_file) == "oneshot":
        return UnitKind.ONESHOT
    return kind


class ShellHandler(IStepHandler):
    """Runs a literal list of commands."""

    step_type = StepType.SHELL

    async def run(self, session: RemoteSession, step: ShellStep, context: StepContext) -> None:
        await session.run_commands(step.instructions)


class UnitInstallHandler(IStepHandler):
    """Installs a systemd unit; long-running services are also enabled and started."""

    step_type = StepType.UNIT_INSTALL

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def run(self, session: RemoteSession, step: UnitInstallStep, context: StepContext) -> None:
        name = step.unit_name
        kind = unit_kind(step.unit_file)
        installed = f"{SYSTEMD_UNIT_DIR}/{name}"

        await session.upload(step.unit_file, context.staging)

        commands = [
            f"sudo mv {shlex.quote(context.staged(name))} {shlex.quote(installed)}",
            "sudo systemctl daemon-reload",
        ]
        if kind is UnitKind.SERVICE:
            commands += [
                f"sudo systemctl enable {shlex.quote(name)}",
                f"sudo systemctl start {shlex.quote(name)}",
                f"sudo systemctl status --no-pager {shlex.quote(name)}",
            ]
        else:
            self.logger.info(f"Installed {kind.value} unit {name} without starting it")

        await session.run_commands(commands)


class WaitForConditionHandler(IStepHandler):
    """Re-evaluates a remote test expression until it exits 0."""

    step_type = StepType.WAIT_FOR_CONDITION

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def run(self, session: RemoteSession, step: WaitForConditionStep, context: StepContext) -> None:
        for attempt in range(1, step.attempts + 1):
            result = await session.execute(step.test)
            if result.ok:
                self.logger.info(f"Condition '{step.test}' satisfied on attempt {attempt}")
                return

            self.logger.info(
                f"Condition '{step.test}' not yet satisfied (attempt {attempt}/{step.attempts})"
            )
            if attempt < step.attempts:
                await asyncio.sleep(step.interval_seconds)

        raise WaitTimeoutError(step.test, step.attempts)


class FileCopyHandler(IStepHandler):
    """Uploads a local tree into the staging directory."""

    step_type = StepType.FILE_COPY

    async def run(self, session: RemoteSession, step: FileCopyStep, context: StepContext) -> None:
        await session.upload(step.source, context.staging, recursive=True)


class ConfigManagementHandler(IStepHandler):
    """Installs chef and runs chef-solo against uploaded cookbooks."""

    step_type = StepType.CONFIG_MANAGEMENT

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def solo_rb(cookbook_dirs: List[str]) -> str:
        paths = ", ".join(json.dumps(path) for path in cookbook_dirs)
        return f"cookbook_path [{paths}]\n"

    @staticmethod
    def node_json(run_list: List[str]) -> str:
        return json.dumps({"run_list": run_list}, indent=2) + "\n"

    async def run(self, session: RemoteSession, step: ConfigManagementStep, context: StepContext) -> None:
        remote_cookbooks = [
            context.staged(Path(path).name) for path in step.cookbook_paths
        ]

        await session.run_commands([f"curl -L {shlex.quote(step.installer_url)} | sudo bash"])

        with tempfile.TemporaryDirectory(prefix="mami-chef-") as tmp:
            solo_file = Path(tmp) / "solo.rb"
            node_file = Path(tmp) / "node.json"
            solo_file.write_text(self.solo_rb(remote_cookbooks), encoding="utf-8")
            node_file.write_text(self.node_json(step.run_list), encoding="utf-8")
            await session.upload([str(solo_file), str(node_file)], context.staging)

        if step.cookbook_paths:
            await session.upload(step.cookbook_paths, context.staging, recursive=True)

        self.logger.info(f"Running chef-solo with run list {step.run_list}")
        await session.run_commands([
            f"cd {shlex.quote(context.staging)}",
            "sudo chef-solo -c solo.rb -j node.json",
        ])


def default_handlers() -> List[IStepHandler]:
    """One handler per supported step type."""
    return [
        ShellHandler(),
        UnitInstallHandler(),
        WaitForConditionHandler(),
        FileCopyHandler(),
        ConfigManagementHandler(),
    ]
