"""Provisioning step data models."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, List, Union

from core.exceptions import ConfigurationError, UnknownStepTypeError


class StepType(Enum):
    """Identifiers used in the ``type`` field of a provisioning step."""
    SHELL = "shell"
    UNIT_INSTALL = "systemd"
    WAIT_FOR_CONDITION = "wait-for"
    FILE_COPY = "scp"
    CONFIG_MANAGEMENT = "chef-solo"


class UnitKind(Enum):
    """Service unit subtypes, derived from the unit file extension."""
    SERVICE = "service"
    ONESHOT = "oneshot"
    TIMER = "timer"
    SOCKET = "socket"
    PATH = "path"
    TARGET = "target"
    MOUNT = "mount"
    OTHER = "other"


@dataclass
class ShellStep:
    """Run a literal, ordered list of shell commands."""
    instructions: List[str] = field(default_factory=list)
    step_type: StepType = field(default=StepType.SHELL, init=False)

    @property
    def description(self) -> str:
        return f"shell ({len(self.instructions)} commands)"


@dataclass
class UnitInstallStep:
    """Install a service unit definition on the instance."""
    unit_file: str = ""
    step_type: StepType = field(default=StepType.UNIT_INSTALL, init=False)

    @property
    def unit_name(self) -> str:
        return PurePosixPath(self.unit_file).name

    @property
    def description(self) -> str:
        return f"systemd unit {self.unit_name}"


@dataclass
class WaitForConditionStep:
    """Poll a remote test expression until it succeeds."""
    test: str = ""
    attempts: int = 30
    interval_seconds: float = 2.0
    step_type: StepType = field(default=StepType.WAIT_FOR_CONDITION, init=False)

    @property
    def description(self) -> str:
        return f"wait for '{self.test}'"


@dataclass
class FileCopyStep:
    """Upload a local directory tree into the staging directory."""
    source: str = ""
    step_type: StepType = field(default=StepType.FILE_COPY, init=False)

    @property
    def description(self) -> str:
        return f"copy {self.source}"


@dataclass
class ConfigManagementStep:
    """Install chef and converge the instance with chef-solo."""
    cookbook_paths: List[str] = field(default_factory=list)
    run_list: List[str] = field(default_factory=list)
    installer_url: str = "https://www.opscode.com/chef/install.sh"
    step_type: StepType = field(default=StepType.CONFIG_MANAGEMENT, init=False)

    @property
    def description(self) -> str:
        return f"chef-solo run list {', '.join(self.run_list) or '(empty)'}"


ProvisioningStep = Union[
    ShellStep,
    UnitInstallStep,
    WaitForConditionStep,
    FileCopyStep,
    ConfigManagementStep,
]


def _parse_shell(data: Dict[str, Any]) -> ShellStep:
    instructions = data.get("instructions") or []
    if isinstance(instructions, str):
        instructions = [instructions]
    return ShellStep(instructions=[str(i) for i in instructions])


def _parse_unit_install(data: Dict[str, Any]) -> UnitInstallStep:
    return UnitInstallStep(unit_file=data.get("unit_file", data.get("unit-file", "")))


def _parse_wait_for(data: Dict[str, Any]) -> WaitForConditionStep:
    return WaitForConditionStep(
        test=data.get("test", ""),
        attempts=int(data.get("attempts", 30)),
        interval_seconds=float(data.get("interval_seconds", 2.0)),
    )


def _parse_file_copy(data: Dict[str, Any]) -> FileCopyStep:
    return FileCopyStep(source=data.get("from", data.get("source", "")))


def _parse_config_management(data: Dict[str, Any]) -> ConfigManagementStep:
    step = ConfigManagementStep(
        cookbook_paths=list(data.get("cookbook_paths") or []),
        run_list=list(data.get("run_list") or []),
    )
    if data.get("installer_url"):
        step.installer_url = data["installer_url"]
    return step


STEP_PARSERS = {
    StepType.SHELL.value: _parse_shell,
    StepType.UNIT_INSTALL.value: _parse_unit_install,
    StepType.WAIT_FOR_CONDITION.value: _parse_wait_for,
    StepType.FILE_COPY.value: _parse_file_copy,
    StepType.CONFIG_MANAGEMENT.value: _parse_config_management,
}

def parse_step(data: Dict[str, Any]) -> ProvisioningStep:
    """Build a typed provisioning step from its config document entry."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Provisioning step must be a mapping, got {type(data).__name__}")

    step_type = data.get("type")
    parser = STEP_PARSERS.get(step_type)
    if parser is None:
        raise UnknownStepTypeError(str(step_type), list(STEP_PARSERS))
    return parser(data)


def validate_step(step: ProvisioningStep, prefix: str) -> List[str]:
    """Return validation errors for a single step."""
    errors = []

    if isinstance(step, ShellStep) and not step.instructions:
        errors.append(f"{prefix}: shell step needs at least one instruction")
    elif isinstance(step, UnitInstallStep) and not step.unit_file:
        errors.append(f"{prefix}: systemd step needs a unit_file")
    elif isinstance(step, WaitForConditionStep):
        if not step.test:
            errors.append(f"{prefix}: wait-for step needs a test expression")
        if step.attempts < 1:
            errors.append(f"{prefix}: wait-for attempts must be positive")
    elif isinstance(step, FileCopyStep) and not step.source:
        errors.append(f"{prefix}: scp step needs a 'from' path")
    elif isinstance(step, ConfigManagementStep) and not step.run_list:
        errors.append(f"{prefix}: chef-solo step needs a run_list")

    return errors
