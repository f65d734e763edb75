"""Core data models for the image build engine."""

from .config import (
    AWSConfig,
    BuildConfig,
    ImageConfig,
    ConnectionConfig,
    TimeoutConfig,
    ReplicationConfig,
    ReplicationPolicy,
    BootstrapConfig,
    LogLevel,
)
from .instance import InstanceHandle, InstanceState, ReleaseReport
from .steps import (
    StepType,
    UnitKind,
    ProvisioningStep,
    ShellStep,
    UnitInstallStep,
    WaitForConditionStep,
    FileCopyStep,
    ConfigManagementStep,
    parse_step,
)
from .image import ImageRecord, ReplicationOutcome
from .build import BuildResult, BuildStatus, BuildPhase, PhaseResult, PhaseStatus, Disposition
from .regions import SUPPORTED_REGIONS, all_regions_except

__all__ = [
    'AWSConfig',
    'BuildConfig',
    'ImageConfig',
    'ConnectionConfig',
    'TimeoutConfig',
    'ReplicationConfig',
    'ReplicationPolicy',
    'BootstrapConfig',
    'LogLevel',
    'InstanceHandle',
    'InstanceState',
    'ReleaseReport',
    'StepType',
    'UnitKind',
    'ProvisioningStep',
    'ShellStep',
    'UnitInstallStep',
    'WaitForConditionStep',
    'FileCopyStep',
    'ConfigManagementStep',
    'parse_step',
    'ImageRecord',
    'ReplicationOutcome',
    'BuildResult',
    'BuildStatus',
    'BuildPhase',
    'PhaseResult',
    'PhaseStatus',
    'Disposition',
    'SUPPORTED_REGIONS',
    'all_regions_except',
]
