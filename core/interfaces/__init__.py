"""Core interfaces for the image build engine."""

from .config_interface import IConfigService
from .lifecycle_interface import IInstanceLifecycleManager
from .step_interface import IStepExecutor, IStepHandler, StepContext
from .publisher_interface import IImagePublisher
from .build_interface import IBuildCoordinator

__all__ = [
    'IConfigService',
    'IInstanceLifecycleManager',
    'IStepExecutor',
    'IStepHandler',
    'StepContext',
    'IImagePublisher',
    'IBuildCoordinator'
]
