"""Core services for the image build engine."""

from .config_service import ConfigService
from .lifecycle_service import InstanceLifecycleManager
from .step_executor import StepExecutor
from .bootstrap_service import EnvironmentBootstrap
from .image_publisher import ImagePublisher

__all__ = [
    'ConfigService',
    'InstanceLifecycleManager',
    'StepExecutor',
    'EnvironmentBootstrap',
    'ImagePublisher'
]
