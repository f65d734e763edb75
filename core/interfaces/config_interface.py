"""Configuration service interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List
from core.models.config import BuildConfig


class IConfigService(ABC):
    """Interface for build configuration loading."""

    @abstractmethod
    async def load_build_config(self, config_path: str) -> BuildConfig:
        """Load build configuration from file.

        Args:
            config_path: Path to the configuration file

        Returns:
            BuildConfig object

        Raises:
            ConfigurationError: If config is invalid or not found
        """
        pass

    @abstractmethod
    def parse_build_config(self, raw_config: Dict[str, Any]) -> BuildConfig:
        """Build a BuildConfig from an already loaded document.

        Raises:
            ConfigurationError: If the document is malformed
        """
        pass

    @abstractmethod
    def validate(self, config: BuildConfig) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        pass
