"""Configuration service implementation."""

import os
import subprocess
import yaml
import logging
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional

from core.exceptions import ConfigurationError, MamiError
from core.interfaces.config_interface import IConfigService
from core.models.config import (
    AWSConfig,
    BootstrapConfig,
    BuildConfig,
    ConnectionConfig,
    ImageConfig,
    LogLevel,
    ReplicationConfig,
    ReplicationPolicy,
    TimeoutConfig,
)
from core.models.steps import parse_step


def git_revision(cwd: Optional[str] = None) -> str:
    """Current git revision, or ``"unknown"`` outside a work tree."""
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return "unknown"
    return completed.stdout.strip() or "unknown"


def template_variables(cwd: Optional[str] = None) -> Dict[str, str]:
    """Values available as ``${name}`` inside a config document."""
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    return {
        "git_rev": git_revision(cwd),
        "timestamp": timestamp,
        "clean_timestamp": timestamp.replace(":", "."),
    }


class ConfigService(IConfigService):
    """Loads build configuration documents into BuildConfig objects."""

    env_mappings = {
        "MAMI_REGION": "region",
        "MAMI_INSTANCE_TYPE": "instance_type",
        "MAMI_CLEANUP_ON_ERROR": "cleanup_on_error",
        "MAMI_BUILD_AMI": "build_ami",
    }

    def __init__(self, variables: Optional[Dict[str, str]] = None):
        self.logger = logging.getLogger(__name__)
        self._variables = variables

    def _handle_error(self, operation: str, error: Exception) -> None:
        """Centralized error handling and logging."""
        self.logger.error(f"Error {operation}: {str(error)}")
        if isinstance(error, MamiError):
            raise error
        raise ConfigurationError(f"Error {operation}: {str(error)}") from error

    async def load_build_config(self, config_path: str) -> BuildConfig:
        """Load, render, parse and validate a build configuration file."""
        try:
            path = Path(config_path)
            if not path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")

            template = path.read_text(encoding="utf-8")
            variables = self._variables or template_variables(str(path.parent.resolve()))
            self.logger.info(f"Template variables: {variables}")

            raw_config = yaml.safe_load(self.render(template, variables))
            if not raw_config:
                raise ValueError("Configuration file is empty or invalid")
            if not isinstance(raw_config, dict):
                raise ValueError("Configuration document must be a mapping")

            self._apply_environment_overrides(raw_config)

            config = self.parse_build_config(raw_config)
            if not config.image.source_revision:
                config.image.source_revision = variables.get("git_rev")

            errors = self.validate(config)
            if errors:
                raise ConfigurationError("Config validation failed", errors)

            return config

        except Exception as e:
            self._handle_error("loading build configuration", e)

    @staticmethod
    def render(template: str, variables: Dict[str, str]) -> str:
        """Substitute ``${name}`` placeholders; unknown ``$`` references are kept."""
        return Template(template).safe_substitute(variables)

    def parse_build_config(self, raw_config: Dict[str, Any]) -> BuildConfig:
        """Parse a loaded document into a BuildConfig."""
        data = self._normalize_keys(raw_config)
        try:
            steps = [parse_step(step) for step in (data.get("steps") or [])]

            image_data = self._section(data, "image")
            connection_data = self._section(data, "connection")
            timeout_data = self._section(data, "timeouts")
            replication_data = self._section(data, "replication")
            bootstrap_data = self._section(data, "bootstrap")
            aws_data = self._section(data, "aws")

            return BuildConfig(
                region=data.get("region", "us-east-1"),
                aws=AWSConfig(
                    profile=aws_data.get("profile"),
                    role_arn=aws_data.get("role_arn"),
                ),
                instance_type=data.get("instance_type", "t3.micro"),
                source_ami=data.get("source_ami"),
                source_distribution=data.get("source_distribution"),
                ssh_username=data.get("ssh_username", "ubuntu"),
                staging=data.get("staging", "/tmp/mami-staging"),
                steps=steps,
                connection=ConnectionConfig(
                    connect_timeout=int(connection_data.get("connect_timeout", 60)),
                    retry_delay=float(connection_data.get("retry_delay", 5.0)),
                    max_attempts=int(connection_data.get("max_attempts", 60)),
                    total_timeout=float(connection_data.get("total_timeout", 900.0)),
                ),
                bootstrap=BootstrapConfig(
                    variables=list(bootstrap_data.get("variables") or []),
                    target_path=bootstrap_data.get("target_path", "/etc/mami/environment"),
                ),
                reboot_before_build=self._as_bool(data.get("reboot_before_build", False)),
                build_ami=self._as_bool(data.get("build_ami", True)),
                cleanup_on_error=self._as_bool(data.get("cleanup_on_error", True)),
                image=ImageConfig(
                    name=str(image_data.get("name", "")),
                    description=str(image_data.get("description", "")),
                    tags={str(k): str(v) for k, v in (image_data.get("tags") or {}).items()},
                    release_channel=str(image_data.get("release_channel", "stable")),
                    source_revision=image_data.get("source_revision"),
                ),
                copy_to=data.get("copy_to"),
                replication=ReplicationConfig(
                    policy=ReplicationPolicy(replication_data.get("policy", "strict")),
                    max_concurrent=int(replication_data.get("max_concurrent", 4)),
                ),
                name=data.get("name", "image build"),
                timeouts=TimeoutConfig(
                    instance_state=int(timeout_data.get("instance_state", 900)),
                    image_available=int(timeout_data.get("image_available", 3600)),
                    image_poll_interval=float(timeout_data.get("image_poll_interval", 15.0)),
                ),
                key_output_dir=data.get("key_output_dir", "."),
                log_level=LogLevel(str(data.get("log_level", "INFO")).upper()),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Malformed build configuration: {str(e)}") from e

    def validate(self, config: BuildConfig) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        return config.validate()

    def _section(self, data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"'{name}' must be a mapping")
        return self._normalize_keys(section)

    @staticmethod
    def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
        """Accept ``ami-name`` style keys as well as ``ami_name``."""
        return {str(key).replace("-", "_"): value for key, value in data.items()}

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1", "on")
        return bool(value)

    def _apply_environment_overrides(self, config: Dict[str, Any]) -> None:
        """Apply environment variable overrides to configuration."""
        for env_var, config_key in self.env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                if env_value.lower() in ["true", "false"]:
                    env_value = env_value.lower() == "true"

                self.logger.info(f"Overriding {config_key} from {env_var}")
                config[config_key] = env_value
