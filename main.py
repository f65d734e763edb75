#!/usr/bin/env python3
"""
mami - Main Entry Point

Builds machine images on EC2: launches a throwaway instance, provisions it
over SSH, snapshots it into an AMI and copies the AMI to other regions.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from core.exceptions import MamiError
from core.models.build import BuildResult
from core.models.config import BuildConfig
from core.orchestration.build_coordinator import BuildCoordinator
from core.services.bootstrap_service import EnvironmentBootstrap
from core.services.config_service import ConfigService
from core.services.image_publisher import ImagePublisher
from core.services.lifecycle_service import InstanceLifecycleManager
from core.services.step_executor import StepExecutor
from core.utils.logger import apply_log_level, setup_logging
from infrastructure.aws.ec2_client import EC2Client
from infrastructure.ssh.ssh_client import SSHClient


def create_coordinator(config: BuildConfig) -> BuildCoordinator:
    """Wire the build services for ``config``."""
    ec2_client = EC2Client(
        region=config.region,
        profile=config.aws.profile,
        role_arn=config.aws.role_arn,
    )
    ssh_client = SSHClient(config.connection)

    def step_executor_factory(build_config: BuildConfig) -> StepExecutor:
        return StepExecutor(ssh_client, build_config.ssh_username, build_config.staging)

    return BuildCoordinator(
        lifecycle=InstanceLifecycleManager(
            ec2_client, state_timeout=config.timeouts.instance_state
        ),
        step_executor_factory=step_executor_factory,
        publisher=ImagePublisher(ec2_client),
        bootstrap=EnvironmentBootstrap(),
    )


async def run_build(config_path: str, verbose: bool = False) -> BuildResult:
    """Load the configuration and run one build.

    The configured ``log_level`` applies unless ``--verbose`` already asked
    for debug output.
    """
    logger = logging.getLogger(__name__)

    config_service = ConfigService()
    config = await config_service.load_build_config(config_path)
    if not verbose:
        apply_log_level(config.log_level.value)
    logger.info(f"Loaded build configuration '{config.name}' from {config_path}")

    coordinator = create_coordinator(config)
    result = await coordinator.run_build(config)

    summary = result.get_summary()
    logger.info(f"Build ID: {summary['build_id']}")
    logger.info(f"Status: {summary['status']}")
    logger.info(f"Duration: {summary['duration']}")
    if result.image:
        logger.info(f"Image: {result.image.image_id} ({result.image.source_region})")
        for region, image_id in result.image.replicas.items():
            logger.info(f"Replica: {image_id} ({region})")
    if result.preserved_key_path:
        logger.info(f"Preserved instance key: {result.preserved_key_path}")
    for error in result.errors:
        logger.error(f"Error: {error}")

    return result


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='mami - machine image builder for EC2',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build an image from a configuration file
  python main.py build config/example.yml

  # Same, with debug logging
  python main.py build config/example.yml --verbose
        """
    )

    parser.add_argument(
        'action',
        choices=['build'],
        help='Action to run'
    )
    parser.add_argument(
        'config',
        help='Path to the build configuration file'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        if args.action == 'build':
            result = await run_build(args.config, args.verbose)
            return result.exit_code

        print("No action specified. Use --help for usage information.")
        return 1

    except MamiError as e:
        logger.error(f"Invalid configuration: {str(e)}")
        return 1


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)


if __name__ == '__main__':
    cli()
