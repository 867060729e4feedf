"""
Instance manager module and factory function
"""

from typing import cast

from botocore.exceptions import BotoCoreError  # type: ignore

from .errors import ConfigurationError
from .instance_manager import InstanceManager
from ec2_provision.common.config import Config, AWSConfig


async def create_instance_manager(config: Config) -> InstanceManager:
    """
    Create the InstanceManager for the configured cloud provider.

    This is done once per process; the result is handed to the orchestrator.

    Args:
        config: Configuration

    Returns:
        An InstanceManager implementation for the specified provider

    Raises:
        ValueError: If the provider is not supported
        ConfigurationError: If the provider client cannot be constructed
    """
    provider = (config.provider or "").upper()

    match provider:
        case "AWS":
            from .aws import AWSEC2InstanceManager
            aws_config = cast(AWSConfig, config.aws or AWSConfig())
            try:
                instance_manager: InstanceManager = AWSEC2InstanceManager(aws_config)
            except BotoCoreError as e:
                raise ConfigurationError("could not initialize the AWS EC2 client", e) from e
        case _:
            raise ValueError(f"Unsupported instance provider: {config.provider}")

    return instance_manager
