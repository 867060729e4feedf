"""
Configuration handling for EC2 provisioning.
"""

import logging
import os
from typing import Any, Dict, Literal, Optional

import yaml
from filecache import FCPath
from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, constr

from ec2_provision.common.models import LaunchSpec

LOGGER = logging.getLogger(__name__)

DEFAULT_IMAGE_ID = "ami-0d0ca2066b861631c"
DEFAULT_INSTANCE_TYPE = "t2.micro"


class AWSConfig(BaseModel, validate_assignment=True):
    """Config options specific to AWS.

    Any option left as None falls through to the ambient boto3 configuration
    (environment variables, shared credentials file, instance profile).
    """

    model_config = ConfigDict(extra="forbid")

    region: Optional[constr(min_length=1)] = None
    access_key: Optional[constr(min_length=1)] = None
    secret_key: Optional[constr(min_length=1)] = None
    # Connect and read timeout, in seconds, for each EC2 API request
    timeout: Optional[PositiveFloat] = None


class Config(BaseModel, validate_assignment=True):
    """Main configuration object.

    Must be created and populated like::

        config = load_config(args.config)
        config.overload_from_cli(vars(args))
        config.validate_config()
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    provider: Optional[Literal["aws", "AWS"]] = "AWS"
    instance_type: constr(min_length=1) = Field(DEFAULT_INSTANCE_TYPE, alias="instance-type")
    image_id: constr(min_length=1) = Field(DEFAULT_IMAGE_ID, alias="image-id")
    aws: Optional[AWSConfig] = None

    def overload_from_cli(self, cli_args: Optional[Dict[str, Any]] = None) -> None:
        """Overload Config object with command line arguments.

        Args:
            cli_args: Command line arguments as a dictionary
        """
        if self.aws is None:
            self.aws = AWSConfig()
        if cli_args is not None:
            for attr_name in ("instance_type", "image_id"):
                if cli_args.get(attr_name) is not None:
                    val = getattr(self, attr_name)
                    if val != cli_args[attr_name]:
                        LOGGER.warning(
                            f"Overloading {attr_name}={val} with CLI={cli_args[attr_name]}"
                        )
                    setattr(self, attr_name, cli_args[attr_name])
            for attr_name in AWSConfig.model_fields:
                if cli_args.get(attr_name) is not None:
                    val = getattr(self.aws, attr_name)
                    if val is not None:
                        LOGGER.warning(
                            f"Overloading aws.{attr_name}={val} with CLI={cli_args[attr_name]}"
                        )
                    setattr(self.aws, attr_name, cli_args[attr_name])
        if self.provider is not None:
            self.provider = self.provider.upper()

    def validate_config(self) -> None:
        """Perform final validation of the configuration."""
        if self.provider is None:
            raise ValueError("Provider must be specified")

    def launch_spec(self) -> LaunchSpec:
        """Build the launch specification for a single instance."""
        return LaunchSpec(image_id=self.image_id, instance_type=self.instance_type, count=1)


def load_config(config_file: Optional[str] = None) -> Config:
    """Load configuration from a YAML or JSON file.

    JSON documents are read with the YAML parser, so the flat
    ``{"instance-type": ..., "image-id": ...}`` form works as-is.

    Args:
        config_file: Path to the configuration file; if None, the built-in defaults
            are used

    Returns:
        Config object containing the configuration

    Raises:
        FileNotFoundError: If the file cannot be found
        ValueError: If the file cannot be loaded or is invalid
    """
    if config_file:
        if not os.path.exists(config_file):
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        with FCPath(config_file).open(mode="r") as f:
            try:
                config_dict = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Configuration file {config_file} could not be parsed: {e}") from e

        if not isinstance(config_dict, dict):
            raise ValueError("Configuration file must contain a YAML or JSON dictionary")
    else:
        config_dict = {}

    if config_dict.get("aws") is None:
        config_dict["aws"] = {}

    config = Config.model_validate(config_dict)

    if config.provider is not None:
        config.provider = config.provider.upper()

    LOGGER.debug(f"Loaded configuration: image {config.image_id}, type {config.instance_type}")
    return config
