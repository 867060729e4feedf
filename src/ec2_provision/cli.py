"""
Command-line interface for provisioning and de-provisioning a single EC2 instance.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import pydantic

from ec2_provision.common.config import Config, load_config
from ec2_provision.common.logging_config import configure_logging, set_verbosity
from ec2_provision.instance_manager import create_instance_manager
from ec2_provision.instance_manager.errors import (
    ConfigurationError,
    ProvisionError,
    TaggingError,
    UsageError,
)
from ec2_provision.instance_manager.orchestrator import InstanceOrchestrator, split_csv


# Use custom logging configuration
configure_logging(level=logging.WARNING)
logger = logging.getLogger(__name__)

CREATE = "create"
DELETE_BY_ID = "delete_by_id"
DELETE_BY_TAG = "delete_by_tag"

COMMAND_USAGE = "You must supply a command create or delete (-c create)"
TAG_USAGE = "You must supply a name and value for the tag (-n TagName -v TagValue)"
DELETE_USAGE = (
    "You must supply instance IDs (-i id1,id2) or a tag name and values "
    "(-n TagName -v value1,value2)"
)
DELETE_BOTH_USAGE = "Use either -i or -n/-v to select instances to delete, not both"


def resolve_command(args: argparse.Namespace) -> str:
    """
    Validate the arguments and decide which operation to run.

    No remote call is made here.

    Returns:
        One of CREATE, DELETE_BY_ID, or DELETE_BY_TAG

    Raises:
        UsageError: If the command is unknown or a required flag is missing
    """
    command = (args.command or "").strip()
    has_tag = bool(args.name) and bool(args.value)

    if command == "create":
        if not has_tag:
            raise UsageError(TAG_USAGE)
        return CREATE

    if command == "delete":
        has_ids = bool(args.instance_ids) and bool(split_csv(args.instance_ids))
        if args.instance_ids and (args.name or args.value):
            raise UsageError(DELETE_BOTH_USAGE)
        if has_ids:
            return DELETE_BY_ID
        if has_tag and split_csv(args.value):
            return DELETE_BY_TAG
        raise UsageError(DELETE_USAGE)

    raise UsageError(COMMAND_USAGE)


async def create_cmd(
    args: argparse.Namespace, config: Config, orchestrator: InstanceOrchestrator
) -> None:
    """Launch one instance and tag it with -n/-v."""
    spec = config.launch_spec()
    print(f"Launch configuration: image {spec.image_id}, instance type {spec.instance_type}")
    instance_id = await orchestrator.create_instance(args.name, args.value, spec)
    print(f"Created tagged instance with ID {instance_id}")


async def delete_by_id_cmd(
    args: argparse.Namespace, config: Config, orchestrator: InstanceOrchestrator
) -> None:
    """Terminate the instances listed with -i."""
    print(f"Deleting instances {args.instance_ids}")
    changes = await orchestrator.delete_instances_by_id(args.instance_ids)
    _print_terminated(changes)


async def delete_by_tag_cmd(
    args: argparse.Namespace, config: Config, orchestrator: InstanceOrchestrator
) -> None:
    """Terminate the instances whose tag -n has one of the values in -v."""
    print(f"Deleting instances with {args.name}={args.value}")
    changes = await orchestrator.delete_instances_by_tag(args.name, args.value)
    _print_terminated(changes)


def _print_terminated(changes) -> None:
    if not changes:
        print("No instances were terminated")
        return
    first = changes[0]
    print(f"Terminated instance with id: {first.instance_id} (state: {first.current_state})")
    if len(changes) > 1:
        print(f"  ...and {len(changes) - 1} more instance(s)")


COMMANDS = {
    CREATE: create_cmd,
    DELETE_BY_ID: delete_by_id_cmd,
    DELETE_BY_TAG: delete_by_tag_cmd,
}


async def execute(action: str, args: argparse.Namespace, config: Config) -> int:
    """
    Build the provider client, run one command, and report the outcome.

    Returns:
        Process exit code
    """
    try:
        instance_manager = await create_instance_manager(config)
    except (ConfigurationError, ValueError) as e:
        logger.fatal(f"Could not initialize the provider: {e}")
        print(f"Configuration error: {e}")
        return 1

    orchestrator = InstanceOrchestrator(
        instance_manager,
        config.launch_spec(),
        terminate_on_tag_failure=args.terminate_on_tag_failure,
    )

    try:
        await COMMANDS[action](args, config, orchestrator)
    except TaggingError as e:
        print(f"Error: {e}")
        if e.compensated:
            print(f"Instance {e.instance_id} was terminated because it could not be tagged")
        else:
            print(f"Instance {e.instance_id} was created but is untagged and still running")
        return 1
    except UsageError as e:
        print(e.message)
        return 1
    except ProvisionError as e:
        print(f"Error: {e}")
        return 1

    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Provision or de-provision a tagged EC2 instance"
    )
    parser.add_argument("-c", "--command", default="", help="Command to run: create or delete")
    parser.add_argument(
        "-n",
        "--name",
        default="",
        help="The name of the tag to attach to the instance, or to match on for delete",
    )
    parser.add_argument(
        "-v",
        "--value",
        default="",
        help="The value of the tag to attach; for delete, a comma-separated list of values",
    )
    parser.add_argument(
        "-i", "--instance-ids", default="", help="Comma-separated instance IDs to delete"
    )
    parser.add_argument("--config", help="Path to configuration file (JSON or YAML)")

    # From AWSConfig class
    parser.add_argument("--region", help="AWS region (default: from the AWS environment)")
    parser.add_argument("--access-key", help="AWS access key")
    parser.add_argument("--secret-key", help="AWS secret key")

    # From Config class
    parser.add_argument("--instance-type", help="Instance type to launch (default: t2.micro)")
    parser.add_argument("--image-id", help="AMI to launch")

    parser.add_argument(
        "--timeout",
        type=float,
        help="Connect and read timeout in seconds for each EC2 request (no retries)",
    )
    parser.add_argument(
        "--terminate-on-tag-failure",
        action="store_true",
        help="Terminate a newly created instance again if it cannot be tagged",
    )
    parser.add_argument(
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity level (--verbose for warning, x2 for info, x3 for debug)",
    )
    return parser


def run_argv(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments and run one command.

    Args:
        argv: Arguments without the program name; None means sys.argv[1:]

    Returns:
        Process exit code
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1

    set_verbosity(args.verbose)

    print("Provisioning/De-provisioning EC2 in progress")

    try:
        action = resolve_command(args)
    except UsageError as e:
        print(e.message)
        return 1

    logger.info(f"Loading configuration from {args.config}")
    try:
        config = load_config(args.config)
        config.overload_from_cli(vars(args))
        config.validate_config()
    except (FileNotFoundError, pydantic.ValidationError, ValueError) as e:
        logger.fatal(f"Invalid configuration: {e}")
        print(f"Invalid configuration: {e}")
        return 1

    return asyncio.run(execute(action, args, config))


def main():
    """Main entry point for the CLI."""
    sys.exit(run_argv(sys.argv[1:]))


if __name__ == "__main__":
    main()
