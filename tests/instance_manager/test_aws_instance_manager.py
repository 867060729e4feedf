"""
Tests for the AWS EC2 instance manager and the instance manager factory.
"""

import datetime
from unittest.mock import ANY, MagicMock, patch

import pytest
from botocore.config import Config as BotoConfig  # type: ignore
from botocore.exceptions import ClientError, NoRegionError, ReadTimeoutError  # type: ignore

from ec2_provision.common.config import AWSConfig, Config
from ec2_provision.common.models import LaunchSpec, Tag, TagFilter
from ec2_provision.instance_manager import create_instance_manager
from ec2_provision.instance_manager.aws import AWSEC2InstanceManager
from ec2_provision.instance_manager.errors import ConfigurationError


@pytest.fixture
def mock_ec2_client():
    """Fixture to provide a mock EC2 client."""
    with patch("boto3.client") as mock_client:
        client = MagicMock()
        client.meta.region_name = "us-east-2"
        mock_client.return_value = client
        yield client


def make_manager(**kwargs):
    return AWSEC2InstanceManager(AWSConfig(**kwargs))


def test_init_passes_credentials(mock_ec2_client):
    make_manager(region="us-east-2", access_key="test-key", secret_key="test-secret")

    import boto3

    boto3.client.assert_called_once_with(
        "ec2",
        region_name="us-east-2",
        config=ANY,
        aws_access_key_id="test-key",
        aws_secret_access_key="test-secret",
    )


def test_init_ambient_credentials(mock_ec2_client):
    make_manager()

    import boto3

    boto3.client.assert_called_once_with(
        "ec2",
        region_name=None,
        config=ANY,
        aws_access_key_id=None,
        aws_secret_access_key=None,
    )


def test_init_applies_timeout_to_client(mock_ec2_client):
    make_manager(region="us-east-2", timeout=2.5)

    import boto3

    config = boto3.client.call_args.kwargs["config"]
    assert config.connect_timeout == 2.5
    assert config.read_timeout == 2.5
    assert config.retries == {"total_max_attempts": 1, "mode": "standard"}


def test_client_config_without_timeout_keeps_botocore_defaults():
    config = AWSEC2InstanceManager.client_config()
    default = BotoConfig()
    assert config.connect_timeout == default.connect_timeout
    assert config.read_timeout == default.read_timeout
    # No retries, with or without a timeout
    assert config.retries == {"total_max_attempts": 1, "mode": "standard"}


@pytest.mark.asyncio
async def test_read_timeout_propagates(mock_ec2_client):
    mock_ec2_client.terminate_instances.side_effect = ReadTimeoutError(
        endpoint_url="https://ec2.us-east-2.amazonaws.com/"
    )
    manager = make_manager(region="us-east-2", timeout=0.1)

    with pytest.raises(ReadTimeoutError):
        await manager.terminate_instances(["i-1"])
    assert mock_ec2_client.terminate_instances.call_count == 1


@pytest.mark.asyncio
async def test_run_instances(mock_ec2_client):
    mock_ec2_client.run_instances.return_value = {
        "Instances": [{"InstanceId": "i-1234567890abcdef0"}]
    }
    manager = make_manager()

    ids = await manager.run_instances(LaunchSpec(image_id="ami-abc", instance_type="t2.micro"))

    assert ids == ["i-1234567890abcdef0"]
    mock_ec2_client.run_instances.assert_called_once_with(
        ImageId="ami-abc", InstanceType="t2.micro", MinCount=1, MaxCount=1
    )


@pytest.mark.asyncio
async def test_run_instances_error_propagates(mock_ec2_client):
    mock_ec2_client.run_instances.side_effect = ClientError(
        {"Error": {"Code": "InvalidAMIID.NotFound", "Message": "not found"}}, "RunInstances"
    )
    manager = make_manager()

    with pytest.raises(ClientError):
        await manager.run_instances(LaunchSpec(image_id="ami-bad", instance_type="t2.micro"))


@pytest.mark.asyncio
async def test_create_tags(mock_ec2_client):
    manager = make_manager()

    await manager.create_tags(["i-1"], [Tag(key="env", value="dev")])

    mock_ec2_client.create_tags.assert_called_once_with(
        Resources=["i-1"], Tags=[{"Key": "env", "Value": "dev"}]
    )


@pytest.mark.asyncio
async def test_describe_instances_groups_by_reservation(mock_ec2_client):
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {
            "Reservations": [
                {
                    "Instances": [
                        {
                            "InstanceId": "i-a",
                            "State": {"Name": "running"},
                            "Tags": [{"Key": "env", "Value": "dev"}],
                            "LaunchTime": datetime.datetime(2024, 1, 1),
                        },
                        {"InstanceId": "i-b", "State": {"Name": "stopped"}},
                    ]
                }
            ]
        },
        {"Reservations": [{"Instances": [{"InstanceId": "i-c"}]}]},
    ]
    mock_ec2_client.get_paginator.return_value = paginator
    manager = make_manager()

    groups = await manager.describe_instances(TagFilter(key="env", values=["dev", "staging"]))

    mock_ec2_client.get_paginator.assert_called_once_with("describe_instances")
    paginator.paginate.assert_called_once_with(
        Filters=[{"Name": "tag:env", "Values": ["dev", "staging"]}]
    )
    assert [[i.instance_id for i in group] for group in groups] == [["i-a", "i-b"], ["i-c"]]
    assert groups[0][0].tags == {"env": "dev"}
    assert groups[0][0].state == "running"
    assert groups[0][1].tags == {}
    assert groups[1][0].state is None


@pytest.mark.asyncio
async def test_terminate_instances_never_dry_run_by_default(mock_ec2_client):
    mock_ec2_client.terminate_instances.return_value = {
        "TerminatingInstances": [
            {
                "InstanceId": "i-1",
                "PreviousState": {"Code": 16, "Name": "running"},
                "CurrentState": {"Code": 32, "Name": "shutting-down"},
            }
        ]
    }
    manager = make_manager()

    changes = await manager.terminate_instances(["i-1"])

    mock_ec2_client.terminate_instances.assert_called_once_with(InstanceIds=["i-1"], DryRun=False)
    assert changes[0].instance_id == "i-1"
    assert changes[0].previous_state == "running"
    assert changes[0].current_state == "shutting-down"


@pytest.mark.asyncio
async def test_terminate_instances_empty_list_passes_through(mock_ec2_client):
    mock_ec2_client.terminate_instances.return_value = {}
    manager = make_manager()

    changes = await manager.terminate_instances([], dry_run=False)

    mock_ec2_client.terminate_instances.assert_called_once_with(InstanceIds=[], DryRun=False)
    assert changes == []


@pytest.mark.asyncio
async def test_create_instance_manager_aws(mock_ec2_client):
    config = Config(aws={"region": "us-east-2"})
    config.overload_from_cli(None)

    manager = await create_instance_manager(config)

    assert isinstance(manager, AWSEC2InstanceManager)


@pytest.mark.asyncio
async def test_create_instance_manager_without_aws_section(mock_ec2_client):
    manager = await create_instance_manager(Config())
    assert isinstance(manager, AWSEC2InstanceManager)


@pytest.mark.asyncio
async def test_create_instance_manager_unsupported_provider():
    config = Config(provider=None)
    with pytest.raises(ValueError) as excinfo:
        await create_instance_manager(config)
    assert "Unsupported instance provider" in str(excinfo.value)


@pytest.mark.asyncio
async def test_create_instance_manager_bootstrap_failure():
    with patch("boto3.client", side_effect=NoRegionError()):
        with pytest.raises(ConfigurationError) as excinfo:
            await create_instance_manager(Config())
    assert isinstance(excinfo.value.cause, NoRegionError)
