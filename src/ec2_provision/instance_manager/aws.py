"""
AWS EC2 implementation of the InstanceManager interface.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import boto3  # type: ignore
from botocore.config import Config as BotoConfig  # type: ignore

from ec2_provision.common.config import AWSConfig
from ec2_provision.common.models import (
    DescribedInstance,
    InstanceStateChange,
    LaunchSpec,
    Tag,
    TagFilter,
)

from .instance_manager import InstanceManager


class AWSEC2InstanceManager(InstanceManager):
    """AWS EC2 implementation of the InstanceManager interface.

    The blocking boto3 calls run in a worker thread so the event loop stays free.
    Each request is bounded by the client's own connect and read timeouts and is
    attempted exactly once, so a call that fails has really ended.
    """

    def __init__(self, aws_config: AWSConfig) -> None:
        """Initialize the AWS EC2 instance manager.

        Args:
            aws_config: AWS configuration; unset fields fall back to the ambient
                boto3 credential and region chain

        Raises:
            botocore.exceptions.BotoCoreError: If the client cannot be constructed,
                e.g. no region is configured anywhere
        """
        self._logger = logging.getLogger(__name__)

        self._credentials = {
            "aws_access_key_id": aws_config.access_key,
            "aws_secret_access_key": aws_config.secret_key,
        }
        self._region = aws_config.region
        self._timeout = aws_config.timeout

        self._ec2_client = boto3.client(
            "ec2",
            region_name=self._region,
            config=self.client_config(self._timeout),
            **self._credentials,
        )

        self._logger.debug(
            f"Initialized AWS EC2: region '{self._ec2_client.meta.region_name}'"
        )

    @staticmethod
    def client_config(timeout: Optional[float] = None) -> BotoConfig:
        """Build the botocore client configuration.

        Retries are disabled. When timeout is given it is used as both the connect
        and the read timeout of every request.
        """
        options: Dict[str, Any] = {"retries": {"total_max_attempts": 1, "mode": "standard"}}
        if timeout is not None:
            options["connect_timeout"] = timeout
            options["read_timeout"] = timeout
        return BotoConfig(**options)

    async def run_instances(self, spec: LaunchSpec) -> List[str]:
        self._logger.info(
            f"Launching {spec.count} instance(s) of type {spec.instance_type} "
            f"from image {spec.image_id}"
        )
        response = await asyncio.to_thread(
            self._ec2_client.run_instances,
            ImageId=spec.image_id,
            InstanceType=spec.instance_type,
            MinCount=spec.count,
            MaxCount=spec.count,
        )
        instance_ids = [instance["InstanceId"] for instance in response.get("Instances", [])]
        self._logger.debug(f"Launched instances: {instance_ids}")
        return instance_ids

    async def create_tags(self, resource_ids: List[str], tags: List[Tag]) -> None:
        self._logger.info(f"Tagging {resource_ids} with {[(t.key, t.value) for t in tags]}")
        await asyncio.to_thread(
            self._ec2_client.create_tags,
            Resources=list(resource_ids),
            Tags=[tag.to_aws() for tag in tags],
        )

    async def describe_instances(self, tag_filter: TagFilter) -> List[List[DescribedInstance]]:
        """
        Describe EC2 instances matching a tag filter.

        All result pages are read; each reservation becomes one inner list.
        """
        self._logger.debug(f"Describing instances with filter {tag_filter.to_aws()}")
        paginator = self._ec2_client.get_paginator("describe_instances")

        def _collect() -> List[List[DescribedInstance]]:
            groups = []
            for page in paginator.paginate(Filters=[tag_filter.to_aws()]):
                for reservation in page.get("Reservations", []):
                    groups.append(
                        [
                            DescribedInstance(
                                instance_id=instance["InstanceId"],
                                tags={t["Key"]: t["Value"] for t in instance.get("Tags", [])},
                                state=instance.get("State", {}).get("Name"),
                            )
                            for instance in reservation.get("Instances", [])
                        ]
                    )
            return groups

        return await asyncio.to_thread(_collect)

    async def terminate_instances(
        self, instance_ids: List[str], *, dry_run: bool = False
    ) -> List[InstanceStateChange]:
        self._logger.info(f"Terminating instances {instance_ids} (dry run: {dry_run})")
        response = await asyncio.to_thread(
            self._ec2_client.terminate_instances,
            InstanceIds=list(instance_ids),
            DryRun=dry_run,
        )
        return [
            InstanceStateChange(
                instance_id=entry["InstanceId"],
                previous_state=entry.get("PreviousState", {}).get("Name"),
                current_state=entry.get("CurrentState", {}).get("Name"),
            )
            for entry in response.get("TerminatingInstances", [])
        ]
