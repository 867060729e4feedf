from abc import ABC, abstractmethod
from typing import List

from ec2_provision.common.models import (
    DescribedInstance,
    InstanceStateChange,
    LaunchSpec,
    Tag,
    TagFilter,
)


class InstanceManager(ABC):
    """Base interface for the remote instance operations used by the orchestrator.

    None of these operations retry; each either completes or raises once.
    """

    @abstractmethod
    async def run_instances(self, spec: LaunchSpec) -> List[str]:
        """Launch instances.

        Args:
            spec: Image, instance type and count to launch

        Returns:
            The IDs of the created instances, in the order the provider reported them
        """
        pass

    @abstractmethod
    async def create_tags(self, resource_ids: List[str], tags: List[Tag]) -> None:
        """Attach tags to one or more resources."""
        pass

    @abstractmethod
    async def describe_instances(self, tag_filter: TagFilter) -> List[List[DescribedInstance]]:
        """
        Find instances matching a tag filter.

        Args:
            tag_filter: Tag key and the accepted values for it

        Returns:
            One list of instances per provider grouping (an EC2 reservation)
        """
        pass

    @abstractmethod
    async def terminate_instances(
        self, instance_ids: List[str], *, dry_run: bool = False
    ) -> List[InstanceStateChange]:
        """Terminate instances by ID.

        Args:
            instance_ids: IDs to terminate; passed through even when empty
            dry_run: Ask the provider to validate the request without performing it

        Returns:
            One state change per terminated instance
        """
        pass
