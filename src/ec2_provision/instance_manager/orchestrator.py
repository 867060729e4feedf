"""
Create and delete orchestration on top of an InstanceManager.
"""

import asyncio
import logging
from typing import List, Optional

from ec2_provision.common.models import InstanceStateChange, LaunchSpec, Tag, TagFilter
from ec2_provision.instance_manager.errors import (
    InstanceCreationError,
    InstanceLookupError,
    TaggingError,
    TerminationError,
    UsageError,
)
from ec2_provision.instance_manager.instance_manager import InstanceManager


def split_csv(text: str) -> List[str]:
    """Split a comma-separated string, dropping blanks and surrounding whitespace."""
    return [item.strip() for item in text.split(",") if item.strip()]


class InstanceOrchestrator:
    """
    Runs one provisioning command against an InstanceManager.

    Remote calls are issued strictly one at a time. The first failing call ends the
    command with a RemoteOperationError subclass that names the failing step and
    chains the provider's exception. Time limits belong to the InstanceManager
    (e.g. the boto3 client's connect/read timeouts), so a failed call has really
    ended when it is reported. Cancellation from outside is logged with the step it
    interrupted and then re-raised.
    """

    def __init__(
        self,
        instance_manager: InstanceManager,
        launch_spec: Optional[LaunchSpec] = None,
        *,
        terminate_on_tag_failure: bool = False,
    ):
        """
        Initialize the orchestrator.

        Args:
            instance_manager: The provider operations to use
            launch_spec: Default launch specification for create_instance
            terminate_on_tag_failure: Terminate a freshly launched instance again when it
                cannot be tagged
        """
        self._logger = logging.getLogger(__name__)
        self._instance_manager = instance_manager
        self._launch_spec = launch_spec
        self._terminate_on_tag_failure = terminate_on_tag_failure

    async def create_instance(
        self, tag_key: str, tag_value: str, launch_spec: Optional[LaunchSpec] = None
    ) -> str:
        """
        Launch exactly one instance and tag it.

        Args:
            tag_key: Tag key to attach
            tag_value: Tag value to attach
            launch_spec: Overrides the launch specification given at construction

        Returns:
            The ID of the created and tagged instance

        Raises:
            InstanceCreationError: If the launch failed; nothing was created
            TaggingError: If tagging failed; the instance exists untagged unless it was
                terminated again (see ``terminate_on_tag_failure``)
        """
        spec = launch_spec or self._launch_spec
        if spec is None:
            raise UsageError("no launch specification available")
        if spec.count != 1:
            spec = spec.model_copy(update={"count": 1})
        tag = Tag(key=tag_key, value=tag_value)

        try:
            instance_ids = await self._instance_manager.run_instances(spec)
        except asyncio.CancelledError:
            self._logger.error("Cancelled while launching instance")
            raise
        except Exception as e:
            self._logger.error(f"Failed to launch instance: {e}")
            raise InstanceCreationError(e) from e
        if not instance_ids:
            raise InstanceCreationError(RuntimeError("provider returned no instances"))

        instance_id = instance_ids[0]
        self._logger.info(f"Launched instance {instance_id}")

        try:
            await self._instance_manager.create_tags([instance_id], [tag])
        except asyncio.CancelledError:
            self._logger.error(f"Cancelled while tagging instance {instance_id}; it may be untagged")
            raise
        except Exception as e:
            self._logger.error(f"Failed to tag instance {instance_id}: {e}")
            compensated = False
            if self._terminate_on_tag_failure:
                compensated = await self._compensate(instance_id)
            raise TaggingError(instance_id, e, compensated=compensated) from e

        self._logger.info(f"Tagged instance {instance_id} with {tag_key}={tag_value}")
        return instance_id

    async def _compensate(self, instance_id: str) -> bool:
        self._logger.warning(f"Terminating untagged instance {instance_id}")
        try:
            await self._instance_manager.terminate_instances([instance_id], dry_run=False)
        except Exception as e:
            self._logger.error(f"Failed to terminate untagged instance {instance_id}: {e}")
            return False
        return True

    async def delete_instances_by_id(self, instance_ids: str) -> List[InstanceStateChange]:
        """
        Terminate instances given as a comma-separated list of IDs.

        Raises:
            UsageError: If no IDs are given
            TerminationError: If the provider call failed
        """
        ids = split_csv(instance_ids)
        if not ids:
            raise UsageError("no instance IDs given")
        return await self._terminate(ids)

    async def delete_instances_by_tag(
        self, tag_key: str, tag_values: str
    ) -> List[InstanceStateChange]:
        """
        Terminate every instance whose tag ``tag_key`` has one of the given values.

        Args:
            tag_key: Tag key to match
            tag_values: Comma-separated accepted values

        Returns:
            The state changes reported by the provider

        Raises:
            UsageError: If no values are given
            InstanceLookupError: If the describe call failed
            TerminationError: If the terminate call failed
        """
        values = list(dict.fromkeys(split_csv(tag_values)))
        if not values:
            raise UsageError("no tag values given")
        tag_filter = TagFilter(key=tag_key, values=values)

        try:
            groups = await self._instance_manager.describe_instances(tag_filter)
        except asyncio.CancelledError:
            self._logger.error("Cancelled while describing instances")
            raise
        except Exception as e:
            self._logger.error(f"Failed to describe instances: {e}")
            raise InstanceLookupError(e) from e

        ids = [instance.instance_id for group in groups for instance in group]
        self._logger.info(f"Instances matching {tag_filter.filter_name}={values}: {ids}")

        # An empty list is still sent; the provider decides what that means
        return await self._terminate(ids)

    async def _terminate(self, ids: List[str]) -> List[InstanceStateChange]:
        try:
            changes = await self._instance_manager.terminate_instances(ids, dry_run=False)
        except asyncio.CancelledError:
            self._logger.error(f"Cancelled while terminating instances {ids}")
            raise
        except Exception as e:
            self._logger.error(f"Failed to terminate instances {ids}: {e}")
            raise TerminationError(e) from e
        self._logger.info(f"Terminated {len(changes)} instance(s)")
        return changes
