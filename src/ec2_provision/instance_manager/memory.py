"""
In-memory implementation of the InstanceManager interface.

Used in place of a real provider when the outcome must be deterministic. Every call
is recorded in ``calls`` and any operation can be made to fail by putting an
exception into ``failures`` under the operation's name.
"""

import itertools
import logging
from typing import Any, Dict, List, Optional, Tuple

from ec2_provision.common.models import (
    DescribedInstance,
    InstanceStateChange,
    LaunchSpec,
    Tag,
    TagFilter,
)

from .instance_manager import InstanceManager


class InMemoryInstanceManager(InstanceManager):
    """InstanceManager that keeps its instances in a dictionary."""

    def __init__(self, failures: Optional[Dict[str, BaseException]] = None) -> None:
        self._logger = logging.getLogger(__name__)
        self.failures: Dict[str, BaseException] = dict(failures or {})
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        # instance_id -> {"state": ..., "tags": {...}, "reservation": ...}
        self.instances: Dict[str, Dict[str, Any]] = {}
        self._id_counter = itertools.count(1)
        self._reservation_counter = itertools.count(1)

    def add_instance(
        self,
        instance_id: str,
        tags: Optional[Dict[str, str]] = None,
        state: str = "running",
        reservation: Optional[str] = None,
    ) -> None:
        """Seed an existing instance."""
        if reservation is None:
            reservation = f"r-{next(self._reservation_counter):017x}"
        self.instances[instance_id] = {
            "state": state,
            "tags": dict(tags or {}),
            "reservation": reservation,
        }

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        """Return the arguments of every recorded call to one operation."""
        return [kwargs for name, kwargs in self.calls if name == operation]

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))
        failure = self.failures.get(operation)
        if failure is not None:
            self._logger.debug(f"Injected failure for {operation}: {failure}")
            raise failure

    async def run_instances(self, spec: LaunchSpec) -> List[str]:
        self._record("run_instances", spec=spec)
        reservation = f"r-{next(self._reservation_counter):017x}"
        instance_ids = []
        for _ in range(spec.count):
            instance_id = f"i-{next(self._id_counter):017x}"
            self.add_instance(instance_id, state="pending", reservation=reservation)
            instance_ids.append(instance_id)
        return instance_ids

    async def create_tags(self, resource_ids: List[str], tags: List[Tag]) -> None:
        self._record("create_tags", resource_ids=list(resource_ids), tags=list(tags))
        for resource_id in resource_ids:
            if resource_id not in self.instances:
                raise KeyError(f"Unknown instance {resource_id}")
        for resource_id in resource_ids:
            for tag in tags:
                self.instances[resource_id]["tags"][tag.key] = tag.value

    async def describe_instances(self, tag_filter: TagFilter) -> List[List[DescribedInstance]]:
        self._record("describe_instances", tag_filter=tag_filter)
        groups: Dict[str, List[DescribedInstance]] = {}
        for instance_id, info in self.instances.items():
            if info["tags"].get(tag_filter.key) in tag_filter.values:
                groups.setdefault(info["reservation"], []).append(
                    DescribedInstance(
                        instance_id=instance_id, tags=dict(info["tags"]), state=info["state"]
                    )
                )
        return list(groups.values())

    async def terminate_instances(
        self, instance_ids: List[str], *, dry_run: bool = False
    ) -> List[InstanceStateChange]:
        self._record("terminate_instances", instance_ids=list(instance_ids), dry_run=dry_run)
        changes = []
        for instance_id in instance_ids:
            if instance_id not in self.instances:
                raise KeyError(f"Unknown instance {instance_id}")
            previous = self.instances[instance_id]["state"]
            current = previous if dry_run else "shutting-down"
            self.instances[instance_id]["state"] = current
            changes.append(
                InstanceStateChange(
                    instance_id=instance_id, previous_state=previous, current_state=current
                )
            )
        return changes
