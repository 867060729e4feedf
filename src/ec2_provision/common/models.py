"""
Value types passed between the orchestrator and the instance managers.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, constr


class LaunchSpec(BaseModel):
    """What kind of instance to create, and how many."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    image_id: constr(min_length=1)
    instance_type: constr(min_length=1)
    count: PositiveInt = 1


class Tag(BaseModel):
    """A key/value label attached to one or more instances."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: constr(min_length=1)
    value: constr(min_length=1)

    def to_aws(self) -> Dict[str, str]:
        return {"Key": self.key, "Value": self.value}


class TagFilter(BaseModel):
    """Selects instances whose tag `key` has any of `values`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: constr(min_length=1)
    values: List[str] = Field(min_length=1)

    @property
    def filter_name(self) -> str:
        return f"tag:{self.key}"

    def to_aws(self) -> Dict[str, object]:
        return {"Name": self.filter_name, "Values": list(self.values)}


class DescribedInstance(BaseModel):
    """One instance as returned by a describe call."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    tags: Dict[str, str] = Field(default_factory=dict)
    state: Optional[str] = None


class InstanceStateChange(BaseModel):
    """One entry of a terminate response."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    previous_state: Optional[str] = None
    current_state: Optional[str] = None
