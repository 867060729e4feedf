"""
Errors reported by the provisioning commands.
"""

from typing import Optional


class ProvisionError(Exception):
    """Base class for all provisioning errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        # Some exceptions, e.g. TimeoutError(), have no message of their own
        detail = str(self.cause) or type(self.cause).__name__
        return f"{self.message}: {detail}"


class UsageError(ProvisionError):
    """A required flag is missing or a command name is not recognized."""


class ConfigurationError(ProvisionError):
    """The configuration file or the provider credentials could not be loaded."""


class RemoteOperationError(ProvisionError):
    """A call to the provider failed."""


class InstanceCreationError(RemoteOperationError):
    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__("instance creation failed", cause)


class TaggingError(RemoteOperationError):
    """Tagging failed after the instance was launched.

    The instance identified by ``instance_id`` exists and is untagged unless
    ``compensated`` is True, in which case it was terminated again.
    """

    def __init__(
        self, instance_id: str, cause: Optional[BaseException] = None, compensated: bool = False
    ) -> None:
        super().__init__("tagging failed", cause)
        self.instance_id = instance_id
        self.compensated = compensated


class InstanceLookupError(RemoteOperationError):
    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__("lookup failed", cause)


class TerminationError(RemoteOperationError):
    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__("termination failed", cause)
