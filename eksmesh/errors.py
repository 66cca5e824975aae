from __future__ import annotations

from typing import Optional


class EksMeshError(Exception):
    """Base class for all eksmesh errors."""


class InvalidArgument(EksMeshError, ValueError):
    """
    Raised when the mesh is requested with arguments that can never produce a
    valid mesh, e.g. an empty name prefix or a negative group count.
    """


class ProvisioningError(EksMeshError):
    """
    Raised when declaring a security group or a rule fails.

    The whole mesh build is aborted. Resources declared before the failure are
    left to the provisioning engine, which reconciles them on the next run
    because every resource name is a function of the prefix and the indexes.

    Attributes:
        cause (Exception): The original error raised by the provider.
        resource (Optional[str]): The name of the resource that failed.
    """

    def __init__(self, cause: Exception, resource: Optional[str] = None) -> None:
        self.cause = cause
        self.resource = resource
        if resource:
            message = f"Failed to provision {resource}: {cause}"
        else:
            message = f"Failed to provision security mesh: {cause}"
        super().__init__(message)
