"""Error types raised by the Graph adapters and caught by the RBAC services."""

from typing import Optional


class RBACError(Exception):
    """Base exception for the RBAC engine."""


class ConfigUnavailableError(RBACError):
    """The remote group-role list is not configured or could not be fetched."""


class DirectoryLookupError(RBACError):
    """A directory query (memberships or group members) failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
