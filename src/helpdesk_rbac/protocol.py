"""
Protocols for the external collaborators the RBAC engine consumes.

Implementations (e.g. the Microsoft Graph adapters in microsoft.py) fetch the
raw data; the services in this package decide what it means.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class GroupRoleSource(Protocol):
    """Source of raw group-role rows (e.g. a SharePoint list)."""

    async def fetch_group_role_rows(self) -> List[Dict[str, Any]]:
        """Return the raw rows; raise ConfigUnavailableError on failure."""
        ...


@runtime_checkable
class DirectoryClient(Protocol):
    """Directory queries against the identity graph."""

    async def get_my_group_ids(self) -> List[str]:
        """Return every group id the signed-in user belongs to; raise DirectoryLookupError on failure."""
        ...

    async def get_group_member_emails(self, group_id: str) -> List[str]:
        """Return member email addresses of one group; raise DirectoryLookupError on failure."""
        ...

    async def get_my_job_title(self) -> Optional[str]:
        """Return the signed-in user's job title, if any."""
        ...


@runtime_checkable
class KeywordSource(Protocol):
    """Source of raw visibility-keyword rows."""

    async def fetch_keyword_rows(self) -> List[Dict[str, Any]]:
        ...


@runtime_checkable
class OAuthProvider(Protocol):
    """Protocol for an OAuth/OIDC provider (e.g. Microsoft)."""

    name: str

    async def login_redirect(self, request, redirect_uri: str):
        """Redirect the user to the identity provider login page."""
        ...

    async def handle_callback(self, request) -> tuple[dict, str]:
        """Handle the OAuth callback: exchange code for token, return (user_info, access_token)."""
        ...
