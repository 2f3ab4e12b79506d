"""
Wiring of the RBAC services for one application.

sign_in runs the full chain for a user: config, memberships, permissions,
then (regular users only) the visibility-group roster used for team sharing.
Each step awaits the previous one, and every sign-in starts from a fresh
membership lookup so revoked groups take effect at the next sign-in.

Rosters stay on the server, keyed by email and the group set they were
resolved for; the session only carries the permission snapshot. When no
stored roster matches (another worker, a restart) it is resolved again
through the app-only directory client, if one is configured.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .authz_config import ConfigLoader
from .group_members import GroupMemberDirectory
from .keywords import KeywordLoader
from .microsoft import GraphClient, GraphDirectoryClient, SharePointListSource
from .models import UserPermissions, UserRole
from .permissions import PermissionService
from .protocol import DirectoryClient
from .settings import Settings

logger = logging.getLogger(__name__)


def _email_key(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class RBACEngine:
    config_loader: ConfigLoader
    permission_service: PermissionService
    group_directory: GroupMemberDirectory
    keyword_loader: Optional[KeywordLoader] = None
    app_directory: Optional[DirectoryClient] = None
    # email -> (group ids the roster was resolved for, member emails)
    _rosters: Dict[str, Tuple[tuple, tuple]] = field(default_factory=dict, init=False, repr=False)

    async def sign_in(
        self, email: str, display_name: str, directory: DirectoryClient
    ) -> Tuple[UserPermissions, List[str]]:
        self.permission_service.invalidate(email)
        self._rosters.pop(_email_key(email), None)
        permissions = await self.permission_service.get_user_permissions(email, display_name, directory)

        member_emails: List[str] = []
        if permissions.role is UserRole.USER and permissions.group_ids:
            member_emails, complete = await self.group_directory.lookup(permissions.group_ids, directory)
            if complete:
                self._rosters[_email_key(email)] = (tuple(permissions.group_ids), tuple(member_emails))
        return permissions, member_emails

    async def group_member_emails(self, permissions: UserPermissions) -> List[str]:
        """Team roster for a session's permission snapshot (empty for elevated users)."""
        if permissions.role is not UserRole.USER or not permissions.group_ids:
            return []

        stored = self._rosters.get(_email_key(permissions.email))
        if stored is not None and stored[0] == tuple(permissions.group_ids):
            return list(stored[1])

        if self.app_directory is None:
            logger.warning("No roster for %s and no app directory client, team sharing off", permissions.email)
            return []
        return await self.group_directory.resolve_group_member_emails(permissions.group_ids, self.app_directory)

    def forget(self, email: str) -> None:
        """Drop the stored roster for a user who signed out."""
        self._rosters.pop(_email_key(email), None)

    def invalidate(self, email: Optional[str] = None) -> None:
        """Force fresh config and membership lookups (for one user, or everyone)."""
        self.config_loader.invalidate()
        self.permission_service.invalidate(email)
        self.group_directory.invalidate()
        if self.keyword_loader is not None:
            self.keyword_loader.invalidate()
        if email is None:
            self._rosters.clear()
        else:
            self.forget(email)


def build_engine(settings: Settings, app_graph: Optional[GraphClient] = None) -> RBACEngine:
    """
    Build the services from settings.

    app_graph is the app-only Graph client used to read the SharePoint lists
    and to re-resolve team rosters; without it (or without list ids) the
    built-in fallback config is used.
    """
    rbac_source = None
    keyword_source = None
    if app_graph is not None and settings.rbac_list_configured:
        rbac_source = SharePointListSource(app_graph, settings.sharepoint_site_id, settings.rbac_groups_list_id)
    if app_graph is not None and settings.keywords_list_configured:
        keyword_source = SharePointListSource(
            app_graph, settings.sharepoint_site_id, settings.visibility_keywords_list_id
        )

    config_loader = ConfigLoader(rbac_source, ttl_seconds=settings.config_ttl_seconds)
    keyword_loader = KeywordLoader(keyword_source)
    return RBACEngine(
        config_loader=config_loader,
        permission_service=PermissionService(config_loader, keyword_loader=keyword_loader),
        group_directory=GroupMemberDirectory(config_loader),
        keyword_loader=keyword_loader,
        app_directory=GraphDirectoryClient(app_graph) if app_graph is not None else None,
    )
