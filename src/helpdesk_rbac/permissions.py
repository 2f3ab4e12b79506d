"""
Permission construction.

build_permissions turns a resolved group list plus the RBACConfig into one
immutable UserPermissions snapshot. PermissionService chains the loader, the
membership resolver and the builder for a signed-in user and memoizes the
result by email for the duration of one sign-in.

Decision order (first match wins):
1. email in the ADMIN_EMAILS allow-list -> admin, no groups (works with the
   directory and config services down).
2. any admin group -> admin.
3. any department/subtype group -> support.
4. otherwise -> regular user, keeping only visibility groups for sharing.
Purchaser and inventory flags are computed from membership in every branch.
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from .authz_config import ConfigLoader, get_visibility_group_ids, is_hardcoded_admin
from .exceptions import DirectoryLookupError
from .keywords import KeywordLoader, user_matches_visibility_keywords
from .membership import MembershipResolver
from .models import RBACConfig, SubtypeRestriction, UserPermissions, UserRole
from .protocol import DirectoryClient

logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS = UserPermissions(email="", display_name="", role=UserRole.USER)


def create_admin_permissions(
    email: str,
    display_name: str,
    group_ids: Iterable[str],
    is_purchaser: bool = False,
    is_inventory: bool = False,
) -> UserPermissions:
    return UserPermissions(
        email=email,
        display_name=display_name,
        role=UserRole.ADMIN,
        group_ids=tuple(group_ids),
        can_see_all_tickets=True,
        can_delete=True,
        can_edit_all_fields=True,
        can_edit_other_department=True,
        is_purchaser=is_purchaser,
        is_inventory=is_inventory,
    )


def create_support_permissions(
    email: str,
    display_name: str,
    group_ids: Iterable[str],
    editable_departments: Iterable[str],
    subtype_restrictions: Iterable[SubtypeRestriction],
    is_purchaser: bool = False,
    is_inventory: bool = False,
) -> UserPermissions:
    return UserPermissions(
        email=email,
        display_name=display_name,
        role=UserRole.SUPPORT,
        group_ids=tuple(group_ids),
        editable_departments=tuple(editable_departments),
        subtype_restrictions=tuple(subtype_restrictions),
        can_see_all_tickets=True,
        # Support staff may always edit tickets filed under "Other"
        can_edit_other_department=True,
        is_purchaser=is_purchaser,
        is_inventory=is_inventory,
    )


def create_user_permissions(
    email: str,
    display_name: str,
    visibility_group_ids: Iterable[str],
    is_purchaser: bool = False,
    is_inventory: bool = False,
) -> UserPermissions:
    return UserPermissions(
        email=email,
        display_name=display_name,
        role=UserRole.USER,
        group_ids=tuple(visibility_group_ids),
        is_purchaser=is_purchaser,
        is_inventory=is_inventory,
    )


def departments_for_groups(group_ids: Iterable[str], config: RBACConfig) -> List[str]:
    departments: List[str] = []
    for gid in group_ids:
        dept = config.group_id_to_department.get(gid)
        if dept and dept not in departments:
            departments.append(dept)
    return departments


def subtype_restrictions_for_groups(
    group_ids: Iterable[str], config: RBACConfig
) -> List[SubtypeRestriction]:
    restrictions: List[SubtypeRestriction] = []
    for gid in group_ids:
        restriction = config.group_id_to_subtype.get(gid)
        if restriction is not None and restriction not in restrictions:
            restrictions.append(restriction)
    return restrictions


def build_permissions(
    email: str,
    display_name: str,
    resolved_group_ids: Iterable[str],
    config: RBACConfig,
) -> UserPermissions:
    """Build the permission snapshot; see the module docstring for the decision order."""
    group_ids = list(dict.fromkeys(resolved_group_ids))
    group_set = set(group_ids)
    is_purchaser = bool(group_set & config.purchaser_group_ids)
    is_inventory = bool(group_set & config.inventory_group_ids)

    if is_hardcoded_admin(email):
        return create_admin_permissions(email, display_name, [], is_purchaser, is_inventory)

    if group_set & config.admin_group_ids:
        return create_admin_permissions(email, display_name, group_ids, is_purchaser, is_inventory)

    if group_set & config.department_group_ids:
        return create_support_permissions(
            email,
            display_name,
            group_ids,
            departments_for_groups(group_ids, config),
            subtype_restrictions_for_groups(group_ids, config),
            is_purchaser,
            is_inventory,
        )

    # Department/admin groups are left out so elevated users' tickets never
    # leak to teammates through shared directory groups.
    return create_user_permissions(
        email,
        display_name,
        get_visibility_group_ids(group_ids, config),
        is_purchaser,
        is_inventory,
    )


class PermissionService:
    """
    Resolves UserPermissions for signed-in users.

    A snapshot is memoized by email until the next sign-in for that email
    (RBACEngine.sign_in invalidates first), so repeat calls within one
    sign-in reuse it. Snapshots built from the fallback config, after a
    failed directory lookup, or in degraded mode are returned but never
    memoized.
    """

    def __init__(
        self,
        config_loader: ConfigLoader,
        membership_resolver: Optional[MembershipResolver] = None,
        keyword_loader: Optional[KeywordLoader] = None,
    ):
        self.config_loader = config_loader
        self.membership_resolver = membership_resolver or MembershipResolver(config_loader)
        self.keyword_loader = keyword_loader
        self._by_email: Dict[str, UserPermissions] = {}

    async def get_user_permissions(
        self, email: str, display_name: str, directory: DirectoryClient
    ) -> UserPermissions:
        key = (email or "").strip().lower()
        cached = self._by_email.get(key)
        if cached is not None:
            return cached

        try:
            permissions, complete = await self._build(email, display_name or email, directory)
        except Exception:
            # Degraded mode: own tickets only
            logger.exception("Failed to build permissions for %s, using limited permissions", key)
            return create_user_permissions(email, display_name or email, [])

        if complete:
            self._by_email[key] = permissions
        else:
            logger.warning("Permissions for %s built from incomplete data, not memoized", key)
        logger.info("Resolved permissions for %s: role=%s", key, permissions.role.value)
        return permissions

    async def _build(
        self, email: str, display_name: str, directory: DirectoryClient
    ) -> Tuple[UserPermissions, bool]:
        """Build a snapshot; the flag is False when any input was a fallback."""
        # Short-circuit before any network call
        if is_hardcoded_admin(email):
            return create_admin_permissions(email, display_name, []), True

        config = await self.config_loader.fetch_config()
        complete = not config.is_fallback
        try:
            group_ids = await self.membership_resolver.fetch_for_user(email, directory)
        except DirectoryLookupError:
            # Fail closed: no groups, so no elevated role
            logger.error("Failed to fetch group memberships for %s", email, exc_info=True)
            group_ids = []
            complete = False
        permissions = build_permissions(email, display_name, group_ids, config)

        if permissions.role is not UserRole.ADMIN and self.keyword_loader is not None:
            permissions, matched = await self._with_keyword_match(permissions, directory)
            complete = complete and matched
        return permissions, complete

    async def _with_keyword_match(
        self, permissions: UserPermissions, directory: DirectoryClient
    ) -> Tuple[UserPermissions, bool]:
        try:
            job_title = await directory.get_my_job_title()
            keywords = await self.keyword_loader.get_active_keywords()
        except DirectoryLookupError:
            logger.warning("Failed to check visibility keywords for %s", permissions.email, exc_info=True)
            return permissions, False
        return replace(
            permissions,
            job_title=job_title,
            visibility_keyword_match=user_matches_visibility_keywords(job_title, keywords),
        ), True

    def invalidate(self, email: Optional[str] = None) -> None:
        """Forget memoized permissions (for one email, or all)."""
        if email is None:
            self._by_email.clear()
            self.membership_resolver.invalidate()
            return
        self._by_email.pop(email.strip().lower(), None)
        self.membership_resolver.invalidate(email)
