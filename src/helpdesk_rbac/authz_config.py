"""
Authz configuration: group-role rows -> RBACConfig.

Group classification is configured in a SharePoint list (one row per Entra
group: Title, GroupId, GroupType, Department, ProblemTypeSub, IsActive).
ConfigLoader fetches it through a GroupRoleSource, derives the lookup sets,
and caches the result for RBAC_CONFIG_TTL_SECONDS (5 minutes by default).

Decisions:
- When the list is not configured or the fetch fails, the built-in
  FALLBACK_GROUP_ROLES are used. They go through the same build_rbac_config,
  so callers never special-case degraded mode. Fallback results are not cached
  so the next call retries the remote list.
- Inactive rows are dropped before anything is derived; they do not even land
  in allowed_group_ids.
- A "department" row that carries ProblemTypeSub is a subtype grant.
- ADMIN_EMAILS is read from the environment once at import and is the only
  source of the hardcoded-admin allow-list. The app loads .env before
  importing this package.
- Rows that are not objects or carry non-text values are skipped with a
  warning, like rows with no GroupId.
"""

import logging
import os
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

import httpx

from .cache import TTLCache
from .exceptions import ConfigUnavailableError
from .models import GroupKind, GroupRole, RBACConfig, SubtypeRestriction
from .protocol import GroupRoleSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TTL_SECONDS = 5 * 60


def parse_admin_emails(raw: Optional[str]) -> FrozenSet[str]:
    """Parse a comma-separated allow-list into lower-cased addresses."""
    if not raw:
        return frozenset()
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


# Static super-user override; independent of groups and of the network.
ADMIN_EMAILS: FrozenSet[str] = parse_admin_emails(os.getenv("ADMIN_EMAILS", ""))


def is_hardcoded_admin(email: Optional[str]) -> bool:
    if not email or not isinstance(email, str):
        return False
    return email.strip().lower() in ADMIN_EMAILS


# ---------------------------------------------------------------------------
# Built-in fallback mapping
# ---------------------------------------------------------------------------

ADMIN_GROUP_ID = "db86fdc8-dbf7-4ec9-af9f-461bb63735ed"  # GeneralManagers

DEPARTMENT_GROUP_MAP: Dict[str, str] = {
    "Tech": "7e1b9f86-5fc0-4f83-a6d2-e52167d0e4cf",
    "Operations": "12c1b657-305b-4fb3-8534-bcf1fe5cd326",
    "Marketing": "7114b9f5-734e-4c0d-a46d-0c96679d51c0",
    "Grounds Keeping": "b9dbaa5a-5bda-4ca0-bcb6-bd2f3783739f",
    "Janitorial": "0334654b-6c6a-4a29-9f00-7dcd09c34b3d",
    "HR": "bcd1cb4f-d182-4f0e-8ace-fdee41e005f8",
    "Customer Service": "aa6020eb-e4b4-46ce-a720-945cf2bf5d8d",
}

# name -> (department, subtype, group id)
SUBTYPE_GROUP_MAP: Dict[str, tuple] = {
    "POSadmins": ("Tech", "POS", "b581fbb5-5a56-459e-8342-4386d43b048d"),
}

FALLBACK_GROUP_ROLES: tuple = (
    GroupRole(
        group_id=ADMIN_GROUP_ID,
        kind=GroupKind.ADMIN,
        title="GeneralManagers",
        row_id="fallback-admin",
    ),
    *(
        GroupRole(
            group_id=group_id,
            kind=GroupKind.DEPARTMENT,
            title=dept,
            department=dept,
            row_id=f"fallback-dept-{dept}",
        )
        for dept, group_id in DEPARTMENT_GROUP_MAP.items()
    ),
    *(
        GroupRole(
            group_id=group_id,
            kind=GroupKind.SUBTYPE,
            title=name,
            department=dept,
            subtype=subtype,
            row_id=f"fallback-subtype-{name}",
        )
        for name, (dept, subtype, group_id) in SUBTYPE_GROUP_MAP.items()
    ),
)


# ---------------------------------------------------------------------------
# Row parsing and derivation
# ---------------------------------------------------------------------------

_GROUP_TYPES = {kind.value: kind for kind in GroupKind}
_TEXT_FIELDS = ("Title", "GroupId", "GroupType", "Department", "ProblemTypeSub")


def parse_group_role_row(row: Dict[str, Any]) -> Optional[GroupRole]:
    """
    Parse one list item ({"id": ..., "fields": {...}}) or a bare fields dict.

    Returns None for malformed rows, rows with no GroupId and rows with an
    unknown GroupType.
    """
    fields = row.get("fields", row) if isinstance(row, dict) else None
    row_id = row.get("id") if isinstance(row, dict) else None
    if not isinstance(fields, dict):
        logger.warning("Skipping RBAC group row %s: not an object", row_id)
        return None
    for name in _TEXT_FIELDS:
        value = fields.get(name)
        if value is not None and not isinstance(value, str):
            logger.warning("Skipping RBAC group row %s: %s is not text", row_id, name)
            return None

    group_id = (fields.get("GroupId") or "").strip()
    raw_type = (fields.get("GroupType") or "").strip().lower()
    if not group_id:
        logger.warning("Skipping RBAC group row %s: missing GroupId", row_id)
        return None
    kind = _GROUP_TYPES.get(raw_type)
    if kind is None:
        logger.warning("Skipping RBAC group row %s: unknown GroupType %r", row_id, raw_type)
        return None

    department = fields.get("Department") or None
    subtype = fields.get("ProblemTypeSub") or None
    if kind is GroupKind.DEPARTMENT and subtype:
        kind = GroupKind.SUBTYPE

    return GroupRole(
        group_id=group_id,
        kind=kind,
        title=fields.get("Title") or "",
        department=department,
        subtype=subtype,
        # Only an explicit False deactivates a row
        is_active=fields.get("IsActive") is not False,
        row_id=None if row_id is None else str(row_id),
    )


def parse_group_role_rows(rows: Iterable[Dict[str, Any]]) -> List[GroupRole]:
    roles = []
    for row in rows:
        role = parse_group_role_row(row)
        if role is not None:
            roles.append(role)
    return roles


def build_rbac_config(roles: Iterable[GroupRole], is_fallback: bool = False) -> RBACConfig:
    """Derive every lookup structure from the active roles."""
    allowed = set()
    admin_ids, department_ids, purchaser_ids, inventory_ids = set(), set(), set(), set()
    to_department: Dict[str, str] = {}
    to_subtype: Dict[str, SubtypeRestriction] = {}
    groups: Dict[GroupKind, list] = {kind: [] for kind in GroupKind}

    for role in roles:
        if not role.is_active:
            continue
        allowed.add(role.group_id)
        groups[role.kind].append(role)

        if role.kind is GroupKind.ADMIN:
            admin_ids.add(role.group_id)
        elif role.kind is GroupKind.DEPARTMENT:
            department_ids.add(role.group_id)
            if role.department:
                to_department[role.group_id] = role.department
        elif role.kind is GroupKind.SUBTYPE:
            department_ids.add(role.group_id)
            if role.department:
                to_department[role.group_id] = role.department
                if role.subtype:
                    to_subtype[role.group_id] = SubtypeRestriction(role.department, role.subtype)
        elif role.kind is GroupKind.PURCHASER:
            purchaser_ids.add(role.group_id)
        elif role.kind is GroupKind.INVENTORY:
            inventory_ids.add(role.group_id)
        elif role.kind is GroupKind.VISIBILITY:
            pass
        else:
            raise ValueError(f"Unhandled group kind: {role.kind!r}")

    return RBACConfig(
        allowed_group_ids=frozenset(allowed),
        admin_group_ids=frozenset(admin_ids),
        department_group_ids=frozenset(department_ids),
        purchaser_group_ids=frozenset(purchaser_ids),
        inventory_group_ids=frozenset(inventory_ids),
        elevated_group_ids=frozenset(admin_ids | department_ids | purchaser_ids | inventory_ids),
        group_id_to_department=MappingProxyType(to_department),
        group_id_to_subtype=MappingProxyType(to_subtype),
        visibility_groups=tuple(groups[GroupKind.VISIBILITY]),
        department_groups=tuple(groups[GroupKind.DEPARTMENT] + groups[GroupKind.SUBTYPE]),
        admin_groups=tuple(groups[GroupKind.ADMIN]),
        purchaser_groups=tuple(groups[GroupKind.PURCHASER]),
        inventory_groups=tuple(groups[GroupKind.INVENTORY]),
        is_fallback=is_fallback,
    )


def fallback_config() -> RBACConfig:
    return build_rbac_config(FALLBACK_GROUP_ROLES, is_fallback=True)


# ---------------------------------------------------------------------------
# Helpers over a config
# ---------------------------------------------------------------------------


def filter_allowed_groups(group_ids: Iterable[str], config: RBACConfig) -> List[str]:
    """Keep only groups that have RBAC meaning, preserving order and dropping duplicates."""
    seen = set()
    result = []
    for gid in group_ids:
        if gid in config.allowed_group_ids and gid not in seen:
            seen.add(gid)
            result.append(gid)
    return result


def get_visibility_group_ids(group_ids: Iterable[str], config: RBACConfig) -> List[str]:
    visibility = config.visibility_group_ids
    return [gid for gid in group_ids if gid in visibility]


def has_elevated_permissions(group_ids: Iterable[str], config: RBACConfig) -> bool:
    return any(gid in config.elevated_group_ids for gid in group_ids)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class ConfigLoader:
    """Fetches and caches the RBACConfig; falls back to the built-in mapping."""

    def __init__(
        self,
        source: Optional[GroupRoleSource],
        ttl_seconds: float = DEFAULT_CONFIG_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """source=None means the remote list is not configured."""
        self.source = source
        self._cache: TTLCache[RBACConfig] = TTLCache(ttl_seconds, clock)

    async def fetch_config(self) -> RBACConfig:
        cached = self._cache.get()
        if cached is not None:
            logger.debug("RBAC config served from cache")
            return cached

        if self.source is None:
            logger.warning("RBAC groups list not configured, using fallback config")
            return fallback_config()

        try:
            rows = await self.source.fetch_group_role_rows()
        except (ConfigUnavailableError, httpx.HTTPError) as e:
            logger.warning("Failed to fetch RBAC config, using fallback config: %s", e)
            return fallback_config()

        config = build_rbac_config(parse_group_role_rows(rows))
        self._cache.set(config)
        logger.info(
            "Loaded RBAC config: %d groups (%d admin, %d department, %d visibility)",
            len(config.allowed_group_ids),
            len(config.admin_group_ids),
            len(config.department_group_ids),
            len(config.visibility_groups),
        )
        return config

    def invalidate(self) -> None:
        """Drop the cached config so the next fetch goes to the source."""
        self._cache.invalidate()
