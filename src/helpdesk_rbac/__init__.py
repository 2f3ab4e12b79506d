"""
Help-desk RBAC and ticket-visibility engine.

Exposes the config loader, membership resolver, permission builder, ticket
predicates, group-member directory, and the FastAPI app factory.
"""

from .authz_config import ConfigLoader, build_rbac_config, fallback_config, is_hardcoded_admin
from .group_members import GroupMemberDirectory
from .membership import MembershipResolver
from .models import (
    ApprovalStatus,
    GroupKind,
    GroupRole,
    PurchaseStatus,
    RBACConfig,
    SubtypeRestriction,
    Ticket,
    TicketCategory,
    TicketUser,
    UserPermissions,
    UserRole,
)
from .permissions import DEFAULT_PERMISSIONS, PermissionService, build_permissions
from .predicates import (
    can_approve,
    can_comment,
    can_delete,
    can_edit,
    can_mark_received,
    can_merge,
    can_purchase,
    can_request_approval,
    can_view,
    has_only_subtype_access,
    is_creator_elevated,
    is_own,
    is_visible_with_approval_gate,
)

__all__ = [
    "ConfigLoader",
    "build_rbac_config",
    "fallback_config",
    "is_hardcoded_admin",
    "MembershipResolver",
    "GroupMemberDirectory",
    "PermissionService",
    "build_permissions",
    "DEFAULT_PERMISSIONS",
    "ApprovalStatus",
    "GroupKind",
    "GroupRole",
    "PurchaseStatus",
    "RBACConfig",
    "SubtypeRestriction",
    "Ticket",
    "TicketCategory",
    "TicketUser",
    "UserPermissions",
    "UserRole",
    "can_approve",
    "can_comment",
    "can_delete",
    "can_edit",
    "can_mark_received",
    "can_merge",
    "can_purchase",
    "can_request_approval",
    "can_view",
    "has_only_subtype_access",
    "is_creator_elevated",
    "is_own",
    "is_visible_with_approval_gate",
]
