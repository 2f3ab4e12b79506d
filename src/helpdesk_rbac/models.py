"""
Value objects for the RBAC engine.

GroupRole rows describe how an Entra group is classified. RBACConfig is the
read-only lookup structure derived from them, and UserPermissions is the
per-session snapshot handed to the predicates. Ticket is the consumed,
read-only view of a SharePoint list item.

Decisions:
- Everything here is a frozen dataclass with frozenset / tuple / mapping-proxy
  members so two snapshots built from the same inputs compare equal and
  nothing can be edited in place.
- Optional ticket fields are None when absent; predicates treat None as "no match".
"""

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple


class GroupKind(str, enum.Enum):
    """Classification of a configured Entra group."""

    ADMIN = "admin"
    DEPARTMENT = "department"
    SUBTYPE = "subtype"
    VISIBILITY = "visibility"
    PURCHASER = "purchaser"
    INVENTORY = "inventory"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    SUPPORT = "support"
    USER = "user"


class ApprovalStatus(str, enum.Enum):
    NONE = "None"
    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"
    CHANGES_REQUESTED = "Changes Requested"


class PurchaseStatus(str, enum.Enum):
    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"
    APPROVED_WITH_CHANGES = "Approved with Changes"
    ORDERED = "Ordered"
    PURCHASED = "Purchased"
    RECEIVED = "Received"
    DENIED = "Denied"


class TicketCategory(str, enum.Enum):
    REQUEST = "Request"
    PROBLEM = "Problem"


def _frozen_map(data: Optional[Mapping] = None) -> Mapping:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class GroupRole:
    """One configured group mapping (a row of the RBAC groups list)."""

    group_id: str
    kind: GroupKind
    title: str = ""
    department: Optional[str] = None
    subtype: Optional[str] = None
    is_active: bool = True
    row_id: Optional[str] = None


@dataclass(frozen=True)
class SubtypeRestriction:
    department: str
    subtype: str


@dataclass(frozen=True)
class RBACConfig:
    """
    Lookup structures derived from the active GroupRole rows.

    Inactive rows never reach any of these fields; allowed_group_ids is the
    filter the membership resolver uses to drop unrelated directory groups.
    is_fallback marks the built-in mapping served when the list is unavailable.
    """

    allowed_group_ids: FrozenSet[str] = frozenset()
    admin_group_ids: FrozenSet[str] = frozenset()
    department_group_ids: FrozenSet[str] = frozenset()
    purchaser_group_ids: FrozenSet[str] = frozenset()
    inventory_group_ids: FrozenSet[str] = frozenset()
    elevated_group_ids: FrozenSet[str] = frozenset()
    group_id_to_department: Mapping[str, str] = field(default_factory=_frozen_map)
    group_id_to_subtype: Mapping[str, SubtypeRestriction] = field(default_factory=_frozen_map)
    visibility_groups: Tuple[GroupRole, ...] = ()
    department_groups: Tuple[GroupRole, ...] = ()
    admin_groups: Tuple[GroupRole, ...] = ()
    purchaser_groups: Tuple[GroupRole, ...] = ()
    inventory_groups: Tuple[GroupRole, ...] = ()
    is_fallback: bool = False

    @property
    def visibility_group_ids(self) -> FrozenSet[str]:
        return frozenset(g.group_id for g in self.visibility_groups)


@dataclass(frozen=True)
class UserPermissions:
    """Immutable permission snapshot for one signed-in user."""

    email: str
    display_name: str
    role: UserRole
    group_ids: Tuple[str, ...] = ()
    editable_departments: Tuple[str, ...] = ()
    subtype_restrictions: Tuple[SubtypeRestriction, ...] = ()
    can_see_all_tickets: bool = False
    can_delete: bool = False
    can_edit_all_fields: bool = False
    can_edit_other_department: bool = False
    is_purchaser: bool = False
    is_inventory: bool = False
    job_title: Optional[str] = None
    visibility_keyword_match: bool = False

    def to_dict(self) -> dict:
        """Plain-JSON form, used for the session cookie and API responses."""
        return {
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role.value,
            "group_ids": list(self.group_ids),
            "editable_departments": list(self.editable_departments),
            "subtype_restrictions": [
                {"department": r.department, "subtype": r.subtype}
                for r in self.subtype_restrictions
            ],
            "can_see_all_tickets": self.can_see_all_tickets,
            "can_delete": self.can_delete,
            "can_edit_all_fields": self.can_edit_all_fields,
            "can_edit_other_department": self.can_edit_other_department,
            "is_purchaser": self.is_purchaser,
            "is_inventory": self.is_inventory,
            "job_title": self.job_title,
            "visibility_keyword_match": self.visibility_keyword_match,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserPermissions":
        return cls(
            email=data.get("email") or "",
            display_name=data.get("display_name") or "",
            role=UserRole(data.get("role", UserRole.USER.value)),
            group_ids=tuple(data.get("group_ids") or ()),
            editable_departments=tuple(data.get("editable_departments") or ()),
            subtype_restrictions=tuple(
                SubtypeRestriction(r["department"], r["subtype"])
                for r in data.get("subtype_restrictions") or ()
            ),
            can_see_all_tickets=bool(data.get("can_see_all_tickets")),
            can_delete=bool(data.get("can_delete")),
            can_edit_all_fields=bool(data.get("can_edit_all_fields")),
            can_edit_other_department=bool(data.get("can_edit_other_department")),
            is_purchaser=bool(data.get("is_purchaser")),
            is_inventory=bool(data.get("is_inventory")),
            job_title=data.get("job_title"),
            visibility_keyword_match=bool(data.get("visibility_keyword_match")),
        )


@dataclass(frozen=True)
class TicketUser:
    email: Optional[str] = None
    display_name: str = ""


def _text_or_none(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def _enum_or_none(enum_cls, value):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Ticket:
    """Read-only view of the ticket fields the predicates look at."""

    id: Optional[str] = None
    requester: Optional[TicketUser] = None
    created_by: Optional[TicketUser] = None
    original_requester: Optional[str] = None
    problem_type: Optional[str] = None
    problem_type_sub: Optional[str] = None
    category: Optional[TicketCategory] = None
    status: Optional[str] = None
    approval_status: Optional[ApprovalStatus] = None
    is_purchase_request: bool = False
    purchase_status: Optional[PurchaseStatus] = None

    @property
    def requester_email(self) -> Optional[str]:
        """Migrated tickets carry the original author as text; prefer it."""
        if self.original_requester:
            return self.original_requester
        if self.requester is not None and self.requester.email:
            return self.requester.email
        return None

    @property
    def created_by_email(self) -> Optional[str]:
        if self.created_by is not None and self.created_by.email:
            return self.created_by.email
        return None

    @classmethod
    def from_dict(cls, data: dict) -> "Ticket":
        """
        Build from a loose JSON dict (camelCase keys as the UI layer sends them).

        Unknown enum values and non-text identity or category fields become
        None rather than raising, so a malformed record simply fails every check.
        """

        def _user(raw) -> Optional[TicketUser]:
            if not isinstance(raw, dict):
                return None
            return TicketUser(
                email=_text_or_none(raw.get("email")),
                display_name=_text_or_none(raw.get("displayName")) or "",
            )

        return cls(
            id=None if data.get("id") is None else str(data.get("id")),
            requester=_user(data.get("requester")),
            created_by=_user(data.get("createdBy")),
            original_requester=_text_or_none(data.get("originalRequester")),
            problem_type=_text_or_none(data.get("problemType")),
            problem_type_sub=_text_or_none(data.get("problemTypeSub")),
            category=_enum_or_none(TicketCategory, data.get("category")),
            status=_text_or_none(data.get("status")),
            approval_status=_enum_or_none(ApprovalStatus, data.get("approvalStatus")),
            is_purchase_request=bool(data.get("isPurchaseRequest")),
            purchase_status=_enum_or_none(PurchaseStatus, data.get("purchaseStatus")),
        )
