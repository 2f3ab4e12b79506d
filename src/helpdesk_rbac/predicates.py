"""
Ticket access predicates.

Every function here is pure (permissions, ticket -> bool), does no I/O and
never raises: a missing field counts as "no match", so an incomplete ticket
is never visible or editable by default.

Support edit rules (can_edit):
- A subtype restriction matching the ticket's (problem type, subtype) grants edit.
- A department grant applies, but when the user also holds subtype
  restrictions inside that same department only those subtypes are editable.
- Tickets filed under "Other" are editable by any support user.
"""

from typing import Iterable, Optional

from .authz_config import is_hardcoded_admin
from .models import (
    ApprovalStatus,
    PurchaseStatus,
    Ticket,
    TicketCategory,
    UserPermissions,
    UserRole,
)

OTHER_DEPARTMENT = "Other"
CLOSED_STATUS = "Closed"

PURCHASABLE_STATUSES = frozenset({PurchaseStatus.APPROVED, PurchaseStatus.APPROVED_WITH_CHANGES})
RECEIVABLE_STATUSES = frozenset({PurchaseStatus.ORDERED, PurchaseStatus.PURCHASED})


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    if not isinstance(a, str) or not isinstance(b, str) or not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def _role(permissions: Optional[UserPermissions]) -> Optional[UserRole]:
    return None if permissions is None else permissions.role


def is_own(permissions: UserPermissions, ticket: Ticket) -> bool:
    """True if the user is the ticket's requester (original or structured) or its creator."""
    if permissions is None or ticket is None:
        return False
    return _same_email(ticket.requester_email, permissions.email) or _same_email(
        ticket.created_by_email, permissions.email
    )


def is_creator_elevated(ticket: Ticket) -> bool:
    """
    True if any identity on the ticket is a hardcoded admin.

    Only the static allow-list is consulted; group-based elevation would need
    an async directory call.
    """
    if ticket is None:
        return False
    candidates = (ticket.created_by_email, ticket.original_requester, ticket.requester_email)
    return any(is_hardcoded_admin(email) for email in candidates if email)


def can_view(
    permissions: UserPermissions,
    ticket: Ticket,
    group_member_emails: Optional[Iterable[str]] = None,
) -> bool:
    if permissions is None or ticket is None:
        return False
    if permissions.can_see_all_tickets:
        return True
    if is_own(permissions, ticket):
        return True

    members = list(group_member_emails or ())
    if members:
        # An admin's ticket is never shared through ordinary team visibility
        if is_creator_elevated(ticket):
            return False
        requester = ticket.requester_email
        return any(_same_email(requester, member) for member in members)

    return False


def can_edit(permissions: UserPermissions, ticket: Ticket) -> bool:
    role = _role(permissions)
    if role is None or ticket is None:
        return False
    if role is UserRole.ADMIN:
        return True
    if role is UserRole.USER:
        return is_own(permissions, ticket)
    if role is not UserRole.SUPPORT:
        return False

    problem_type = ticket.problem_type
    if not problem_type:
        return False
    subtype = ticket.problem_type_sub

    for restriction in permissions.subtype_restrictions:
        if restriction.department == problem_type and subtype and restriction.subtype == subtype:
            return True

    if problem_type in permissions.editable_departments:
        scoped = [r for r in permissions.subtype_restrictions if r.department == problem_type]
        if scoped:
            return bool(subtype) and any(r.subtype == subtype for r in scoped)
        return True

    if problem_type == OTHER_DEPARTMENT and permissions.can_edit_other_department:
        return True

    return False


def can_comment(permissions: UserPermissions, ticket: Ticket) -> bool:
    role = _role(permissions)
    if role in (UserRole.ADMIN, UserRole.SUPPORT):
        return ticket is not None
    if role is UserRole.USER:
        return is_own(permissions, ticket)
    return False


def can_delete(permissions: UserPermissions) -> bool:
    return permissions is not None and permissions.can_delete


def can_approve(permissions: UserPermissions) -> bool:
    """General Manager approval gate: admins only."""
    return _role(permissions) is UserRole.ADMIN


def requires_approval(ticket: Ticket) -> bool:
    return ticket is not None and ticket.category is TicketCategory.REQUEST


def can_request_approval(permissions: UserPermissions, ticket: Ticket) -> bool:
    """
    Support/admin editors may ask for approval on Request tickets.

    Re-requesting is allowed after a decision (Approved, Denied, Changes
    Requested) but not while a request is Pending.
    """
    if _role(permissions) not in (UserRole.ADMIN, UserRole.SUPPORT):
        return False
    if not requires_approval(ticket) or not can_edit(permissions, ticket):
        return False
    return ticket.approval_status is not ApprovalStatus.PENDING


def is_visible_with_approval_gate(permissions: UserPermissions, ticket: Ticket) -> bool:
    """
    Request tickets awaiting approval are limited to admins, users who can
    edit them (their requester included) and users whose job title matches a
    visibility keyword.
    """
    if permissions is None or ticket is None:
        return False
    if not (requires_approval(ticket) and ticket.approval_status is ApprovalStatus.PENDING):
        return True
    if can_edit(permissions, ticket):
        return True
    return permissions.visibility_keyword_match


def can_merge(permissions: UserPermissions, ticket: Ticket) -> bool:
    if ticket is None or ticket.status == CLOSED_STATUS:
        return False
    return can_edit(permissions, ticket)


def can_purchase(permissions: UserPermissions, ticket: Ticket) -> bool:
    if permissions is None or ticket is None or not ticket.is_purchase_request:
        return False
    if not (permissions.is_purchaser or permissions.role is UserRole.ADMIN):
        return False
    return ticket.purchase_status in PURCHASABLE_STATUSES


def can_mark_received(permissions: UserPermissions, ticket: Ticket) -> bool:
    if permissions is None or ticket is None or not ticket.is_purchase_request:
        return False
    if not (permissions.is_inventory or permissions.role is UserRole.ADMIN):
        return False
    return ticket.purchase_status in RECEIVABLE_STATUSES


def has_only_subtype_access(permissions: UserPermissions, problem_type: Optional[str]) -> bool:
    """True if a support user lacks the full department but holds a subtype grant inside it."""
    if _role(permissions) is not UserRole.SUPPORT or not problem_type:
        return False
    if problem_type in permissions.editable_departments:
        return False
    return any(r.department == problem_type for r in permissions.subtype_restrictions)


def evaluate(
    permissions: UserPermissions,
    ticket: Ticket,
    group_member_emails: Optional[Iterable[str]] = None,
) -> dict:
    """All decisions for one ticket, keyed by action name."""
    members = list(group_member_emails or ())
    return {
        "is_own": is_own(permissions, ticket),
        "can_view": can_view(permissions, ticket, members)
        and is_visible_with_approval_gate(permissions, ticket),
        "can_edit": can_edit(permissions, ticket),
        "can_comment": can_comment(permissions, ticket),
        "can_delete": can_delete(permissions),
        "can_approve": can_approve(permissions),
        "can_request_approval": can_request_approval(permissions, ticket),
        "can_merge": can_merge(permissions, ticket),
        "can_purchase": can_purchase(permissions, ticket),
        "can_mark_received": can_mark_received(permissions, ticket),
    }
