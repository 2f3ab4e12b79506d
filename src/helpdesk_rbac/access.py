"""
Access router: the decision points the UI layer asks before rendering.

Tickets are posted as the UI holds them (camelCase JSON) and answered from
the caller's session snapshot; no ticket data is stored.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends

from .engine import RBACEngine
from .models import Ticket, UserPermissions
from .predicates import can_view, evaluate, is_visible_with_approval_gate
from .session import current_group_member_emails, current_permissions, require_role


def create_access_router(engine: RBACEngine):
    router = APIRouter(prefix="/access", tags=["access"])

    @router.post("/evaluate")
    async def evaluate_ticket(
        ticket: Dict[str, Any] = Body(..., embed=True),
        permissions: UserPermissions = Depends(current_permissions),
        member_emails: List[str] = Depends(current_group_member_emails),
    ):
        """Every decision for one ticket."""
        return evaluate(permissions, Ticket.from_dict(ticket), member_emails)

    @router.post("/filter")
    async def filter_visible(
        tickets: List[Dict[str, Any]] = Body(..., embed=True),
        permissions: UserPermissions = Depends(current_permissions),
        member_emails: List[str] = Depends(current_group_member_emails),
    ):
        """Return the ids of the tickets the caller may see, in input order."""
        visible = []
        for raw in tickets:
            ticket = Ticket.from_dict(raw)
            if ticket.id is None:
                continue
            if can_view(permissions, ticket, member_emails) and is_visible_with_approval_gate(
                permissions, ticket
            ):
                visible.append(ticket.id)
        return {"visible_ids": visible}

    @router.get("/config")
    async def config_summary(_=Depends(require_role("admin"))):
        config = await engine.config_loader.fetch_config()
        return {
            "allowed_group_count": len(config.allowed_group_ids),
            "admin_groups": [g.title or g.group_id for g in config.admin_groups],
            "department_groups": [
                {"title": g.title, "department": g.department, "subtype": g.subtype}
                for g in config.department_groups
            ],
            "visibility_group_count": len(config.visibility_groups),
            "purchaser_group_count": len(config.purchaser_groups),
            "inventory_group_count": len(config.inventory_groups),
        }

    @router.post("/cache/invalidate")
    async def invalidate_caches(_=Depends(require_role("admin"))):
        engine.invalidate()
        return {"ok": True}

    return router
