"""
FastAPI app: Microsoft Entra sign-in + help-desk ticket access decisions.

Decisions:
- .env is loaded before importing helpdesk_rbac so ADMIN_EMAILS, AZURE_* and
  SESSION_SECRET are available when the package reads them (Ruff E402 suppressed).
- RBAC group classification comes from the SharePoint list named by
  RBAC_GROUPS_LIST_ID; without it the built-in fallback mapping is used.
- Session secret from SESSION_SECRET env; default "change-me" is for dev only.
"""

from dotenv import load_dotenv

load_dotenv()

# Load .env before helpdesk_rbac so ADMIN_EMAILS is set at import; Ruff E402.
from fastapi import Depends  # noqa: E402

from helpdesk_rbac.app import create_app  # noqa: E402
from helpdesk_rbac.session import require_any_role, require_role  # noqa: E402

app = create_app()


# Example protected routes
@app.get("/admin")
async def admin_area(_=Depends(require_role("admin"))):
    return {"ok": True, "area": "admin"}


@app.get("/support-or-admin")
async def support_or_admin_area(_=Depends(require_any_role("support", "admin"))):
    return {"ok": True, "area": "support or admin"}
