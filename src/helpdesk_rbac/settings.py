"""
Environment-driven settings.

Values come from the process environment (main.py loads .env first).
Settings.from_env() is called once when the app is built. ADMIN_EMAILS is
not part of it: authz_config reads that allow-list itself at import.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .authz_config import DEFAULT_CONFIG_TTL_SECONDS


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    sharepoint_site_id: Optional[str] = None
    rbac_groups_list_id: Optional[str] = None
    visibility_keywords_list_id: Optional[str] = None
    config_ttl_seconds: int = DEFAULT_CONFIG_TTL_SECONDS
    # Default "change-me" is for dev only.
    session_secret: str = "change-me"
    role_refresh_interval_seconds: int = 0
    session_max_idle_seconds: int = 0
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            tenant_id=os.getenv("AZURE_TENANT_ID"),
            client_id=os.getenv("AZURE_CLIENT_ID"),
            client_secret=os.getenv("AZURE_CLIENT_SECRET"),
            sharepoint_site_id=os.getenv("SHAREPOINT_SITE_ID") or None,
            rbac_groups_list_id=os.getenv("RBAC_GROUPS_LIST_ID") or None,
            visibility_keywords_list_id=os.getenv("VISIBILITY_KEYWORDS_LIST_ID") or None,
            config_ttl_seconds=_int_env("RBAC_CONFIG_TTL_SECONDS", DEFAULT_CONFIG_TTL_SECONDS),
            session_secret=os.getenv("SESSION_SECRET", "change-me"),
            role_refresh_interval_seconds=_int_env("ROLE_REFRESH_INTERVAL_SECONDS", 0),
            session_max_idle_seconds=_int_env("SESSION_MAX_IDLE_SECONDS", 0),
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            debug=bool(os.getenv("DEBUG")),
        )

    @property
    def rbac_list_configured(self) -> bool:
        return bool(self.sharepoint_site_id and self.rbac_groups_list_id)

    @property
    def keywords_list_configured(self) -> bool:
        return bool(self.sharepoint_site_id and self.visibility_keywords_list_id)
