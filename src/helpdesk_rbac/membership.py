"""
Membership resolution: raw directory groups -> RBAC-relevant group ids.

The user's full directory group list is filtered down to the config's
allowed_group_ids. The filtered result is cached in a single slot keyed by
email, so resolving a different user replaces it.
"""

import logging
from typing import Iterable, List, Optional

from .authz_config import ConfigLoader, filter_allowed_groups
from .cache import SingleSlotCache
from .exceptions import DirectoryLookupError
from .protocol import DirectoryClient

logger = logging.getLogger(__name__)


def _email_key(email: str) -> str:
    return (email or "").strip().lower()


class MembershipResolver:
    def __init__(self, config_loader: ConfigLoader):
        self.config_loader = config_loader
        self._cache: SingleSlotCache[List[str]] = SingleSlotCache()

    async def resolve_memberships(self, user_email: str, raw_group_ids: Iterable[str]) -> List[str]:
        """
        Filter raw_group_ids to groups with RBAC meaning.

        The config is fetched first on every call so filtering always follows
        the loader's own freshness policy.
        """
        config = await self.config_loader.fetch_config()
        key = _email_key(user_email)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Membership cache hit for %s", key)
            return list(cached)

        filtered = filter_allowed_groups(raw_group_ids, config)
        # Filtering against the fallback mapping is retried once the live config is back
        if not config.is_fallback:
            self._cache.set(key, tuple(filtered))
        return filtered

    async def fetch_for_user(self, user_email: str, directory: DirectoryClient) -> List[str]:
        """Look up the user's groups in the directory, then filter them. Raises DirectoryLookupError."""
        key = _email_key(user_email)
        await self.config_loader.fetch_config()
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Membership cache hit for %s", key)
            return list(cached)

        raw_group_ids = await directory.get_my_group_ids()
        return await self.resolve_memberships(user_email, raw_group_ids)

    async def resolve_for_user(self, user_email: str, directory: DirectoryClient) -> List[str]:
        """
        Like fetch_for_user, but a failed lookup yields an empty list: the user
        is treated as a plain regular user rather than being granted anything.
        """
        try:
            return await self.fetch_for_user(user_email, directory)
        except DirectoryLookupError:
            logger.error("Failed to fetch group memberships for %s", _email_key(user_email), exc_info=True)
            return []

    def invalidate(self, user_email: Optional[str] = None) -> None:
        """Drop the cached slot (only if it belongs to user_email, when given)."""
        if user_email is None or self._cache.key == _email_key(user_email):
            self._cache.invalidate()
