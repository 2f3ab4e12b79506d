"""
Visibility-group member lookup for team-based ticket sharing.

Given a regular user's visibility groups, returns the email addresses of
everyone in them. Elevated groups (admin, department, purchaser, inventory)
are stripped before any directory query, so an elevated group's roster is
never used for peer sharing even if a caller passes one in.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

from .authz_config import ConfigLoader
from .cache import SingleSlotCache
from .exceptions import DirectoryLookupError
from .protocol import DirectoryClient

logger = logging.getLogger(__name__)


class GroupMemberDirectory:
    def __init__(self, config_loader: ConfigLoader):
        self.config_loader = config_loader
        self._cache: SingleSlotCache[tuple] = SingleSlotCache()

    async def resolve_group_member_emails(
        self, visibility_group_ids: Iterable[str], directory: DirectoryClient
    ) -> List[str]:
        emails, _ = await self.lookup(visibility_group_ids, directory)
        return emails

    async def lookup(
        self, visibility_group_ids: Iterable[str], directory: DirectoryClient
    ) -> Tuple[List[str], bool]:
        """Member emails plus whether every group's lookup succeeded."""
        config = await self.config_loader.fetch_config()
        group_ids = sorted({gid for gid in visibility_group_ids if gid not in config.elevated_group_ids})
        if not group_ids:
            return [], True

        key = ",".join(group_ids)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Group member cache hit for %s", key)
            return list(cached), True

        results = await asyncio.gather(
            *(self._members_of(directory, gid) for gid in group_ids)
        )

        emails: List[str] = []
        seen = set()
        for members in results:
            for email in members or ():
                normalized = (email or "").strip().lower()
                if normalized and normalized not in seen:
                    seen.add(normalized)
                    emails.append(normalized)

        # Partial results are served but not cached so failed groups are retried
        complete = all(members is not None for members in results)
        if complete:
            self._cache.set(key, tuple(emails))
        return emails, complete

    async def _members_of(self, directory: DirectoryClient, group_id: str) -> Optional[List[str]]:
        """One group's members, or None if that group's lookup failed."""
        try:
            return await directory.get_group_member_emails(group_id)
        except DirectoryLookupError:
            logger.error("Failed to fetch members for group %s", group_id, exc_info=True)
            return None

    def invalidate(self) -> None:
        self._cache.invalidate()
