"""
Visibility keywords: job-title fragments that let a user see Request tickets
while they are waiting on General Manager approval.

Keywords live in their own SharePoint list (Title, IsActive) and are cached
for five minutes. A missing list or a failed fetch yields no keywords; rows
without a text Title are skipped.
"""

import logging
import time
from typing import Callable, Iterable, List, Optional

import httpx

from .cache import TTLCache
from .exceptions import ConfigUnavailableError
from .protocol import KeywordSource

logger = logging.getLogger(__name__)


def user_matches_visibility_keywords(job_title: Optional[str], keywords: Iterable[str]) -> bool:
    """Case-insensitive substring match of any keyword in the job title."""
    if not job_title:
        return False
    title = job_title.lower()
    return any(k and k.lower() in title for k in keywords)


class KeywordLoader:
    def __init__(
        self,
        source: Optional[KeywordSource],
        ttl_seconds: float = 5 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self._cache: TTLCache[tuple] = TTLCache(ttl_seconds, clock)

    async def get_active_keywords(self) -> List[str]:
        """Return active keywords, lower-cased."""
        cached = self._cache.get()
        if cached is not None:
            return list(cached)
        if self.source is None:
            return []

        try:
            rows = await self.source.fetch_keyword_rows()
        except (ConfigUnavailableError, httpx.HTTPError):
            logger.error("Failed to fetch visibility keywords", exc_info=True)
            return []

        keywords = []
        for row in rows:
            fields = row.get("fields", row) if isinstance(row, dict) else None
            title = fields.get("Title") if isinstance(fields, dict) else None
            if not isinstance(title, str):
                logger.warning("Skipping malformed visibility keyword row: %r", row)
                continue
            title = title.strip()
            if title and fields.get("IsActive") is not False:
                keywords.append(title.lower())
        self._cache.set(tuple(keywords))
        return keywords

    def invalidate(self) -> None:
        self._cache.invalidate()
