"""System settings served through the cache store.

Settings are read from the cache under ``CacheKeys.SETTINGS``; on a miss they
are loaded from the content repository and written back without expiry.
A cache outage degrades to repository reads and is only logged.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .errors import TransientIOError
from .protocols import CacheStore, ContentRepository
from .stores import CacheKeys

logger = logging.getLogger(__name__)

SETTINGS_TYPE = "system_settings"


class SettingsProvider:
    def __init__(self, cache: CacheStore, repository: ContentRepository):
        self.cache = cache
        self.repository = repository

    async def get_settings(self) -> list[dict[str, Any]]:
        """Return the system settings records.

        Raises:
            TransientIOError: If the repository is unreachable.
        """
        try:
            cached = await self.cache.get(CacheKeys.SETTINGS)
        except TransientIOError as exc:
            logger.error("Failed reading settings from cache: %s", exc)
            cached = None
        if cached is not None:
            try:
                return json.loads(cached)
            except ValueError as exc:
                logger.error("Ignoring corrupt cached settings: %s", exc)

        try:
            settings = await self.repository.find_all(SETTINGS_TYPE)
        except OSError as exc:
            raise TransientIOError("Failed loading system settings", exc) from exc

        try:
            await self.cache.set(CacheKeys.SETTINGS, json.dumps(settings))
        except TransientIOError as exc:
            logger.error("Failed caching settings: %s", exc)
        return settings

    def language_codes(self, settings: list[dict[str, Any]]) -> list[str]:
        """Collect the language codes declared across settings records."""
        codes: list[str] = []
        for record in settings:
            for code in record.get("languages", []) or []:
                if code not in codes:
                    codes.append(code)
        return codes
