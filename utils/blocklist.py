"""
Blocked User Registry

Users blocked for abusive behavior. The registry is the last and most
expensive check of the ingestion gate, so lookups are async even though
the current backend is a small JSON file.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

import utils.func as func
from utils.persistence import read_json, write_json

log = logging.getLogger(__name__)


class BlockedUserRegistry:
    """
    JSON-backed set of blocked user IDs.

    File layout::

        {"123456789012345678": {"reason": "spam", "blocked_at": 1700000000.0}}
    """

    def __init__(self, file_path: Optional[str] = None):
        self.file_path = file_path or func.get_blocklist_file()
        self._blocked: Dict[str, Dict] = {}
        self._loaded = False

    async def load(self) -> None:
        data = await asyncio.to_thread(read_json, self.file_path)
        self._blocked = data or {}
        self._loaded = True
        log.debug(f"Loaded {len(self._blocked)} blocked users")

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    async def is_blocked(self, user_id: str) -> bool:
        await self._ensure_loaded()
        return str(user_id) in self._blocked

    async def block(self, user_id: str, reason: str = "") -> None:
        await self._ensure_loaded()
        self._blocked[str(user_id)] = {"reason": reason, "blocked_at": time.time()}
        await asyncio.to_thread(write_json, self.file_path, self._blocked)
        log.info(f"Blocked user {user_id} ({reason or 'no reason given'})")

    async def unblock(self, user_id: str) -> bool:
        await self._ensure_loaded()
        if self._blocked.pop(str(user_id), None) is None:
            return False
        await asyncio.to_thread(write_json, self.file_path, self._blocked)
        log.info(f"Unblocked user {user_id}")
        return True

    def __len__(self) -> int:
        return len(self._blocked)
