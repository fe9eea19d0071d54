"""
Persistence Utilities

JSON persistence shared by the blocked-user registry and the
conversation store.

Classes:
    - PersistenceManager: Debounced JSON snapshots for in-memory stores

Functions:
    - read_json: Read a JSON file, recreating it when missing or corrupt
    - write_json: Write a JSON file, creating parent directories
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional


log = logging.getLogger(__name__)


def _ensure_parent(file_path: str) -> None:
    parent = os.path.dirname(file_path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def read_json(file_path: str) -> Optional[Dict[str, Any]]:
    """
    Reads and returns the content of a JSON file.

    Args:
        file_path: Path to the JSON file

    Returns:
        Optional[Dict[str, Any]]: JSON content or None if the file can't be read
    """
    try:
        with open(file_path, 'r', encoding="utf-8") as file:
            return json.load(file)
    except FileNotFoundError:
        write_json(file_path, {})
        return {}
    except json.JSONDecodeError:
        log.error(f"Error decoding JSON file '{file_path}'. Creating new file.")
        write_json(file_path, {})
        return {}
    except OSError as e:
        log.error(f"Error reading JSON file '{file_path}': {e}")
        return None


def write_json(file_path: str, data: Dict[str, Any]) -> bool:
    """
    Writes the provided data to a JSON file.

    Args:
        file_path: Path to the JSON file
        data: Data to write

    Returns:
        True if the file was written
    """
    try:
        _ensure_parent(file_path)
        with open(file_path, 'w', encoding="utf-8") as file:
            json.dump(data, file, ensure_ascii=False, indent=4)
        return True
    except (OSError, TypeError) as e:
        log.error(f"Error saving JSON file '{file_path}': {e}")
        return False


class PersistenceManager:
    """
    Debounced JSON snapshots.

    Rapid successive saves are collapsed into one write after
    ``debounce_delay`` seconds. File I/O runs in a worker thread so the
    event loop never blocks on disk.

    Example:
        >>> manager = PersistenceManager("data/conversations.json")
        >>> data = await manager.load()
        >>> manager.schedule_save(data)
    """

    def __init__(self, file_path: str, debounce_delay: float = 1.0):
        self.file_path = file_path
        self.debounce_delay = debounce_delay
        self._save_task: Optional[asyncio.Task] = None

    async def load(self) -> Dict[str, Any]:
        """Load data from file asynchronously; missing files yield ``{}``."""
        if not os.path.exists(self.file_path):
            return {}
        data = await asyncio.to_thread(read_json, self.file_path)
        return data or {}

    async def save_immediate(self, data: Dict[str, Any]) -> bool:
        """Save data immediately without debouncing."""
        return await asyncio.to_thread(write_json, self.file_path, data)

    async def _save_debounced(self, data: Dict[str, Any]) -> None:
        await asyncio.sleep(self.debounce_delay)
        await self.save_immediate(data)

    def schedule_save(self, data: Dict[str, Any]) -> None:
        """
        Schedule a debounced save operation.

        A pending save is cancelled and rescheduled with the newer data.
        """
        if self._save_task and not self._save_task.done():
            self._save_task.cancel()

        self._save_task = asyncio.create_task(self._save_debounced(data))
